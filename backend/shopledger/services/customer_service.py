# Overview: Customer records, name lookup, and the aggregate/history writes sales make.

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import CustomerNotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, CustomerHistoryEntry
from ..models.parties import CUSTOMER_REGULAR, CUSTOMER_TEMPORARY
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import atomic_increment

logger = logging.getLogger(__name__)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "address", "customer_type"},
    required_on_create={"name"},
)

HISTORY_SALE = "sale"
HISTORY_UPDATED_SALE = "updated_sale"
HISTORY_DUE_PAYMENT = "due_payment"
HISTORY_ADVANCE_PAYMENT = "advance_payment"


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    patch.setdefault("customer_type", CUSTOMER_REGULAR)
    if patch["customer_type"] not in (CUSTOMER_REGULAR, CUSTOMER_TEMPORARY):
        raise ValidationError("customer_type must be regular or temporary")
    customer = Customer(**patch, purchased_products=[])
    db.session.add(customer)
    db.session.commit()
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise CustomerNotFoundError("Customer not found", customer_id=customer_id)
    return customer


def list_customers(search: str | None = None) -> list[Customer]:
    query = Customer.query
    if search:
        query = query.filter(Customer.name.ilike(f"%{search.strip()}%"))
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def find_or_create_by_name(name: str) -> tuple[Customer, bool]:
    """
    Case-insensitive exact name match; unknown names become a temporary
    customer. Flushes only; the caller's workflow commits.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("customer name is required")
    customer = (
        Customer.query
        .filter(db.func.lower(Customer.name) == name.lower())
        .order_by(Customer.id.asc())
        .first()
    )
    if customer:
        return customer, False
    customer = Customer(name=name, customer_type=CUSTOMER_TEMPORARY, purchased_products=[])
    db.session.add(customer)
    db.session.flush()
    logger.info("Created temporary customer %s (%r)", customer.id, name)
    return customer, True


def adjust_totals(customer_id: int, *, sales_delta: Decimal = Decimal("0"),
                  due_delta: Decimal = Decimal("0"), advance_delta: Decimal = Decimal("0")) -> None:
    if sales_delta:
        atomic_increment(Customer.total_sales, customer_id, sales_delta)
    if due_delta:
        atomic_increment(Customer.total_due, customer_id, due_delta)
    if advance_delta:
        atomic_increment(Customer.advance, customer_id, advance_delta)


def add_purchased_products(customer: Customer, names) -> None:
    current = set(customer.purchased_products or [])
    merged = current | {n for n in names if n}
    if merged != current:
        customer.purchased_products = sorted(merged)


def add_history(customer: Customer, entry_type: str, **fields) -> CustomerHistoryEntry:
    entry = CustomerHistoryEntry(customer_id=customer.id, type=entry_type, date=fields.pop("date", None) or utcnow(), **fields)
    customer.history.append(entry)
    return entry


def remove_history(entry_id: int) -> None:
    entry = db.session.get(CustomerHistoryEntry, entry_id)
    if entry is not None:
        db.session.delete(entry)
