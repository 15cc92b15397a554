# Overview: Supplier records and the aggregate/history writes purchases make.

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import SupplierNotFoundError
from ..extensions import db
from ..models import Supplier, SupplierHistoryEntry
from ..time_utils import utcnow
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import atomic_increment

logger = logging.getLogger(__name__)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "address", "supplier_type"},
    required_on_create={"name"},
)

HISTORY_PURCHASE = "purchase"
HISTORY_UPDATED_PURCHASE = "updated_purchase"
HISTORY_DUE_PAYMENT = "due_payment"


def create_supplier(payload: dict) -> Supplier:
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    supplier = Supplier(**patch, supplied_products=[])
    db.session.add(supplier)
    db.session.commit()
    return supplier


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise SupplierNotFoundError("Supplier not found", supplier_id=supplier_id)
    return supplier


def list_suppliers(search: str | None = None) -> list[Supplier]:
    query = Supplier.query
    if search:
        query = query.filter(Supplier.name.ilike(f"%{search.strip()}%"))
    return query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()


def adjust_totals(supplier_id: int, *, purchase_delta: Decimal, due_delta: Decimal) -> None:
    """SQL increments of total_purchase / total_due (negative to revert)."""
    if purchase_delta:
        atomic_increment(Supplier.total_purchase, supplier_id, purchase_delta)
    if due_delta:
        atomic_increment(Supplier.total_due, supplier_id, due_delta)


def add_supplied_products(supplier: Supplier, names) -> None:
    current = set(supplier.supplied_products or [])
    merged = current | {n for n in names if n}
    if merged != current:
        supplier.supplied_products = sorted(merged)


def add_history(supplier: Supplier, entry_type: str, **fields) -> SupplierHistoryEntry:
    entry = SupplierHistoryEntry(supplier_id=supplier.id, type=entry_type, date=fields.pop("date", None) or utcnow(), **fields)
    supplier.history.append(entry)
    return entry


def remove_history(entry_id: int) -> None:
    entry = db.session.get(SupplierHistoryEntry, entry_id)
    if entry is not None:
        db.session.delete(entry)
