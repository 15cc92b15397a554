# Overview: Inventory adjuster; stock quantity and weighted average cost per product.

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from ..errors import (
    InsufficientStockError,
    InvalidProductError,
    InvalidQuantityError,
    InventoryItemNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import InventoryItem, InventoryPurchaseRecord, InventorySaleRecord, Product
from ..money import FOURPLACES, to_money, to_unit_cost
from ..time_utils import parse_iso_datetime, utcnow
from .concurrency import atomic_increment, lock_for_update

"""
Inventory invariants (authoritative)

- stock_qty = sum(purchase_history.qty) - sum(sale_history.qty)
- average_purchase_price = sum(qty * purchase_price) / sum(qty) over
  purchase_history, rounded half-up to 4 places; 0 when history is empty
- last_purchase_price = price of the newest purchase_history entry

Stock policy:
- Forward issuance (a fresh sale) refuses to take stock_qty below zero.
- Reversals (undoing a purchase or sale) never check sufficiency; stock may
  go negative transiently during an edit sequence.
- stock_qty only moves through SQL increments (see concurrency.atomic_increment).
"""

logger = logging.getLogger(__name__)


def _parse_at(value):
    """
    Normalize a history timestamp to canonical UTC-naive datetime.

    None -> utcnow(); aware datetimes are converted; strings go through
    parse_iso_datetime.
    """
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, str):
        dt = parse_iso_datetime(value)
        if dt is None:
            raise ValidationError("invalid date", value=value)
        return dt
    raise ValidationError("invalid date", value=str(value))


def _positive_qty(qty) -> int:
    if isinstance(qty, bool):
        raise InvalidQuantityError("Quantity must be a positive integer", qty=qty)
    try:
        value = int(qty)
    except (TypeError, ValueError):
        raise InvalidQuantityError("Quantity must be a positive integer", qty=qty)
    if value != qty and str(value) != str(qty):
        raise InvalidQuantityError("Quantity must be a whole number", qty=qty)
    if value <= 0:
        raise InvalidQuantityError("Quantity must be greater than zero", qty=value)
    return value


def _locked_item(product_id: int) -> InventoryItem | None:
    return lock_for_update(InventoryItem.query.filter_by(product_id=product_id)).first()


def weighted_average(records) -> Decimal:
    total_qty = sum(r.qty for r in records)
    if total_qty <= 0:
        return Decimal("0.0000")
    total_cost = sum(Decimal(r.qty) * r.purchase_price for r in records)
    return (total_cost / Decimal(total_qty)).quantize(FOURPLACES, rounding=ROUND_HALF_UP)


def _refresh_costs(item: InventoryItem) -> None:
    history = item.purchase_history
    if not history:
        item.average_purchase_price = Decimal("0")
        item.last_purchase_price = Decimal("0")
        return
    item.average_purchase_price = weighted_average(history)
    item.last_purchase_price = history[-1].purchase_price


# =============================================================================
# FORWARD OPERATIONS
# =============================================================================

def receive_stock(
    product_id: int,
    qty,
    unit_cost,
    reference: int | None,
    *,
    name: str | None = None,
    subtotal=None,
    at=None,
    commit: bool = True,
) -> InventoryItem:
    """
    Receive purchased stock.

    Existing item:
        new_avg = (old_avg * old_qty + unit_cost * qty) / (old_qty + qty)
    where old_avg * old_qty is the exact cost of the existing purchase
    history, so the average never drifts from the history mean.
    Missing item: created lazily with average = last price = unit_cost.

    Raises InvalidProductError, InvalidQuantityError.
    """
    qty = _positive_qty(qty)
    try:
        unit_cost = to_unit_cost(unit_cost)
    except ValueError:
        raise InvalidQuantityError("Unit cost must be a number", unit_cost=unit_cost)
    if unit_cost <= 0:
        raise InvalidQuantityError("Unit cost must be greater than zero", unit_cost=unit_cost)

    product = db.session.get(Product, product_id)
    if not product:
        raise InvalidProductError("Product not found", product_id=product_id)

    at = _parse_at(at)
    subtotal = to_money(subtotal) if subtotal not in (None, "") else to_money(unit_cost * qty)
    record = InventoryPurchaseRecord(
        invoice_id=reference, qty=qty, purchase_price=unit_cost, subtotal=subtotal, date=at,
    )

    item = _locked_item(product_id)
    if item is None:
        item = InventoryItem(
            product_id=product.id,
            item_name=name or product.name,
            stock_qty=qty,
            sale_price=product.sale_price,
            last_purchase_price=unit_cost,
            average_purchase_price=unit_cost,
            reorder_level=0,
            last_updated=at,
        )
        item.purchase_history.append(record)
        db.session.add(item)
        db.session.flush()
    else:
        old_cost = sum(Decimal(r.qty) * r.purchase_price for r in item.purchase_history)
        old_qty = sum(r.qty for r in item.purchase_history)
        item.average_purchase_price = (
            (old_cost + unit_cost * qty) / Decimal(old_qty + qty)
        ).quantize(FOURPLACES, rounding=ROUND_HALF_UP)
        item.last_purchase_price = unit_cost
        item.last_updated = at
        item.purchase_history.append(record)
        db.session.flush()
        atomic_increment(InventoryItem.stock_qty, item.id, qty)

    if commit:
        db.session.commit()

    logger.debug("Received %s x product %s (invoice %s) at %s", qty, product_id, reference, unit_cost)
    return item


def issue_stock(
    product_id: int,
    qty,
    unit_price,
    reference: int | None,
    *,
    subtotal=None,
    enforce_stock: bool = True,
    at=None,
    commit: bool = True,
) -> InventoryItem:
    """
    Issue stock for a sale and append a sale_history entry.

    enforce_stock=True (forward sale) raises InsufficientStockError when
    stock_qty < qty and leaves stock untouched. Reversal callers pass False.
    """
    qty = _positive_qty(qty)
    try:
        unit_price = to_money(unit_price)
    except ValueError:
        raise ValidationError("Unit price must be a number", unit_price=unit_price)

    item = _locked_item(product_id)
    if item is None:
        if enforce_stock:
            raise InsufficientStockError(
                "Insufficient stock", product_id=product_id, requested=qty, available=0,
            )
        raise InventoryItemNotFoundError("Product not found in inventory", product_id=product_id)

    if not atomic_increment(InventoryItem.stock_qty, item.id, -qty, allow_negative=not enforce_stock):
        raise InsufficientStockError(
            f"Insufficient stock for {item.item_name}",
            product_id=product_id,
            requested=qty,
            available=item.stock_qty,
        )

    at = _parse_at(at)
    subtotal = to_money(subtotal) if subtotal not in (None, "") else to_money(unit_price * qty)
    item.sale_history.append(
        InventorySaleRecord(memo_id=reference, qty=qty, price=unit_price, subtotal=subtotal, date=at)
    )
    item.last_updated = at
    db.session.flush()

    if commit:
        db.session.commit()
    return item


# =============================================================================
# REVERSALS (no sufficiency checks)
# =============================================================================

def reverse_receive(product_id: int, reference: int | None, *, commit: bool = True) -> InventoryItem | None:
    """
    Undo every receive of this invoice for a product.

    Removes the matching purchase_history entries, subtracts their qty and
    recomputes average / last price from what remains (full recompute).
    A product with no matching entries is left untouched.
    """
    item = _locked_item(product_id)
    if item is None:
        logger.warning("reverse_receive: product %s has no inventory item", product_id)
        return None

    records = [r for r in item.purchase_history if r.invoice_id == reference]
    if not records:
        return item

    qty = sum(r.qty for r in records)
    for record in records:
        item.purchase_history.remove(record)
    _refresh_costs(item)
    item.last_updated = utcnow()
    db.session.flush()
    atomic_increment(InventoryItem.stock_qty, item.id, -qty)

    if commit:
        db.session.commit()

    logger.debug("Reversed receive of %s x product %s (invoice %s)", qty, product_id, reference)
    return item


def reverse_issue(product_id: int, reference: int | None, *, commit: bool = True) -> InventoryItem | None:
    """Undo every issue of this memo for a product; adds the qty back."""
    item = _locked_item(product_id)
    if item is None:
        logger.warning("reverse_issue: product %s has no inventory item", product_id)
        return None

    records = [r for r in item.sale_history if r.memo_id == reference]
    if not records:
        return item

    qty = sum(r.qty for r in records)
    for record in records:
        item.sale_history.remove(record)
    item.last_updated = utcnow()
    db.session.flush()
    atomic_increment(InventoryItem.stock_qty, item.id, qty)

    if commit:
        db.session.commit()
    return item


def recalculate_average_purchase_price(product_id: int, *, commit: bool = True) -> InventoryItem:
    item = get_item(product_id)
    _refresh_costs(item)
    db.session.flush()
    if commit:
        db.session.commit()
    return item


# =============================================================================
# READS AND SETTINGS
# =============================================================================

def get_item(product_id: int) -> InventoryItem:
    item = InventoryItem.query.filter_by(product_id=product_id).first()
    if not item:
        raise InventoryItemNotFoundError("Product not found in inventory", product_id=product_id)
    return item


def get_stock(product_id: int) -> dict:
    item = get_item(product_id)
    return {"product_id": item.product_id, "item_name": item.item_name, "stock": item.stock_qty}


def list_inventory(search: str | None = None) -> list[InventoryItem]:
    query = InventoryItem.query
    if search:
        query = query.filter(InventoryItem.item_name.ilike(f"%{search.strip()}%"))
    return query.order_by(InventoryItem.item_name.asc(), InventoryItem.id.asc()).all()


_UNSET = object()


def update_item_settings(product_id: int, *, sale_price=_UNSET, reorder_level=_UNSET,
                         item_name=_UNSET, commit: bool = True) -> InventoryItem:
    """Edit non-ledger fields. stock_qty and cost fields are not writable here."""
    item = get_item(product_id)

    if sale_price is not _UNSET:
        if sale_price is None:
            item.sale_price = None
        else:
            try:
                price = to_money(sale_price)
            except ValueError:
                raise ValidationError("sale_price must be a number", sale_price=sale_price)
            if price < 0:
                raise ValidationError("sale_price cannot be negative", sale_price=price)
            item.sale_price = price

    if reorder_level is not _UNSET:
        if isinstance(reorder_level, bool) or not isinstance(reorder_level, int) or reorder_level < 0:
            raise ValidationError("reorder_level must be a non-negative integer", reorder_level=reorder_level)
        item.reorder_level = reorder_level

    if item_name is not _UNSET:
        if not item_name or not str(item_name).strip():
            raise ValidationError("item_name cannot be empty")
        item.item_name = str(item_name).strip()

    item.last_updated = utcnow()
    if commit:
        db.session.commit()
    return item
