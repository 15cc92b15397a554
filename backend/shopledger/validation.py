# Overview: Request-body checks for ledger documents and master records.

from __future__ import annotations
from datetime import datetime
from decimal import Decimal

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, String, Text

from .errors import ValidationError, InvalidAmountError, InvalidQuantityError, InvalidProductError
from .models.types import Money, UnitCost
from .money import MAX_AMOUNT, ZERO, to_money, to_unit_cost
from .time_utils import parse_iso_datetime

__all__ = [
    "ValidationError",
    "ModelValidationPolicy",
    "validate_payload",
    "enforce_rules_account",
    "read_amount",
    "read_int",
    "parse_line_items",
    "parse_datetime_field",
]


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which columns a client may set on a record, and which a create needs."""
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _coerce_value(col, value: Any):
    coltype = col.type

    if isinstance(coltype, (Money, UnitCost)):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number", field=col.key)
        try:
            amount = to_unit_cost(value) if isinstance(coltype, UnitCost) else to_money(value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a number", field=col.key)
        if amount < ZERO:
            raise ValidationError(f"{col.key} cannot be negative", field=col.key)
        if amount > MAX_AMOUNT:
            raise ValidationError(f"{col.key} is too large", field=col.key)
        return amount

    if isinstance(coltype, Boolean):
        return value if isinstance(value, bool) else bool(value)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Clean a create (partial=False) or patch (partial=True) body for an
    account, product, supplier or customer.

    Keys outside policy.writable_fields are refused, so balances and
    aggregate totals can never be set from a request. Values are coerced by
    column type; non-nullable strings cannot be blank.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

    cols = {c.key: c for c in model.__mapper__.columns}
    for k in payload:
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"{k} is not writable", field=k)

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)
        if isinstance(val, str):
            if val == "" and not col.nullable:
                raise ValidationError(f"{k} cannot be blank", field=k)
            length = getattr(col.type, "length", None)
            if length and len(val) > length:
                raise ValidationError(f"{k} exceeds max length {length}", field=k)
        patch[k] = val

    return patch


# Discriminator fields each account type must carry
ACCOUNT_REQUIRED_FIELDS = {
    "cash": ("name",),
    "bank": ("bank_name", "account_number"),
    "mobile": ("number", "owner_name"),
}
DEFAULT_MOBILE_METHOD = "bkash"


def enforce_rules_account(patch: dict, account_type: str) -> None:
    """
    Type-specific required fields. A mobile account without a method is a
    bKash wallet.
    """
    required = ACCOUNT_REQUIRED_FIELDS.get(account_type)
    if required is None:
        raise ValidationError("type must be one of cash, bank, mobile", type=account_type)
    missing = [f for f in required if not patch.get(f)]
    if missing:
        raise ValidationError(
            f"{account_type} account requires: {', '.join(missing)}", type=account_type,
        )
    if account_type == "mobile" and not patch.get("method"):
        patch["method"] = DEFAULT_MOBILE_METHOD
    if "balance" in patch:
        raise ValidationError("balance is not writable")


def read_amount(payload: dict, *keys: str, required: bool = False, positive: bool = False) -> Decimal:
    """
    First present key wins (request bodies accept both snake and camel case).

    Missing and not required -> 0.00.
    """
    for key in keys:
        if key in payload and payload[key] not in (None, ""):
            raw = payload[key]
            break
    else:
        if required:
            raise ValidationError(f"{keys[0]} is required", field=keys[0])
        return ZERO

    if isinstance(raw, bool):
        raise InvalidAmountError(f"{keys[0]} must be a number", field=keys[0])
    try:
        amount = to_money(raw)
    except ValueError:
        raise InvalidAmountError(f"{keys[0]} must be a number", field=keys[0], value=str(raw))
    if amount < ZERO:
        raise InvalidAmountError(f"{keys[0]} cannot be negative", field=keys[0], value=amount)
    if positive and amount == ZERO:
        raise InvalidAmountError(f"{keys[0]} must be greater than zero", field=keys[0])
    if amount > MAX_AMOUNT:
        raise InvalidAmountError(f"{keys[0]} is too large", field=keys[0], value=amount)
    return amount


def parse_datetime_field(value, field: str = "date"):
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        dt = parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime", field=field)
    return dt


def _line_qty(raw, index: int) -> int:
    if isinstance(raw, bool) or raw is None:
        raise InvalidQuantityError(f"products[{index}].qty must be a positive integer", line=index)
    if isinstance(raw, float) and not raw.is_integer():
        raise InvalidQuantityError(f"products[{index}].qty must be a whole number", line=index)
    try:
        qty = int(raw)
    except (TypeError, ValueError):
        raise InvalidQuantityError(f"products[{index}].qty must be a positive integer", line=index)
    if qty <= 0:
        raise InvalidQuantityError(f"products[{index}].qty must be greater than zero", line=index, qty=qty)
    return qty


def parse_line_items(raw_lines, *, price_keys: tuple[str, ...]) -> list[dict]:
    """
    Normalize a products[] array from a purchase or sale body.

    Each line becomes {product_id, name, qty, price, subtotal}. Subtotal
    defaults to qty * price. Raises ValidationError subclasses before any
    side effect.
    """
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("Products array is required and cannot be empty")

    lines = []
    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"products[{index}] must be an object", line=index)

        product_id = raw.get("product_id", raw.get("productId"))
        if isinstance(product_id, bool):
            product_id = None
        try:
            product_id = int(product_id)
        except (TypeError, ValueError):
            raise InvalidProductError(f"products[{index}].product_id is required", line=index)

        qty = _line_qty(raw.get("qty"), index)

        price_raw = next((raw[k] for k in price_keys if raw.get(k) not in (None, "")), None)
        if price_raw is None or isinstance(price_raw, bool):
            raise InvalidAmountError(f"products[{index}].{price_keys[0]} is required", line=index)
        try:
            price = to_unit_cost(price_raw)
        except ValueError:
            raise InvalidAmountError(f"products[{index}].{price_keys[0]} must be a number", line=index)
        if price < ZERO:
            raise InvalidAmountError(f"products[{index}].{price_keys[0]} cannot be negative", line=index)

        if raw.get("subtotal") not in (None, ""):
            try:
                subtotal = to_money(raw["subtotal"])
            except ValueError:
                raise InvalidAmountError(f"products[{index}].subtotal must be a number", line=index)
        else:
            subtotal = to_money(price * qty)

        name = raw.get("name")
        lines.append({
            "product_id": product_id,
            "name": str(name).strip() if name else None,
            "qty": qty,
            "price": price,
            "subtotal": subtotal,
        })
    return lines


def read_int(payload: dict, *keys: str, required: bool = True):
    """First present key wins. Missing and not required -> None."""
    raw = next((payload[k] for k in keys if payload.get(k) not in (None, "")), None)
    if raw is None:
        if required:
            raise ValidationError(f"{keys[0]} is required", field=keys[0])
        return None
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise ValidationError(f"{keys[0]} must be an integer", field=keys[0])
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{keys[0]} must be an integer", field=keys[0])
