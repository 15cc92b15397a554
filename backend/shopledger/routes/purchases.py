# Overview: Purchase (supplier invoice) endpoints.

"""
Purchase routes.

Request bodies accept both the snake_case and camelCase names clients send:
- total: total_amount | totalAmount
- paid:  advance | paidAmount
- account: paymentAccountId, else paymentType | paymentMethod (legacy string)
"""

from flask import Blueprint, request

from ..decorators import current_username, require_auth
from ..errors import LedgerError
from ..responses import balances_json, fail, ok, server_error
from ..services import purchase_service
from ..services.account_balance_service import account_ref_from
from ..validation import parse_datetime_field, parse_line_items, read_amount, read_int

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")

PRICE_KEYS = ("purchase_price", "purchasePrice", "price")


def _account_ref(data: dict):
    return account_ref_from(
        data.get("paymentAccountId", data.get("payment_account_id")),
        data.get("paymentType") or data.get("paymentMethod") or data.get("payment_type"),
    )


def _purchase_input(data: dict) -> dict:
    """Validate a create/update body before any side effect."""
    return {
        "lines": parse_line_items(data.get("products"), price_keys=PRICE_KEYS),
        "total_amount": read_amount(data, "total_amount", "totalAmount", required=True, positive=True),
        "paid_amount": read_amount(data, "advance", "paidAmount", "paid_amount"),
        "account_ref": _account_ref(data),
        "supplier_id": read_int(data, "supplierId", "supplier_id", required=False),
    }


@purchases_bp.post("")
@require_auth
def create_purchase_route():
    data = request.get_json(silent=True) or {}
    try:
        fields = _purchase_input(data)
        result = purchase_service.create_purchase(
            **fields,
            date=parse_datetime_field(data.get("date")),
            created_by=current_username(),
        )
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Create purchase")

    purchase = result["purchase"]
    return ok(
        purchase.to_dict(),
        message="Purchase recorded",
        status=201,
        invoiceId=purchase.id,
        newBalances=balances_json(result["new_balances"]),
    )


@purchases_bp.get("")
@require_auth
def list_purchases_route():
    """
    Query params:
    - type: "due" (optional) - only purchases with payment_due > 0
    - supplier_id: int (optional)
    """
    purchases = purchase_service.list_purchases(
        due_only=request.args.get("type") == "due",
        supplier_id=request.args.get("supplier_id", type=int),
    )
    return ok([p.to_dict() for p in purchases])


@purchases_bp.get("/<int:purchase_id>")
@require_auth
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id)
    except LedgerError as e:
        return fail(e)
    return ok(purchase.to_dict())


@purchases_bp.put("/<int:purchase_id>")
@require_auth
def update_purchase_route(purchase_id: int):
    data = request.get_json(silent=True) or {}
    try:
        fields = _purchase_input(data)
        purchase = purchase_service.update_purchase(purchase_id, **fields, created_by=current_username())
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Update purchase")
    return ok(purchase.to_dict(), message="Purchase updated")


@purchases_bp.patch("/pay/<int:purchase_id>")
@require_auth
def pay_due_route(purchase_id: int):
    """Body: {payAmount, paymentAccountId | paymentMethod}"""
    data = request.get_json(silent=True) or {}
    try:
        amount = read_amount(data, "payAmount", "pay_amount", required=True, positive=True)
        result = purchase_service.pay_supplier_due(
            purchase_id, amount, _account_ref(data), created_by=current_username(),
        )
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Pay supplier due")
    return ok(
        result["purchase"].to_dict(),
        message="Payment recorded",
        newBalance=float(result["new_balance"]),
    )


@purchases_bp.delete("/<int:purchase_id>")
@require_auth
def delete_purchase_route(purchase_id: int):
    try:
        result = purchase_service.delete_purchase(purchase_id)
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Delete purchase")
    return ok(message="Purchase deleted", newBalances=balances_json(result["new_balances"]))
