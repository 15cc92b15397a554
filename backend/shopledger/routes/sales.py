# Overview: Sale memo endpoints.

from flask import Blueprint, request

from ..decorators import current_username, require_auth
from ..errors import LedgerError
from ..responses import balances_json, fail, ok, server_error
from ..services import sales_service
from ..services.account_balance_service import account_ref_from
from ..validation import parse_datetime_field, parse_line_items, read_amount, read_int

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

PRICE_KEYS = ("sale_price", "salePrice", "price")


def _account_ref(data: dict):
    # No account given: the service pays into the default cash account
    return account_ref_from(
        data.get("accountId", data.get("account_id")),
        data.get("paymentMethod") or data.get("payment_method"),
    )


def _customer_fields(data: dict) -> dict:
    """customer may be a name string or {id, name}; customerId also accepted."""
    customer = data.get("customer")
    customer_id = read_int(data, "customerId", "customer_id", required=False)
    customer_name = None
    if isinstance(customer, dict):
        customer_id = customer_id or read_int(customer, "id", required=False)
        customer_name = customer.get("name")
    elif isinstance(customer, str):
        customer_name = customer.strip() or None
    return {"customer_id": customer_id, "customer_name": customer_name}


@sales_bp.post("/create")
@require_auth
def create_sale_route():
    """
    Body: {memoNo, date, customer, products[], total, paidAmount, due}

    due is derived from total and paidAmount; a client-sent value is ignored.
    """
    data = request.get_json(silent=True) or {}
    try:
        lines = parse_line_items(data.get("products"), price_keys=PRICE_KEYS)
        total = read_amount(data, "total", required=True, positive=True)
        paid = read_amount(data, "paidAmount", "paid_amount")
        result = sales_service.create_sale(
            lines, total, paid, _account_ref(data),
            memo_no=data.get("memoNo") or data.get("memo_no"),
            date=parse_datetime_field(data.get("date")),
            created_by=current_username(),
            **_customer_fields(data),
        )
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Create sale")

    new_balance = result["new_balance"]
    return ok(
        result["sale"].to_dict(),
        message="Sale recorded",
        status=201,
        memoId=result["memo_id"],
        newCashBalance=float(new_balance) if new_balance is not None else None,
    )


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params:
    - customer_id: int (optional)
    - type: "due" (optional) - only memos with due > 0
    """
    sales = sales_service.list_sales(
        customer_id=request.args.get("customer_id", type=int),
        due_only=request.args.get("type") == "due",
    )
    return ok([s.to_dict() for s in sales])


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except LedgerError as e:
        return fail(e)
    return ok(sale.to_dict())


@sales_bp.put("/<int:sale_id>")
@require_auth
def update_sale_route(sale_id: int):
    data = request.get_json(silent=True) or {}
    try:
        lines = parse_line_items(data.get("products"), price_keys=PRICE_KEYS)
        total = read_amount(data, "total", required=True, positive=True)
        paid = read_amount(data, "paidAmount", "paid_amount")
        sale = sales_service.update_sale(
            sale_id, lines, total, paid, _account_ref(data),
            memo_no=data.get("memoNo") or data.get("memo_no"),
            created_by=current_username(),
        )
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Update sale")
    return ok(sale.to_dict(), message="Sale updated")


@sales_bp.patch("/pay/<int:sale_id>")
@require_auth
def receive_due_route(sale_id: int):
    """Body: {payAmount, accountId | paymentMethod}"""
    data = request.get_json(silent=True) or {}
    try:
        amount = read_amount(data, "payAmount", "pay_amount", required=True, positive=True)
        result = sales_service.receive_customer_due(
            sale_id, amount, _account_ref(data), created_by=current_username(),
        )
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Receive customer due")
    return ok(
        result["sale"].to_dict(),
        message="Payment received",
        newBalance=float(result["new_balance"]),
    )


@sales_bp.delete("/<int:sale_id>")
@require_auth
def delete_sale_route(sale_id: int):
    try:
        result = sales_service.delete_sale(sale_id)
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Delete sale")
    return ok(message="Sale deleted", newBalances=balances_json(result["new_balances"]))
