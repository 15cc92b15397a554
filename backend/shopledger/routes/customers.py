# Overview: Customer endpoints, including lump-sum payments.

from flask import Blueprint, request

from ..decorators import current_username, require_auth
from ..errors import LedgerError
from ..responses import fail, ok, server_error
from ..services import customer_service, sales_service
from ..services.account_balance_service import account_ref_from
from ..validation import read_amount

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    customers = customer_service.list_customers(request.args.get("search"))
    return ok([c.to_dict(include_history=False) for c in customers])


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.create_customer(payload)
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Create customer")
    return ok(customer.to_dict(), message="Customer created", status=201)


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
    except LedgerError as e:
        return fail(e)
    return ok(customer.to_dict())


@customers_bp.post("/<int:customer_id>/payments")
@require_auth
def customer_payment_route(customer_id: int):
    """
    Lump-sum payment spread over the customer's due memos, oldest first.
    Any remainder becomes advance.

    Body: {amount, accountId? | paymentMethod?}
    """
    data = request.get_json(silent=True) or {}
    try:
        amount = read_amount(data, "amount", "payAmount", required=True, positive=True)
        account_ref = account_ref_from(
            data.get("accountId", data.get("account_id")),
            data.get("paymentMethod") or data.get("paymentType"),
        )
        result = sales_service.receive_customer_payment(
            customer_id, amount, account_ref, created_by=current_username(),
        )
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Customer payment")

    return ok(
        {
            "customer": result["customer"].to_dict(include_history=False),
            "applied": [{"sale_id": a["sale_id"], "amount": float(a["amount"])} for a in result["applied"]],
            "advance": float(result["advance"]),
            "newBalance": float(result["new_balance"]) if result["new_balance"] is not None else None,
        },
        message="Payment recorded",
    )
