# Overview: Payment account CRUD and default lookup.

from flask import Blueprint, request

from ..decorators import require_auth
from ..errors import AccountNotFoundError, LedgerError
from ..responses import fail, ok, server_error
from ..services import account_service
from ..services.account_balance_service import get_account, get_default_account

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.get("")
@require_auth
def list_accounts_route():
    """Query params: type (cash|bank|mobile, optional)."""
    try:
        accounts = account_service.list_accounts(request.args.get("type"))
    except LedgerError as e:
        return fail(e)
    return ok([a.to_dict() for a in accounts])


@accounts_bp.post("")
@require_auth
def create_account_route():
    payload = request.get_json(silent=True) or {}
    try:
        account = account_service.create_account(payload)
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Create account")
    return ok(account.to_dict(), message="Account created", status=201)


@accounts_bp.get("/default")
@require_auth
def default_account_route():
    account_type = request.args.get("type", "cash")
    try:
        account = get_default_account(account_type, request.args.get("method"))
        if account is None:
            raise AccountNotFoundError("No default account configured", type=account_type)
    except LedgerError as e:
        return fail(e)
    return ok(account.to_dict())


@accounts_bp.get("/<int:account_id>")
@require_auth
def get_account_route(account_id: int):
    try:
        account = get_account(account_id)
    except LedgerError as e:
        return fail(e)
    return ok(account.to_dict())


@accounts_bp.put("/<int:account_id>")
@require_auth
def update_account_route(account_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        account = account_service.update_account(account_id, payload)
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Update account")
    return ok(account.to_dict(), message="Account updated")


@accounts_bp.delete("/<int:account_id>")
@require_auth
def delete_account_route(account_id: int):
    try:
        account_service.delete_account(account_id)
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Delete account")
    return ok(message="Account deleted")
