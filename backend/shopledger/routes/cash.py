# Overview: Cash box endpoints; manual deposits and withdrawals.

from flask import Blueprint, request

from ..decorators import current_username, require_auth
from ..errors import AccountNotFoundError, LedgerError
from ..models import Transaction
from ..models.accounts import ACCOUNT_TYPE_CASH
from ..responses import fail, ok, server_error
from ..services import account_balance_service as ledger
from ..services.concurrency import run_with_retry
from ..validation import read_amount, read_int

cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash")


@cash_bp.get("")
@require_auth
def cash_summary_route():
    """Default cash account with its latest entries."""
    try:
        account = ledger.get_default_account(ACCOUNT_TYPE_CASH)
        if account is None:
            raise AccountNotFoundError("No default cash account configured")
    except LedgerError as e:
        return fail(e)

    recent = (
        Transaction.query
        .filter_by(account_id=account.id)
        .order_by(Transaction.date.desc(), Transaction.time.desc(), Transaction.id.desc())
        .limit(request.args.get("limit", default=50, type=int))
        .all()
    )
    return ok({
        "account": account.to_dict(),
        "balance": float(account.balance),
        "transactions": [t.to_dict() for t in recent],
    })


def _manual_entry(kind: str):
    data = request.get_json(silent=True) or {}
    try:
        amount = read_amount(data, "amount", required=True, positive=True)
        account_id = read_int(data, "account_id", "accountId", required=False)
        details = {
            "particulars": data.get("particulars") or ("Cash deposit" if kind == "deposit" else "Cash withdrawal"),
            "remarks": data.get("remarks"),
            "created_by": current_username(),
        }
        result = run_with_retry(
            lambda: ledger.record_manual_entry(kind, amount, account_id=account_id, details=details)
        )
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error(f"Cash {kind}")

    return ok(
        {"transaction_id": result["transaction_id"], "newBalance": float(result["new_balance"])},
        message="Deposit recorded" if kind == "deposit" else "Withdrawal recorded",
        status=201,
    )


@cash_bp.post("/deposit")
@require_auth
def deposit_route():
    return _manual_entry("deposit")


@cash_bp.post("/withdraw")
@require_auth
def withdraw_route():
    return _manual_entry("withdraw")
