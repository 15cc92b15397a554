# Overview: Ledger endpoints: list, manual entries, edits and recompute.

import re

from flask import Blueprint, request

from ..decorators import current_username, require_auth
from ..errors import LedgerError, ValidationError
from ..models import Transaction
from ..responses import fail, ok, server_error
from ..services import account_balance_service as ledger
from ..services.concurrency import run_with_retry
from ..validation import parse_datetime_field, read_amount, read_int

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

MANUAL_ENTRY = "manual"
_TIME_RE = re.compile(r"^\d{2}:\d{2}:\d{2}$")


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    Query params:
    - account_id: int (optional)
    - reference_type + reference_id (optional): entries of one purchase/sale
    - limit: int (optional, default 200)
    """
    query = Transaction.query
    account_id = request.args.get("account_id", type=int)
    if account_id is not None:
        query = query.filter(Transaction.account_id == account_id)
    reference_type = request.args.get("reference_type")
    reference_id = request.args.get("reference_id", type=int)
    if reference_type and reference_id is not None:
        query = query.filter_by(reference_type=reference_type, reference_id=reference_id)
    limit = min(request.args.get("limit", default=200, type=int), 1000)

    txns = (
        query.order_by(Transaction.date.desc(), Transaction.time.desc(), Transaction.id.desc())
        .limit(limit)
        .all()
    )
    return ok([t.to_dict() for t in txns])


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    """
    Manual ledger entry.

    Body: {account_id, amount, transaction_type: credit|debit, particulars?, remarks?}
    """
    data = request.get_json(silent=True) or {}
    try:
        account_id = read_int(data, "account_id", "accountId")
        amount = read_amount(data, "amount", required=True, positive=True)
        details = {
            "particulars": data.get("particulars"),
            "remarks": data.get("remarks"),
            "created_by": current_username(),
        }
        result = run_with_retry(lambda: ledger.apply_transaction(
            account_id, amount, data.get("transaction_type"), MANUAL_ENTRY, None, details,
        ))
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Create transaction")

    txn = ledger.get_transaction(result["transaction_id"])
    return ok(txn.to_dict(), message="Transaction recorded", status=201,
              newBalance=float(result["new_balance"]))


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        txn = ledger.get_transaction(transaction_id)
    except LedgerError as e:
        return fail(e)
    return ok(txn.to_dict())


def _transaction_changes(data: dict) -> dict:
    changes = {k: data[k] for k in ledger.EDITABLE_TRANSACTION_FIELDS if k in data}
    unknown = sorted(set(data) - set(ledger.EDITABLE_TRANSACTION_FIELDS))
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}", field=unknown[0])
    if "date" in changes:
        parsed = parse_datetime_field(changes["date"], "date")
        if parsed is None:
            raise ValidationError("date cannot be empty", field="date")
        changes["date"] = parsed.date()
    if "time" in changes and not _TIME_RE.match(str(changes["time"] or "")):
        raise ValidationError("time must be HH:MM:SS", field="time")
    return changes


@transactions_bp.put("/<int:transaction_id>")
@require_auth
def update_transaction_route(transaction_id: int):
    """Edit an entry; every affected account is recomputed."""
    data = request.get_json(silent=True) or {}
    try:
        txn = ledger.update_transaction(transaction_id, _transaction_changes(data))
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Update transaction")
    return ok(txn.to_dict(), message="Transaction updated")


@transactions_bp.delete("/<int:transaction_id>")
@require_auth
def delete_transaction_route(transaction_id: int):
    try:
        new_balance = ledger.delete_transaction(transaction_id)
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Delete transaction")
    return ok(
        message="Transaction deleted",
        newBalance=float(new_balance) if new_balance is not None else None,
    )


@transactions_bp.post("/recompute/<int:account_id>")
@require_auth
def recompute_route(account_id: int):
    try:
        balance = run_with_retry(lambda: ledger.recompute_account_ledger(account_id))
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Recompute ledger")
    return ok({"account_id": account_id, "balance": float(balance)}, message="Ledger recomputed")


@transactions_bp.get("/verify/<int:account_id>")
@require_auth
def verify_route(account_id: int):
    try:
        report = ledger.verify_account_ledger(account_id)
    except LedgerError as e:
        return fail(e)
    report["stored_balance"] = float(report["stored_balance"])
    report["computed_balance"] = float(report["computed_balance"])
    return ok(report)
