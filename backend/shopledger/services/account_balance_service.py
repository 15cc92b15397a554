# Overview: Single authority for account balances and the transaction ledger.

"""
Account balance service.

DESIGN PRINCIPLES:
- Account.balance is mutated ONLY here (guarded SQL increment or recompute)
- Every balance change appends a Transaction with balance_after_transaction
- Running balances are derivable: recompute_account_ledger() rebuilds them
  from the (date, time, id) ordered history, seeded at 0

Functions take commit=True for standalone use; workflows pass commit=False
and let workflow_scope decide between flush and commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import NamedTuple, Optional, Union

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import (
    AccountNotFoundError,
    AmbiguousAccountError,
    InsufficientBalanceError,
    InvalidAmountError,
    TransactionLogError,
    TransactionNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Account, Transaction
from ..models.accounts import (
    ACCOUNT_TYPE_BANK,
    ACCOUNT_TYPE_CASH,
    ACCOUNT_TYPE_MOBILE,
    ACCOUNT_TYPES,
    TRANSACTION_CREDIT,
    TRANSACTION_DEBIT,
    TRANSACTION_TYPES,
)
from ..money import MAX_AMOUNT, ZERO, to_money
from ..time_utils import ledger_stamp
from .concurrency import atomic_increment, lock_for_update

logger = logging.getLogger(__name__)


class Reference(NamedTuple):
    """The purchase or sale a transaction belongs to."""
    kind: str
    id: int


def purchase_ref(purchase_id: int) -> Reference:
    return Reference("purchase", purchase_id)


def sale_ref(sale_id: int) -> Reference:
    return Reference("sale", sale_id)


# =============================================================================
# ACCOUNT REFERENCES
# =============================================================================

@dataclass(frozen=True)
class ByAccountId:
    account_id: int


@dataclass(frozen=True)
class ByLegacyType:
    """Legacy payment-type string: "cash", "bank", "mobile" or a wallet method."""
    payment_type: str
    method: Optional[str] = None


AccountRef = Union[ByAccountId, ByLegacyType]


def account_ref_from(account_id=None, payment_type: str | None = None) -> Optional[AccountRef]:
    """Build an AccountRef from request fields; an explicit id wins."""
    if account_id not in (None, ""):
        try:
            return ByAccountId(int(account_id))
        except (TypeError, ValueError):
            raise ValidationError("account id must be an integer", account_id=account_id)
    if payment_type:
        return ByLegacyType(str(payment_type).strip().lower())
    return None


def resolve_account(ref: Optional[AccountRef]) -> Optional[Account]:
    """
    Resolve an AccountRef to an Account, or None when nothing matches.

    Legacy strings: cash/bank match by type, mobile matches every wallet,
    anything else is a wallet method. Several matches resolve to the single
    is_default one; otherwise AmbiguousAccountError.
    """
    if ref is None:
        return None
    if isinstance(ref, ByAccountId):
        return db.session.get(Account, ref.account_id)

    kind = ref.payment_type
    if kind in (ACCOUNT_TYPE_CASH, ACCOUNT_TYPE_BANK):
        query = Account.query.filter_by(type=kind)
    elif kind == ACCOUNT_TYPE_MOBILE:
        query = Account.query.filter_by(type=ACCOUNT_TYPE_MOBILE)
        if ref.method:
            query = query.filter_by(method=ref.method)
    else:
        query = Account.query.filter_by(type=ACCOUNT_TYPE_MOBILE, method=ref.method or kind)

    matches = query.order_by(Account.id.asc()).all()
    if not matches:
        return None
    if len(matches) == 1:
        return matches[0]

    defaults = [a for a in matches if a.is_default]
    if len(defaults) == 1:
        return defaults[0]
    raise AmbiguousAccountError(
        f"Payment type '{kind}' matches {len(matches)} accounts; pass an account id",
        payment_type=kind,
        candidates=",".join(str(a.id) for a in matches),
    )


def get_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if not account:
        raise AccountNotFoundError("Account not found", account_id=account_id)
    return account


def get_default_account(account_type: str, method: str | None = None) -> Optional[Account]:
    """Explicitly flagged default for a category. Never "the first row"."""
    if account_type not in ACCOUNT_TYPES:
        raise ValidationError("Invalid account type", type=account_type)
    query = Account.query.filter_by(type=account_type, is_default=True)
    if account_type == ACCOUNT_TYPE_MOBILE and method:
        query = query.filter_by(method=method)
    return query.order_by(Account.id.asc()).first()


# =============================================================================
# BALANCE MUTATION
# =============================================================================

def _positive_amount(amount) -> Decimal:
    try:
        value = to_money(amount)
    except ValueError:
        raise InvalidAmountError("Amount must be a number", amount=amount)
    if value <= ZERO:
        raise InvalidAmountError("Amount must be greater than zero", amount=value)
    if value > MAX_AMOUNT:
        raise InvalidAmountError("Amount is too large", amount=value)
    return value


def _negative_allowed(override: Optional[bool]) -> bool:
    if override is not None:
        return override
    return bool(current_app.config.get("ALLOW_NEGATIVE_BALANCE", False))


def _new_transaction(account: Optional[Account], amount: Decimal, transaction_type: str,
                     entry_source: str, reference: Optional[Reference], details: Optional[dict]) -> Transaction:
    details = details or {}
    txn_date, txn_time = ledger_stamp(details.get("at"))
    return Transaction(
        date=txn_date,
        time=txn_time,
        account_id=account.id if account else None,
        account_type=account.type if account else None,
        entry_source=entry_source,
        transaction_type=transaction_type,
        amount=amount,
        particulars=details.get("particulars"),
        remarks=details.get("remarks"),
        reference_type=reference.kind if reference else None,
        reference_id=reference.id if reference else None,
        payment_details=details.get("payment_details") or {},
        products=details.get("products") or [],
        created_by=details.get("created_by"),
    )


def apply_transaction(
    account_id: int,
    amount,
    transaction_type: str,
    entry_source: str,
    reference: Optional[Reference] = None,
    details: Optional[dict] = None,
    *,
    allow_negative: Optional[bool] = None,
    commit: bool = True,
) -> dict:
    """
    Credit or debit one account and append the matching ledger entry.

    The balance write is a guarded SQL increment; a debit that would take the
    balance below zero matches no row and raises InsufficientBalanceError
    unless negative balances are allowed (config or allow_negative=True).

    Raises:
        InvalidAmountError: amount <= 0
        AccountNotFoundError: unknown account
        InsufficientBalanceError: debit refused
        TransactionLogError: balance written, ledger entry insert failed
    """
    amount = _positive_amount(amount)
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError("transaction_type must be credit or debit", transaction_type=transaction_type)

    account = get_account(account_id)
    delta = amount if transaction_type == TRANSACTION_CREDIT else -amount

    if not atomic_increment(Account.balance, account.id, delta, allow_negative=_negative_allowed(allow_negative)):
        raise InsufficientBalanceError(
            "Insufficient balance",
            account_id=account.id,
            attempted_amount=amount,
            available_balance=account.balance,
        )

    new_balance = account.balance
    try:
        txn = _new_transaction(account, amount, transaction_type, entry_source, reference, details)
        txn.balance_before_transaction = new_balance - delta
        txn.balance_after_transaction = new_balance
        db.session.add(txn)
        db.session.flush()
    except SQLAlchemyError as exc:
        if commit:
            db.session.rollback()
        raise TransactionLogError(
            "Balance updated but the ledger entry could not be written",
            account_id=account.id,
            amount=amount,
            entry_source=entry_source,
        ) from exc

    if commit:
        db.session.commit()

    logger.info(
        "%s %s on account %s (%s): balance %s",
        transaction_type, amount, account.id, entry_source, new_balance,
    )
    return {"new_balance": new_balance, "transaction_id": txn.id}


def recompute_account_ledger(account_id: int, *, commit: bool = True) -> Decimal:
    """
    Rebuild every running balance of an account from its ordered history.

    Folds credits (+) and debits (-) from 0 over transactions ordered by
    (date, time, id), rewrites balance_after_transaction on each, and sets
    the account balance to the final total. Idempotent.
    """
    account = lock_for_update(Account.query.filter_by(id=account_id)).first()
    if not account:
        raise AccountNotFoundError("Account not found", account_id=account_id)

    txns = (
        Transaction.query
        .filter_by(account_id=account_id)
        .order_by(Transaction.date.asc(), Transaction.time.asc(), Transaction.id.asc())
        .all()
    )

    running = ZERO
    for txn in txns:
        txn.balance_before_transaction = running
        running = to_money(running + txn.signed_amount)
        txn.balance_after_transaction = running

    account.balance = running
    db.session.flush()
    if commit:
        db.session.commit()

    logger.debug("Recomputed ledger for account %s over %d entries: %s", account_id, len(txns), running)
    return running


def adjust_by_delta(
    account_id: int,
    signed_delta,
    entry_source: str,
    reference: Optional[Reference] = None,
    details: Optional[dict] = None,
    *,
    commit: bool = True,
) -> dict:
    """
    Apply an edit's change in paid amount to an account.

    delta > 0 debits |delta|, delta < 0 credits |delta|, 0 is a no-op that
    creates no transaction. Followed by a full ledger recompute.
    """
    try:
        delta = to_money(signed_delta)
    except ValueError:
        raise InvalidAmountError("Adjustment must be a number", amount=signed_delta)

    if delta == ZERO:
        return {"new_balance": get_account(account_id).balance, "transaction_id": None}

    transaction_type = TRANSACTION_DEBIT if delta > ZERO else TRANSACTION_CREDIT
    result = apply_transaction(
        account_id, abs(delta), transaction_type, entry_source, reference, details, commit=False,
    )
    result["new_balance"] = recompute_account_ledger(account_id, commit=False)
    if commit:
        db.session.commit()
    return result


# =============================================================================
# REFERENCE TRANSACTIONS (1:1 with a purchase or sale)
# =============================================================================

def find_reference_transaction(reference: Reference, entry_sources) -> Optional[Transaction]:
    return (
        Transaction.query
        .filter(
            Transaction.reference_type == reference.kind,
            Transaction.reference_id == reference.id,
            Transaction.entry_source.in_(list(entry_sources)),
        )
        .order_by(Transaction.id.asc())
        .first()
    )


def reference_net_by_account(reference: Reference) -> dict[int, Decimal]:
    """
    Net effect of a purchase's or sale's entries on each account
    (credits positive, debits negative). Accounts that net to zero are left out.
    """
    txns = (
        Transaction.query
        .filter_by(reference_type=reference.kind, reference_id=reference.id)
        .order_by(Transaction.id.asc())
        .all()
    )
    totals: dict[int, Decimal] = {}
    for txn in txns:
        totals[txn.account_id] = totals.get(txn.account_id, ZERO) + txn.signed_amount
    return {account_id: net for account_id, net in totals.items() if net != ZERO}


def upsert_reference_transaction(
    reference: Reference,
    entry_sources,
    account_id: int,
    transaction_type: str,
    amount,
    *,
    entry_source: str,
    details: Optional[dict] = None,
    commit: bool = True,
) -> dict:
    """
    Rewrite (or insert) the payment entry tied to a purchase/sale in place.

    This is the only sanctioned in-place edit of a ledger entry. The old and
    new accounts are both recomputed afterwards.
    """
    amount = _positive_amount(amount)
    account = get_account(account_id)

    txn = find_reference_transaction(reference, entry_sources)
    old_account_id = txn.account_id if txn else None
    details = details or {}

    if txn:
        txn_date, txn_time = ledger_stamp(details.get("at"))
        txn.account_id = account.id
        txn.account_type = account.type
        txn.transaction_type = transaction_type
        txn.amount = amount
        txn.date = txn_date
        txn.time = txn_time
        if "particulars" in details:
            txn.particulars = details["particulars"]
        if "products" in details:
            txn.products = details["products"]
    else:
        txn = _new_transaction(account, amount, transaction_type, entry_source, reference, details)
        db.session.add(txn)
    db.session.flush()

    new_balance = recompute_account_ledger(account.id, commit=False)
    if new_balance < ZERO and not _negative_allowed(None):
        if commit:
            db.session.rollback()
        raise InsufficientBalanceError(
            "Insufficient balance",
            account_id=account.id,
            attempted_amount=amount,
            resulting_balance=new_balance,
        )
    if old_account_id and old_account_id != account.id:
        recompute_account_ledger(old_account_id, commit=False)

    if commit:
        db.session.commit()
    return {"new_balance": new_balance, "transaction_id": txn.id}


def delete_reference_transactions(reference: Reference, *, commit: bool = True) -> dict[int, Decimal]:
    """
    Delete every ledger entry of a purchase/sale and recompute each account
    that lost entries. Returns {account_id: new_balance}.
    """
    txns = Transaction.query.filter_by(reference_type=reference.kind, reference_id=reference.id).all()
    account_ids = sorted({t.account_id for t in txns if t.account_id is not None})
    for txn in txns:
        db.session.delete(txn)
    db.session.flush()

    balances = {account_id: recompute_account_ledger(account_id, commit=False) for account_id in account_ids}
    if commit:
        db.session.commit()
    logger.info("Deleted %d ledger entries for %s %s", len(txns), reference.kind, reference.id)
    return balances


_SNAPSHOT_COLUMNS = (
    "date", "time", "account_id", "account_type", "entry_source", "transaction_type", "amount",
    "particulars", "remarks", "reference_type", "reference_id", "payment_details", "products",
    "created_by",
)


def snapshot_reference_transactions(reference: Reference) -> list[dict]:
    """Column values of a reference's entries, enough to restore them."""
    txns = Transaction.query.filter_by(reference_type=reference.kind, reference_id=reference.id).all()
    return [{column: getattr(t, column) for column in _SNAPSHOT_COLUMNS} for t in txns]


def restore_transactions(snapshots: list[dict], *, commit: bool = True) -> None:
    """Re-insert deleted entries (compensation for a delete) and recompute."""
    for row in snapshots:
        db.session.add(Transaction(**row))
    db.session.flush()
    for account_id in sorted({row["account_id"] for row in snapshots if row["account_id"] is not None}):
        recompute_account_ledger(account_id, commit=False)
    if commit:
        db.session.commit()


# =============================================================================
# MANUAL LEDGER
# =============================================================================

def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if not txn:
        raise TransactionNotFoundError("Transaction not found", transaction_id=transaction_id)
    return txn


EDITABLE_TRANSACTION_FIELDS = ("amount", "transaction_type", "date", "time", "particulars", "remarks", "account_id")


def update_transaction(transaction_id: int, changes: dict, *, commit: bool = True) -> Transaction:
    """Edit a ledger entry, then recompute the account(s) it touches."""
    txn = get_transaction(transaction_id)
    old_account_id = txn.account_id

    if "amount" in changes:
        txn.amount = _positive_amount(changes["amount"])
    if "transaction_type" in changes:
        if changes["transaction_type"] not in TRANSACTION_TYPES:
            raise ValidationError("transaction_type must be credit or debit")
        txn.transaction_type = changes["transaction_type"]
    if "account_id" in changes and changes["account_id"] != old_account_id:
        account = get_account(changes["account_id"])
        txn.account_id = account.id
        txn.account_type = account.type
    if "date" in changes:
        txn.date = changes["date"]
    if "time" in changes:
        txn.time = changes["time"]
    for field in ("particulars", "remarks"):
        if field in changes:
            setattr(txn, field, changes[field])
    db.session.flush()

    for account_id in {old_account_id, txn.account_id}:
        if account_id is not None:
            recompute_account_ledger(account_id, commit=False)

    if commit:
        db.session.commit()
    return txn


def delete_transaction(transaction_id: int, *, commit: bool = True) -> Optional[Decimal]:
    """Delete a ledger entry; returns the recomputed balance of its account."""
    txn = get_transaction(transaction_id)
    account_id = txn.account_id
    db.session.delete(txn)
    db.session.flush()

    new_balance = recompute_account_ledger(account_id, commit=False) if account_id is not None else None
    if commit:
        db.session.commit()
    return new_balance


MANUAL_DEPOSIT = "manual_deposit"
MANUAL_WITHDRAWAL = "manual_withdrawal"


def record_manual_entry(kind: str, amount, *, account_id: int | None = None,
                        details: Optional[dict] = None, commit: bool = True) -> dict:
    """
    Manual cash deposit / withdrawal.

    Goes to account_id when given, otherwise to the default cash account.
    """
    if kind not in ("deposit", "withdraw"):
        raise ValidationError("kind must be deposit or withdraw", kind=kind)

    if account_id is not None:
        account = get_account(account_id)
    else:
        account = get_default_account(ACCOUNT_TYPE_CASH)
        if not account:
            raise AccountNotFoundError("No default cash account configured")

    if kind == "deposit":
        return apply_transaction(account.id, amount, TRANSACTION_CREDIT, MANUAL_DEPOSIT, None, details, commit=commit)
    return apply_transaction(account.id, amount, TRANSACTION_DEBIT, MANUAL_WITHDRAWAL, None, details, commit=commit)


# =============================================================================
# VERIFICATION
# =============================================================================

def verify_account_ledger(account_id: int) -> dict:
    """
    Read-only drift check: stored running balances and account balance vs.
    a fresh fold over the ordered history.
    """
    account = get_account(account_id)
    txns = (
        Transaction.query
        .filter_by(account_id=account_id)
        .order_by(Transaction.date.asc(), Transaction.time.asc(), Transaction.id.asc())
        .all()
    )

    running = ZERO
    drifted = []
    for txn in txns:
        running = to_money(running + txn.signed_amount)
        if txn.balance_after_transaction != running:
            drifted.append(txn.id)

    return {
        "account_id": account.id,
        "stored_balance": account.balance,
        "computed_balance": running,
        "drifted_transaction_ids": drifted,
        "ok": not drifted and account.balance == running,
    }
