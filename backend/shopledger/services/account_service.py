# Overview: Payment account records (cash, bank, mobile wallet) and default selection.

from __future__ import annotations

import logging

from ..errors import AccountInUseError, ValidationError
from ..extensions import db
from ..models import Account, Transaction
from ..models.accounts import ACCOUNT_TYPE_MOBILE, ACCOUNT_TYPES
from ..validation import ModelValidationPolicy, enforce_rules_account, validate_payload
from .account_balance_service import get_account

logger = logging.getLogger(__name__)

ACCOUNT_POLICY = ModelValidationPolicy(
    writable_fields={
        "type", "name",
        "bank_name", "account_number", "routing_number", "branch_name",
        "method", "number", "owner_name",
        "is_default",
    },
    required_on_create={"type"},
)


def _category_query(account_type: str, method: str | None):
    query = Account.query.filter_by(type=account_type)
    if account_type == ACCOUNT_TYPE_MOBILE:
        query = query.filter_by(method=method)
    return query


def _clear_other_defaults(account: Account) -> None:
    for other in _category_query(account.type, account.method).filter(
        Account.id != account.id, Account.is_default.is_(True)
    ):
        other.is_default = False


def list_accounts(account_type: str | None = None) -> list[Account]:
    query = Account.query
    if account_type:
        if account_type not in ACCOUNT_TYPES:
            raise ValidationError("Invalid account type", type=account_type)
        query = query.filter_by(type=account_type)
    return query.order_by(Account.type.asc(), Account.id.asc()).all()


def create_account(payload: dict) -> Account:
    """
    Create an account. The opening balance is always 0; money enters only
    through ledger transactions. The first account of a category becomes
    its default.
    """
    if isinstance(payload, dict) and "balance" in payload:
        raise ValidationError("balance is not writable; record a deposit instead")
    patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=False)
    enforce_rules_account(patch, patch["type"])

    account = Account(**patch)
    account.balance = 0
    if not _category_query(account.type, account.method).first():
        account.is_default = True

    db.session.add(account)
    db.session.flush()
    if account.is_default:
        _clear_other_defaults(account)
    db.session.commit()

    logger.info("Created %s account %s (%s)", account.type, account.id, account.label)
    return account


def update_account(account_id: int, payload: dict) -> Account:
    if isinstance(payload, dict) and "balance" in payload:
        raise ValidationError("balance is not writable")
    account = get_account(account_id)
    patch = validate_payload(model=Account, payload=payload, policy=ACCOUNT_POLICY, partial=True)
    if "type" in patch and patch["type"] != account.type:
        raise ValidationError("account type cannot be changed", account_id=account_id)

    for key, value in patch.items():
        setattr(account, key, value)

    merged = {key: getattr(account, key) for key in ACCOUNT_POLICY.writable_fields}
    enforce_rules_account(merged, account.type)
    account.method = merged.get("method")

    if account.is_default:
        _clear_other_defaults(account)
    db.session.commit()
    return account


def delete_account(account_id: int) -> None:
    """Refused for a default account or one with ledger history."""
    account = get_account(account_id)
    if account.is_default:
        raise AccountInUseError("Cannot delete the default account", account_id=account_id)
    if db.session.query(Transaction.id).filter_by(account_id=account_id).first():
        raise AccountInUseError("Cannot delete an account that has transactions", account_id=account_id)
    db.session.delete(account)
    db.session.commit()
    logger.info("Deleted account %s", account_id)
