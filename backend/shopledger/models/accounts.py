from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_iso_date, to_utc_z
from .types import Money

ACCOUNT_TYPE_CASH = "cash"
ACCOUNT_TYPE_BANK = "bank"
ACCOUNT_TYPE_MOBILE = "mobile"
ACCOUNT_TYPES = (ACCOUNT_TYPE_CASH, ACCOUNT_TYPE_BANK, ACCOUNT_TYPE_MOBILE)

TRANSACTION_CREDIT = "credit"
TRANSACTION_DEBIT = "debit"
TRANSACTION_TYPES = (TRANSACTION_CREDIT, TRANSACTION_DEBIT)


class Account(db.Model):
    """
    A money-holding entity: cash drawer, bank account, or mobile wallet.

    INVARIANT: balance equals the signed sum of this account's transactions
    in (date, time, id) order. Only account_balance_service writes it.

    Discriminator fields by type:
    - cash:   name
    - bank:   bank_name, account_number (routing_number, branch_name optional)
    - mobile: method, number, owner_name
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.Index("ix_accounts_type_method", "type", "method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=True)

    bank_name = db.Column(db.String(120), nullable=True)
    account_number = db.Column(db.String(64), nullable=True)
    routing_number = db.Column(db.String(64), nullable=True)
    branch_name = db.Column(db.String(120), nullable=True)

    method = db.Column(db.String(32), nullable=True)
    number = db.Column(db.String(32), nullable=True)
    owner_name = db.Column(db.String(120), nullable=True)

    balance = db.Column(Money, nullable=False, default=0)

    # At most one default per category (type, or type+method for mobile)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id} type={self.type!r} label={self.label!r}>"

    @property
    def label(self) -> str:
        if self.type == ACCOUNT_TYPE_BANK:
            return f"{self.bank_name} {self.account_number}"
        if self.type == ACCOUNT_TYPE_MOBILE:
            return f"{self.method} {self.number}"
        return self.name or "cash"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "bank_name": self.bank_name,
            "account_number": self.account_number,
            "routing_number": self.routing_number,
            "branch_name": self.branch_name,
            "method": self.method,
            "number": self.number,
            "owner_name": self.owner_name,
            "balance": as_float(self.balance),
            "is_default": self.is_default,
            "label": self.label,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Transaction(db.Model):
    """
    Ledger entry against one account.

    Append-only in normal operation. The only in-place edit is the payment
    entry tied 1:1 to an edited purchase or sale, and every edit or delete is
    followed by a recompute of the affected account's running balances.

    account_id is nullable: legacy manual entries may be account-less.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_account_order", "account_id", "date", "time", "id"),
        db.Index("ix_transactions_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    date = db.Column(db.Date, nullable=False)
    time = db.Column(db.String(8), nullable=False)  # HH:MM:SS

    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    account_type = db.Column(db.String(16), nullable=True)

    entry_source = db.Column(db.String(64), nullable=False, index=True)
    transaction_type = db.Column(db.String(8), nullable=False)
    amount = db.Column(Money, nullable=False)

    balance_before_transaction = db.Column(Money, nullable=True)
    balance_after_transaction = db.Column(Money, nullable=False, default=0)

    particulars = db.Column(db.String(255), nullable=True)
    remarks = db.Column(db.Text, nullable=True)

    # "purchase" or "sale" plus that document's id
    reference_type = db.Column(db.String(16), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    payment_details = db.Column(db.JSON, nullable=True)
    products = db.Column(db.JSON, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", backref=db.backref("transactions", lazy="dynamic"))

    @property
    def signed_amount(self):
        return self.amount if self.transaction_type == TRANSACTION_CREDIT else -self.amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_iso_date(self.date),
            "time": self.time,
            "account_id": self.account_id,
            "account_type": self.account_type,
            "entry_source": self.entry_source,
            "transaction_type": self.transaction_type,
            "amount": as_float(self.amount),
            "balance_before_transaction": as_float(self.balance_before_transaction),
            "balance_after_transaction": as_float(self.balance_after_transaction),
            "particulars": self.particulars,
            "remarks": self.remarks,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "payment_details": self.payment_details or {},
            "products": self.products or [],
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
