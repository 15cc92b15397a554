from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z
from .types import Money


class Sale(db.Model):
    """
    Customer sale memo.

    due = max(total - paid_amount, 0); any overpayment is kept in advance.
    payment_history records every later due collection against this memo.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_customer_date", "customer_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    memo_no = db.Column(db.String(64), nullable=True, index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    total = db.Column(Money, nullable=False)
    paid_amount = db.Column(Money, nullable=False, default=0)
    due = db.Column(Money, nullable=False, default=0)
    advance = db.Column(Money, nullable=False, default=0)

    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    last_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("sales", lazy="dynamic"))
    lines = db.relationship(
        "SaleLine",
        order_by="SaleLine.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    payments = db.relationship(
        "SalePayment",
        order_by="SalePayment.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} memo_no={self.memo_no!r} total={self.total} due={self.due}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "memoNo": self.memo_no,
            "date": to_utc_z(self.date),
            "customer_id": self.customer_id,
            "customerName": self.customer_name,
            "products": [line.to_dict() for line in self.lines],
            "total": as_float(self.total),
            "paidAmount": as_float(self.paid_amount),
            "due": as_float(self.due),
            "advance": as_float(self.advance),
            "account_id": self.account_id,
            "payment_method": self.payment_method,
            "payment_history": [p.to_dict() for p in self.payments],
            "last_payment_date": to_utc_z(self.last_payment_date),
            "created_by": self.created_by,
            "version_id": self.version_id,
        }


class SaleLine(db.Model):
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    qty = db.Column(db.Integer, nullable=False)
    sale_price = db.Column(Money, nullable=False)
    subtotal = db.Column(Money, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "qty": self.qty,
            "sale_price": as_float(self.sale_price),
            "subtotal": as_float(self.subtotal),
        }


class SalePayment(db.Model):
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    amount = db.Column(Money, nullable=False)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    due_after_payment = db.Column(Money, nullable=False)
    remarks = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "date": to_utc_z(self.date),
            "amount": as_float(self.amount),
            "account_id": self.account_id,
            "due_after_payment": as_float(self.due_after_payment),
            "remarks": self.remarks,
        }
