from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z
from .types import Money, UnitCost


class Purchase(db.Model):
    """
    Supplier invoice.

    INVARIANT: payment_due == total_amount - paid_amount after every write.

    The paying account is either payment_account_id or, for legacy callers,
    the payment_type string (cash, bank, or a mobile wallet method). Both are
    kept so an edit can resolve the account the original payment went to.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_supplier_date", "supplier_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    total_amount = db.Column(Money, nullable=False)
    paid_amount = db.Column(Money, nullable=False, default=0)
    payment_due = db.Column(Money, nullable=False, default=0)

    payment_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)
    payment_type = db.Column(db.String(32), nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False)
    last_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)

    # Optimistic locking: concurrent edits of one invoice raise StaleDataError
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy="dynamic"))
    lines = db.relationship(
        "PurchaseLine",
        order_by="PurchaseLine.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Purchase id={self.id} total={self.total_amount} due={self.payment_due}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplierId": self.supplier_id,
            "products": [line.to_dict() for line in self.lines],
            "totalAmount": as_float(self.total_amount),
            "paidAmount": as_float(self.paid_amount),
            "payment_due": as_float(self.payment_due),
            "paymentAccountId": self.payment_account_id,
            "paymentType": self.payment_type,
            "date": to_utc_z(self.date),
            "last_payment_date": to_utc_z(self.last_payment_date),
            "created_by": self.created_by,
            "version_id": self.version_id,
        }


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    qty = db.Column(db.Integer, nullable=False)
    purchase_price = db.Column(UnitCost, nullable=False)
    subtotal = db.Column(Money, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "qty": self.qty,
            "purchase_price": as_float(self.purchase_price),
            "subtotal": as_float(self.subtotal),
        }
