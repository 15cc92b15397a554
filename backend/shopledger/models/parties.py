from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z
from .types import Money

CUSTOMER_REGULAR = "regular"
CUSTOMER_TEMPORARY = "temporary"


class Supplier(db.Model):
    """
    Counterparty for purchases.

    total_due tracks the sum of payment_due over this supplier's purchases.
    Aggregates are changed only by purchase_service via SQL increments.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    supplier_type = db.Column(db.String(32), nullable=True)

    total_purchase = db.Column(Money, nullable=False, default=0)
    total_due = db.Column(Money, nullable=False, default=0)

    last_purchase_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Product names ever supplied (set semantics, kept sorted)
    supplied_products = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    history = db.relationship(
        "SupplierHistoryEntry",
        order_by="SupplierHistoryEntry.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self, include_history: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "supplier_type": self.supplier_type,
            "total_purchase": as_float(self.total_purchase),
            "total_due": as_float(self.total_due),
            "last_purchase_date": to_utc_z(self.last_purchase_date),
            "last_payment_date": to_utc_z(self.last_payment_date),
            "supplied_products": list(self.supplied_products or []),
            "created_at": to_utc_z(self.created_at),
        }
        if include_history:
            data["supplier_history"] = [h.to_dict() for h in self.history]
        return data


class SupplierHistoryEntry(db.Model):
    """Append-only audit entry: purchase, updated_purchase or due_payment."""
    __tablename__ = "supplier_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    type = db.Column(db.String(32), nullable=False)
    purchase_id = db.Column(db.Integer, nullable=True, index=True)

    products = db.Column(db.JSON, nullable=True)
    total_amount = db.Column(Money, nullable=True)
    paid_amount = db.Column(Money, nullable=True)
    previous_due = db.Column(Money, nullable=True)
    due_after_payment = db.Column(Money, nullable=True)
    remarks = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_utc_z(self.date),
            "type": self.type,
            "purchase_id": self.purchase_id,
            "products": self.products or [],
            "total_amount": as_float(self.total_amount),
            "paid_amount": as_float(self.paid_amount),
            "previous_due": as_float(self.previous_due),
            "due_after_payment": as_float(self.due_after_payment),
            "remarks": self.remarks,
        }


class Customer(db.Model):
    """
    Counterparty for sales.

    advance holds lifetime overpayment carried forward. Customers created
    implicitly by name from a sale memo are typed "temporary".
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    customer_type = db.Column(db.String(16), nullable=False, default=CUSTOMER_REGULAR)

    total_sales = db.Column(Money, nullable=False, default=0)
    total_due = db.Column(Money, nullable=False, default=0)
    advance = db.Column(Money, nullable=False, default=0)

    last_sale_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    purchased_products = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    history = db.relationship(
        "CustomerHistoryEntry",
        order_by="CustomerHistoryEntry.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} type={self.customer_type!r}>"

    def to_dict(self, include_history: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "customer_type": self.customer_type,
            "total_sales": as_float(self.total_sales),
            "total_due": as_float(self.total_due),
            "advance": as_float(self.advance),
            "last_sale_date": to_utc_z(self.last_sale_date),
            "last_payment_date": to_utc_z(self.last_payment_date),
            "purchased_products": list(self.purchased_products or []),
            "created_at": to_utc_z(self.created_at),
        }
        if include_history:
            data["customer_history"] = [h.to_dict() for h in self.history]
        return data


class CustomerHistoryEntry(db.Model):
    """Append-only audit entry: sale, updated_sale, due_payment or advance_payment."""
    __tablename__ = "customer_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    type = db.Column(db.String(32), nullable=False)
    sale_id = db.Column(db.Integer, nullable=True, index=True)

    products = db.Column(db.JSON, nullable=True)
    total_amount = db.Column(Money, nullable=True)
    paid_amount = db.Column(Money, nullable=True)
    previous_due = db.Column(Money, nullable=True)
    due_after_payment = db.Column(Money, nullable=True)
    remarks = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_utc_z(self.date),
            "type": self.type,
            "sale_id": self.sale_id,
            "products": self.products or [],
            "total_amount": as_float(self.total_amount),
            "paid_amount": as_float(self.paid_amount),
            "previous_due": as_float(self.previous_due),
            "due_after_payment": as_float(self.due_after_payment),
            "remarks": self.remarks,
        }
