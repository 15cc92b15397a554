from __future__ import annotations

from ..extensions import db
from ..money import as_float
from ..time_utils import to_utc_z
from .types import Money, UnitCost


class Product(db.Model):
    """
    Catalogue entry. Line items on purchases and sales must reference one.

    Authoritative stock and cost live on InventoryItem, not here.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    sale_price = db.Column(Money, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "sale_price": as_float(self.sale_price),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryItem(db.Model):
    """
    Per-product stock state.

    INVARIANTS:
    - average_purchase_price is the qty-weighted mean of purchase_history
    - stock_qty = sum(purchase_history.qty) - sum(sale_history.qty)
    Created lazily on the first receive of a product. Only inventory_service
    mutates stock_qty and the cost fields.
    """
    __tablename__ = "inventory"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True, index=True)
    item_name = db.Column(db.String(255), nullable=False)

    stock_qty = db.Column(db.Integer, nullable=False, default=0)

    sale_price = db.Column(Money, nullable=True)
    last_purchase_price = db.Column(UnitCost, nullable=False, default=0)
    average_purchase_price = db.Column(UnitCost, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product", backref=db.backref("inventory_item", uselist=False))
    purchase_history = db.relationship(
        "InventoryPurchaseRecord",
        order_by="InventoryPurchaseRecord.id",
        cascade="all, delete-orphan",
        lazy=True,
    )
    sale_history = db.relationship(
        "InventorySaleRecord",
        order_by="InventorySaleRecord.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<InventoryItem product_id={self.product_id} stock_qty={self.stock_qty}>"

    def to_dict(self, include_history: bool = True) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "item_name": self.item_name,
            "stock_qty": self.stock_qty,
            "sale_price": as_float(self.sale_price),
            "last_purchase_price": as_float(self.last_purchase_price),
            "average_purchase_price": as_float(self.average_purchase_price),
            "reorder_level": self.reorder_level,
            "last_updated": to_utc_z(self.last_updated),
        }
        if include_history:
            data["purchase_history"] = [r.to_dict() for r in self.purchase_history]
            data["sale_history"] = [r.to_dict() for r in self.sale_history]
        return data


class InventoryPurchaseRecord(db.Model):
    __tablename__ = "inventory_purchase_history"
    __table_args__ = (
        db.Index("ix_inventory_purchase_history_item_invoice", "item_id", "invoice_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, nullable=True)
    qty = db.Column(db.Integer, nullable=False)
    purchase_price = db.Column(UnitCost, nullable=False)
    subtotal = db.Column(Money, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "invoice_id": self.invoice_id,
            "qty": self.qty,
            "purchase_price": as_float(self.purchase_price),
            "subtotal": as_float(self.subtotal),
            "date": to_utc_z(self.date),
        }


class InventorySaleRecord(db.Model):
    __tablename__ = "inventory_sale_history"
    __table_args__ = (
        db.Index("ix_inventory_sale_history_item_memo", "item_id", "memo_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=False, index=True)
    memo_id = db.Column(db.Integer, nullable=True)
    qty = db.Column(db.Integer, nullable=False)
    price = db.Column(Money, nullable=False)
    subtotal = db.Column(Money, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "memo_id": self.memo_id,
            "qty": self.qty,
            "price": as_float(self.price),
            "subtotal": as_float(self.subtotal),
            "date": to_utc_z(self.date),
        }
