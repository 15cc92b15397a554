# backend/shopledger/services/products_service.py
"""
Product catalogue.

Thin on purpose: purchases and sales only need every line item to resolve
to a catalogue product. Stock and cost live in inventory_service.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import InvalidProductError, ProductNotFoundError, ValidationError
from ..extensions import db
from ..models import Product
from ..validation import ModelValidationPolicy, validate_payload

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "sale_price", "is_active"},
    required_on_create={"name"},
)


def list_products(search: str | None = None, include_inactive: bool = False) -> list[Product]:
    query = Product.query
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.name.ilike(term), Product.sku.ilike(term)))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFoundError("Product not found", product_id=product_id)
    return product


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    if not patch.get("sku"):
        patch["sku"] = None
    product = Product(**patch)
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("SKU already exists", sku=patch.get("sku"))
    return product


def resolve_line_products(lines: list[dict]) -> dict[int, Product]:
    """
    Map every line's product_id to its Product, filling missing line names.

    Raises InvalidProductError for the first id that does not resolve.
    """
    ids = {line["product_id"] for line in lines}
    products = {p.id: p for p in Product.query.filter(Product.id.in_(ids)).all()}
    for line in lines:
        product = products.get(line["product_id"])
        if product is None:
            raise InvalidProductError("Product not found", product_id=line["product_id"])
        if not line.get("name"):
            line["name"] = product.name
    return products
