# Overview: Product catalogue endpoints.

from flask import Blueprint, request

from ..decorators import require_auth
from ..errors import LedgerError
from ..responses import fail, ok, server_error
from ..services import products_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - search: str (optional) - name or sku contains
    - include_inactive: 0|1 (optional)
    """
    products = products_service.list_products(
        search=request.args.get("search"),
        include_inactive=request.args.get("include_inactive", "0") in ("1", "true"),
    )
    return ok([p.to_dict() for p in products])


@products_bp.post("")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.create_product(payload)
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Create product")
    return ok(product.to_dict(), message="Product created", status=201)


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except LedgerError as e:
        return fail(e)
    return ok(product.to_dict())
