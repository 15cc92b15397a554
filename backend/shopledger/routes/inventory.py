# Overview: Inventory reads and non-ledger item settings.

from flask import Blueprint, request

from ..decorators import require_auth
from ..errors import LedgerError, ValidationError
from ..responses import fail, ok, server_error
from ..services import inventory_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

ITEM_SETTINGS = ("sale_price", "reorder_level", "item_name")


@inventory_bp.get("")
@require_auth
def list_inventory_route():
    """
    Query params:
    - search: str (optional) - item name contains
    - history: 0|1 (optional, default 0) - include purchase/sale history
    """
    include_history = request.args.get("history", "0") in ("1", "true")
    items = inventory_service.list_inventory(request.args.get("search"))
    return ok([item.to_dict(include_history=include_history) for item in items])


@inventory_bp.get("/<int:product_id>")
@require_auth
def get_item_route(product_id: int):
    try:
        item = inventory_service.get_item(product_id)
    except LedgerError as e:
        return fail(e)
    return ok(item.to_dict())


@inventory_bp.get("/stock/<int:product_id>")
@require_auth
def get_stock_route(product_id: int):
    try:
        stock = inventory_service.get_stock(product_id)
    except LedgerError as e:
        return fail(e)
    return ok(stock)


@inventory_bp.put("/<int:product_id>")
@require_auth
def update_item_route(product_id: int):
    """
    Edit sale_price, reorder_level or item_name.

    Stock and cost fields only change through purchases and sales.
    """
    data = request.get_json(silent=True) or {}
    try:
        unknown = sorted(k for k in data if k not in ITEM_SETTINGS)
        if unknown:
            raise ValidationError(f"Field not allowed: {unknown[0]}", field=unknown[0])
        item = inventory_service.update_item_settings(product_id, **data)
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Update inventory item")
    return ok(item.to_dict(), message="Inventory item updated")
