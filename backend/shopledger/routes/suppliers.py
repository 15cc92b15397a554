# Overview: Supplier endpoints.

from flask import Blueprint, request

from ..decorators import require_auth
from ..errors import LedgerError
from ..responses import fail, ok, server_error
from ..services import supplier_service

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers_route():
    suppliers = supplier_service.list_suppliers(request.args.get("search"))
    return ok([s.to_dict(include_history=False) for s in suppliers])


@suppliers_bp.post("")
@require_auth
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.create_supplier(payload)
    except LedgerError as e:
        return fail(e)
    except Exception:
        return server_error("Create supplier")
    return ok(supplier.to_dict(), message="Supplier created", status=201)


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    """Supplier with totals and full history."""
    try:
        supplier = supplier_service.get_supplier(supplier_id)
    except LedgerError as e:
        return fail(e)
    return ok(supplier.to_dict())
