# Overview: Flask API routes for supplier operations; parses input and returns JSON responses.

"""
Supplier Routes

Suppliers are scoped to the caller's business; deletion is a soft delete.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_context
from ..services import supplier_service
from ..services.branch_service import resolve_business_id
from ..services.supplier_service import SupplierNotFoundError, SupplierValidationError
from ..validation import NotFoundError


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


def _owned_supplier(supplier_id: str):
    supplier = supplier_service.get_supplier(supplier_id)
    if supplier.business_id != resolve_business_id(g.ctx.user_id):
        raise SupplierNotFoundError(f"Supplier {supplier_id} not found")
    return supplier


@suppliers_bp.get("")
@require_context
def list_suppliers_route():
    """
    Query parameters:
    - include_inactive: Include inactive suppliers (default: false)
    - search: Search term for name or tax id
    """
    try:
        business_id = resolve_business_id(g.ctx.user_id)
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        suppliers = supplier_service.list_suppliers(
            business_id,
            include_inactive=include_inactive,
            search=request.args.get("search"),
        )
        return jsonify({"items": [s.to_dict() for s in suppliers], "count": len(suppliers)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@suppliers_bp.post("")
@require_context
def create_supplier_route():
    data = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.create_supplier(
            business_id=resolve_business_id(g.ctx.user_id),
            name=data.get("name"),
            tax_id=data.get("tax_id"),
            phone=data.get("phone"),
            address=data.get("address"),
        )
        return jsonify({"supplier": supplier.to_dict()}), 201
    except SupplierValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.patch("/<supplier_id>")
@require_context
def update_supplier_route(supplier_id: str):
    data = request.get_json(silent=True) or {}
    try:
        _owned_supplier(supplier_id)
        supplier = supplier_service.update_supplier(
            supplier_id=supplier_id,
            name=data.get("name"),
            tax_id=data.get("tax_id"),
            phone=data.get("phone"),
            address=data.get("address"),
        )
        return jsonify({"supplier": supplier.to_dict()}), 200
    except SupplierValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.delete("/<supplier_id>")
@require_context
def deactivate_supplier_route(supplier_id: str):
    try:
        _owned_supplier(supplier_id)
        supplier = supplier_service.deactivate_supplier(supplier_id)
        return jsonify({"supplier": supplier.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to deactivate supplier")
        return jsonify({"error": "Internal server error"}), 500
