# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_context
from ..services import sales_service
from ..services.branch_service import resolve_branch_id, resolve_business_id
from ..services.sales_service import SaleInput, SaleNotFoundError
from ..time_utils import parse_iso_datetime
from ..validation import NotFoundError, ValidationError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

# error_kind -> HTTP status
SALE_ERROR_STATUS = {
    "validation": 400,
    "integrity": 409,
    "storage": 409,
    "unexpected": 500,
}


@sales_bp.post("/")
@require_context
def create_sale_route():
    """
    Create a completed sale and return its receipt.

    Body: {branch_id?, customer?, payment_method, items: [{product_id,
    product_presentation_id, quantity, unit_price_cents, bonification_cents?,
    presentation_units?}]}
    """
    try:
        sale_input = SaleInput.from_dict(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"success": False, "error": str(e), "error_kind": "validation"}), 400

    result = sales_service.create_sale(g.ctx, sale_input)
    if not result.success:
        return jsonify(result.to_dict()), SALE_ERROR_STATUS.get(result.error_kind, 500)
    return jsonify(result.to_dict()), 201


@sales_bp.get("/<sale_id>")
@require_context
def get_sale_route(sale_id: str):
    """Get sale with items and its receipt."""
    try:
        sale = sales_service.get_sale(sale_id)
        business_id = resolve_business_id(g.ctx.user_id)
        if sale.branch is None or sale.branch.business_id != business_id:
            raise SaleNotFoundError(f"Sale {sale_id} not found")
        return jsonify({
            "sale": sale.to_dict(include_items=True),
            "receipt": sales_service.build_receipt(sale),
        }), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@require_context
def list_sales_route():
    """
    List sales of a branch.

    Query params: branch_id (defaults to the context branch), date_from, date_to (ISO-8601).
    """
    try:
        try:
            date_from = parse_iso_datetime(request.args.get("date_from"))
            date_to = parse_iso_datetime(request.args.get("date_to"))
        except ValueError:
            return jsonify({"error": "date_from/date_to must be ISO-8601"}), 400

        business_id = resolve_business_id(g.ctx.user_id)
        branch_id = resolve_branch_id(business_id, request.args.get("branch_id") or g.ctx.branch_id)
        sales = sales_service.list_branch_sales(branch_id, date_from, date_to)
        return jsonify({
            "branch_id": branch_id,
            "items": [s.to_dict() for s in sales],
            "count": len(sales),
        }), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500
