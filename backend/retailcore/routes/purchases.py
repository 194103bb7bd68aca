# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_context
from ..services import purchase_service
from ..services.branch_service import resolve_business_id
from ..services.purchase_service import PurchaseInput
from ..validation import NotFoundError, ValidationError


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")

# error_kind -> HTTP status
PURCHASE_ERROR_STATUS = {
    "validation": 400,
    "integrity": 404,
    "state": 409,
    "storage": 409,
    "verification": 500,
    "unexpected": 500,
}


def _respond(result, success_status: int = 200):
    if not result.success:
        return jsonify(result.to_dict()), PURCHASE_ERROR_STATUS.get(result.error_kind, 500)
    return jsonify(result.to_dict()), success_status


@purchases_bp.post("/")
@require_context
def create_purchase_route():
    """
    Create a purchase order.

    Body: {status?, type?, supplier_id? | supplier_name? (+ supplier_tax_id?),
    branch_id?, business_id?, notes?, expected_delivery_at?,
    items: [{product_name, quantity, unit_cost_cents, price_cents, brand?,
    barcode?, expiration?}]}
    """
    try:
        purchase_input = PurchaseInput.from_dict(request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"success": False, "error": str(e), "error_kind": "validation"}), 400
    return _respond(purchase_service.create_purchase(g.ctx, purchase_input), 201)


@purchases_bp.get("/")
@require_context
def list_purchases_route():
    """Query params: branch_id, status."""
    try:
        business_id = resolve_business_id(g.ctx.user_id)
        purchases = purchase_service.list_purchases(
            business_id,
            branch_id=request.args.get("branch_id"),
            status=request.args.get("status"),
        )
        return jsonify({"items": [p.to_dict() for p in purchases], "count": len(purchases)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list purchases")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<purchase_id>")
@require_context
def get_purchase_route(purchase_id: str):
    try:
        purchase = purchase_service.get_purchase(purchase_id)
        if purchase.business_id != resolve_business_id(g.ctx.user_id):
            return jsonify({"error": "Purchase not found"}), 404
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<purchase_id>/approve")
@require_context
def approve_purchase_route(purchase_id: str):
    return _respond(purchase_service.approve_purchase(g.ctx, purchase_id))


@purchases_bp.post("/<purchase_id>/receive")
@require_context
def receive_purchase_route(purchase_id: str):
    return _respond(purchase_service.receive_purchase(g.ctx, purchase_id))


@purchases_bp.post("/<purchase_id>/cancel")
@require_context
def cancel_purchase_route(purchase_id: str):
    """Optional body: {reason}. The reason replaces the purchase notes."""
    data = request.get_json(silent=True) or {}
    reason = data.get("reason") if isinstance(data, dict) else None
    return _respond(purchase_service.cancel_purchase(g.ctx, purchase_id, reason=reason))
