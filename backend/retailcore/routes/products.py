# Overview: Flask API routes for catalog maintenance; parses input and returns JSON responses.

"""
Product management routes.

All routes act inside the caller's business: a product of another business
is reported as not found.
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_context
from ..services import catalog_service
from ..services.branch_service import resolve_branch_id, resolve_business_id
from ..services.catalog_service import ProductNotFoundError
from ..validation import ConflictError, IntegrityViolation, NotFoundError, ValidationError

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _owned_product(product_id: str):
    product = catalog_service.get_product(product_id)
    branch = product.branch
    if branch is None or branch.business_id != resolve_business_id(g.ctx.user_id):
        raise ProductNotFoundError("Product not found")
    return product


def _error_response(e: Exception):
    if isinstance(e, ValidationError):
        return {"error": str(e)}, 400
    if isinstance(e, NotFoundError):
        return {"error": str(e)}, 404
    if isinstance(e, (ConflictError, IntegrityViolation)):
        return {"error": str(e)}, 409
    current_app.logger.exception("Product operation failed")
    return {"error": "Internal server error"}, 500


@products_bp.get("")
@require_context
def list_products():
    """
    List active products of a branch with their active presentations.

    Query params:
    - branch_id: str (optional) - defaults to the context branch / first branch
    - search: str (optional) - name, barcode or sku
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        business_id = resolve_business_id(g.ctx.user_id)
        branch_id = resolve_branch_id(business_id, request.args.get("branch_id") or g.ctx.branch_id)
        return catalog_service.list_catalog(
            branch_id,
            search=request.args.get("search"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except Exception as e:
        return _error_response(e)


@products_bp.post("")
@require_context
def create_product():
    """Create a product with its "unidad" presentation (and optional extra presentations)."""
    try:
        data = request.get_json(silent=True) or {}
        branch_id = data.pop("branch_id", None) if isinstance(data, dict) else None
        product = catalog_service.create_product(g.ctx, branch_id, data)
        return {"product": product.to_dict(include_presentations=True)}, 201
    except Exception as e:
        return _error_response(e)


@products_bp.get("/<product_id>")
@require_context
def get_product(product_id: str):
    try:
        product = _owned_product(product_id)
        return {"product": product.to_dict(include_presentations=True)}
    except Exception as e:
        return _error_response(e)


@products_bp.patch("/<product_id>")
@require_context
def update_product(product_id: str):
    try:
        _owned_product(product_id)
        product = catalog_service.update_product(product_id, request.get_json(silent=True) or {})
        return {"product": product.to_dict(include_presentations=True)}
    except Exception as e:
        return _error_response(e)


@products_bp.delete("/<product_id>")
@require_context
def delete_product(product_id: str):
    """Soft delete: the product and its presentations are deactivated."""
    try:
        _owned_product(product_id)
        product = catalog_service.deactivate_product(product_id)
        return {"product": product.to_dict()}
    except Exception as e:
        return _error_response(e)


@products_bp.get("/<product_id>/presentations")
@require_context
def list_presentations(product_id: str):
    """Additional presentations (never includes "unidad"). Query param: include_inactive."""
    try:
        _owned_product(product_id)
        include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
        items = catalog_service.list_additional_presentations(product_id, include_inactive=include_inactive)
        return {"items": [p.to_dict() for p in items], "count": len(items)}
    except Exception as e:
        return _error_response(e)


@products_bp.put("/<product_id>/presentations")
@require_context
def replace_presentations(product_id: str):
    """Body: {"presentations": [{id?, variant, units, price_cents?, is_active?}, ...]}"""
    try:
        _owned_product(product_id)
        data = request.get_json(silent=True) or {}
        items = catalog_service.update_product_presentations(product_id, data.get("presentations"))
        return {"items": [p.to_dict() for p in items], "count": len(items)}
    except Exception as e:
        return _error_response(e)


@products_bp.post("/<product_id>/presentations")
@require_context
def create_presentation(product_id: str):
    try:
        _owned_product(product_id)
        presentation = catalog_service.create_presentation(product_id, request.get_json(silent=True) or {})
        return {"presentation": presentation.to_dict()}, 201
    except Exception as e:
        return _error_response(e)


@products_bp.post("/presentations/<presentation_id>/<action>")
@require_context
def toggle_presentation(presentation_id: str, action: str):
    """action: activate | deactivate"""
    if action not in ("activate", "deactivate"):
        return {"error": "Unknown action"}, 404
    try:
        presentation = catalog_service.get_presentation(presentation_id)
        _owned_product(presentation.product_id)
        presentation = catalog_service.set_presentation_active(presentation_id, action == "activate")
        return {"presentation": presentation.to_dict()}
    except Exception as e:
        return _error_response(e)
