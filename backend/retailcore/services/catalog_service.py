# Overview: Catalog repository: products, presentations and find-or-create used by purchasing.

"""
Catalog Service

Products are branch-scoped and counted in base units. Each product owns its
presentations; the reserved "unidad" presentation (units = 1) always exists,
cannot be renamed, deleted or deactivated by callers, and its price mirrors
the product's base price.

Functions that take part in a larger transaction (find_or_create_product,
create_placeholder_product, mirror_base_price) only flush. The maintenance
operations (create_product, update_product, ...) own their transaction and
commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..context import OperationContext
from ..extensions import db
from ..models import BASE_VARIANT, Product, ProductPresentation, PurchaseItem, SaleItem
from ..time_utils import parse_lenient_datetime
from ..validation import (
    ConflictError,
    IntegrityViolation,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_presentation,
    enforce_rules_product,
    optional_text,
    validate_payload,
)
from .branch_service import resolve_branch_id, resolve_business_id


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "brand", "barcode", "sku",
        "cost_cents", "price_cents", "stock", "bonification_cents",
        "expiration", "is_active",
    },
    required_on_create={"name", "price_cents"},
)

PRESENTATION_POLICY = ModelValidationPolicy(
    writable_fields={"variant", "units", "price_cents", "is_active"},
    required_on_create={"variant", "units"},
)


class ProductNotFoundError(NotFoundError):
    """Product is missing, or inactive where an active one is required."""


class PresentationNotFoundError(NotFoundError):
    pass


class PresentationMismatchError(IntegrityViolation):
    """Presentation belongs to a different product than the one claimed."""


class ReservedPresentationError(ValidationError):
    """Attempt to rename, delete or deactivate the "unidad" presentation."""


class LookupOutcome(Enum):
    FOUND = "found"
    CREATED = "created"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class ProductLookup:
    """
    Result of find_or_create_product.

    FOUND and CREATED carry the id of the product's "unidad" presentation;
    NOT_FOUND carries nothing and leaves the fallback to the caller.
    """
    outcome: LookupOutcome
    presentation_id: str | None = None
    product_id: str | None = None

    @classmethod
    def found(cls, presentation: ProductPresentation) -> "ProductLookup":
        return cls(LookupOutcome.FOUND, presentation.id, presentation.product_id)

    @classmethod
    def created(cls, presentation: ProductPresentation) -> "ProductLookup":
        return cls(LookupOutcome.CREATED, presentation.id, presentation.product_id)

    @classmethod
    def not_found(cls) -> "ProductLookup":
        return cls(LookupOutcome.NOT_FOUND)

    @property
    def is_not_found(self) -> bool:
        return self.outcome is LookupOutcome.NOT_FOUND


@dataclass(frozen=True)
class ProductSpec:
    """Product data carried by a purchase line."""
    name: str
    price_cents: int
    cost_cents: int = 0
    brand: str | None = None
    barcode: str | None = None
    # Raw caller value; parsed leniently with parse_expiration
    expiration: Any = None


def parse_expiration(value: Any) -> datetime | None:
    """
    Lenient expiration parsing; never raises.

    Bare dates mean UTC midnight, timestamps with "Z" or an offset are
    normalized to UTC, and anything unparseable is treated as "no expiration".
    """
    return parse_lenient_datetime(value)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_product(product_id: str) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError("Product not found")
    return product


def get_presentation(presentation_id: str) -> ProductPresentation:
    presentation = db.session.get(ProductPresentation, presentation_id)
    if presentation is None:
        raise PresentationNotFoundError("Presentation not found")
    return presentation


def find_presentation_for_sale_line(product_id: str, presentation_id: str) -> ProductPresentation:
    """
    Presentation referenced by a sale line, checked against the claimed product.

    Raises:
        PresentationNotFoundError: presentation does not exist
        PresentationMismatchError: presentation belongs to another product
    """
    presentation = db.session.get(ProductPresentation, presentation_id)
    if presentation is None:
        raise PresentationNotFoundError("A presentation no longer exists, reload and try again")
    if presentation.product_id != product_id:
        raise PresentationMismatchError(
            f"Presentation {presentation_id} does not belong to product {product_id}"
        )
    return presentation


def _find_active_product(branch_id: str, name: str, barcode: str | None) -> Product | None:
    query = db.session.query(Product).filter(Product.branch_id == branch_id, Product.is_active.is_(True))
    if barcode:
        by_barcode = query.filter(Product.barcode == barcode).order_by(Product.created_at.asc()).first()
        if by_barcode is not None:
            return by_barcode
    return query.filter(Product.name == name).order_by(Product.created_at.asc()).first()


def _base_presentation(product: Product) -> ProductPresentation | None:
    return (
        db.session.query(ProductPresentation)
        .filter_by(product_id=product.id, variant=BASE_VARIANT)
        .first()
    )


def ensure_base_presentation(product: Product) -> ProductPresentation:
    """The product's "unidad" presentation, created (and flushed) when missing."""
    base = _base_presentation(product)
    if base is None:
        base = ProductPresentation(
            variant=BASE_VARIANT,
            units=1,
            price_cents=product.price_cents,
            is_active=product.is_active,
        )
        product.presentations.append(base)
        db.session.flush()
    return base


def mirror_base_price(product: Product) -> ProductPresentation:
    base = ensure_base_presentation(product)
    base.price_cents = product.price_cents
    return base


def _is_base_variant(variant: Any) -> bool:
    return isinstance(variant, str) and variant.strip().lower() == BASE_VARIANT


def _insert_product(
    branch_id: str,
    spec: ProductSpec,
    *,
    active: bool,
    created_by_user_id: str | None,
) -> ProductPresentation:
    product = Product(
        branch_id=branch_id,
        name=spec.name.strip(),
        brand=optional_text(spec.brand),
        barcode=optional_text(spec.barcode),
        cost_cents=spec.cost_cents,
        price_cents=spec.price_cents,
        stock=0,
        expiration=parse_expiration(spec.expiration),
        is_active=active,
        created_by_user_id=created_by_user_id,
    )
    base = ProductPresentation(
        variant=BASE_VARIANT,
        units=1,
        price_cents=spec.price_cents,
        is_active=active,
    )
    product.presentations.append(base)
    db.session.add(product)
    db.session.flush()
    return base


def find_or_create_product(
    branch_id: str,
    spec: ProductSpec,
    *,
    create_if_missing: bool,
    created_by_user_id: str | None = None,
) -> ProductLookup:
    """
    Resolve a purchase line to an active product's "unidad" presentation.

    Lookup is branch-scoped and ignores inactive products. A non-empty barcode
    match wins over an exact name match.

    FOUND: cost and price are updated (expiration too, when it parses) and the
    price is mirrored to "unidad". CREATED: a new active product with stock 0.
    NOT_FOUND: nothing was written.
    """
    name = spec.name.strip()
    product = _find_active_product(branch_id, name, optional_text(spec.barcode))

    if product is not None:
        product.cost_cents = spec.cost_cents
        product.price_cents = spec.price_cents
        expiration = parse_expiration(spec.expiration)
        if expiration is not None:
            product.expiration = expiration
        base = mirror_base_price(product)
        db.session.flush()
        return ProductLookup.found(base)

    if not create_if_missing:
        return ProductLookup.not_found()

    base = _insert_product(branch_id, spec, active=True, created_by_user_id=created_by_user_id)
    return ProductLookup.created(base)


def create_placeholder_product(
    branch_id: str,
    spec: ProductSpec,
    created_by_user_id: str | None = None,
) -> ProductPresentation:
    """
    Inactive product and inactive "unidad" presentation with stock 0.

    Reserves a presentation id for a purchase line whose product only becomes
    visible once the purchase is received.
    """
    return _insert_product(branch_id, spec, active=False, created_by_user_id=created_by_user_id)


# ---------------------------------------------------------------------------
# Catalog maintenance
# ---------------------------------------------------------------------------

def _commit(conflict_message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(conflict_message) from exc


def _build_presentation(product: Product, data: dict) -> ProductPresentation:
    if not isinstance(data, dict):
        raise ValidationError("Each presentation must be an object")
    payload = {k: v for k, v in data.items() if k != "id"}
    patch = validate_payload(model=ProductPresentation, payload=payload, policy=PRESENTATION_POLICY, partial=False)
    enforce_rules_presentation(patch)
    if _is_base_variant(patch["variant"]):
        raise ReservedPresentationError(f'"{BASE_VARIANT}" is reserved for the base presentation')
    if patch.get("price_cents") is None:
        patch["price_cents"] = product.price_cents
    presentation = ProductPresentation(**patch)
    product.presentations.append(presentation)
    return presentation


def create_product(ctx: OperationContext, branch_id: str | None, data: dict) -> Product:
    """
    Create a product with its "unidad" presentation and optional extra presentations.

    data may carry "presentations": [{variant, units, price_cents?}, ...]; a
    missing presentation price falls back to the base price. All rows are
    committed together.
    """
    if data is None or not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    data = dict(data)
    extra = data.pop("presentations", None) or []
    if not isinstance(extra, list):
        raise ValidationError("presentations must be a list")

    business_id = resolve_business_id(ctx.user_id)
    branch_id = resolve_branch_id(business_id, branch_id or ctx.branch_id, strict=True)

    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    product = Product(branch_id=branch_id, created_by_user_id=ctx.user_id, **patch)
    product.presentations.append(
        ProductPresentation(variant=BASE_VARIANT, units=1, price_cents=product.price_cents, is_active=True)
    )
    for item in extra:
        _build_presentation(product, item)

    db.session.add(product)
    _commit("Product could not be created")
    return product


def update_product(product_id: str, patch: dict) -> Product:
    """
    Patch mutable product fields.

    A price change is mirrored to the "unidad" presentation in the same commit.
    """
    product = get_product(product_id)
    cleaned = validate_payload(model=Product, payload=patch, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(cleaned)

    for key, value in cleaned.items():
        setattr(product, key, value)
    if "price_cents" in cleaned:
        mirror_base_price(product)

    _commit("Product could not be updated")
    return product


def list_additional_presentations(product_id: str, include_inactive: bool = False) -> list[ProductPresentation]:
    """Presentations of the product except "unidad"; deactivated ones only on request."""
    get_product(product_id)
    query = db.session.query(ProductPresentation).filter(
        ProductPresentation.product_id == product_id, ProductPresentation.variant != BASE_VARIANT
    )
    if not include_inactive:
        query = query.filter(ProductPresentation.is_active.is_(True))
    return (
        query
        .order_by(ProductPresentation.units.asc(), ProductPresentation.created_at.asc())
        .all()
    )


def _is_referenced(presentation_id: str) -> bool:
    in_sales = db.session.query(SaleItem.id).filter_by(product_presentation_id=presentation_id).first()
    if in_sales is not None:
        return True
    in_purchases = db.session.query(PurchaseItem.id).filter_by(product_presentation_id=presentation_id).first()
    return in_purchases is not None


def update_product_presentations(product_id: str, presentations: Iterable[dict]) -> list[ProductPresentation]:
    """
    Replace the product's additional presentations with the given set.

    Entries with an "id" update that presentation, entries without one are
    inserted, and presentations missing from the set are removed. Removed
    presentations still referenced by sale or purchase items are deactivated
    instead of deleted. "unidad" can never be referenced here.
    """
    product = get_product(product_id)
    if presentations is None or not isinstance(presentations, list):
        raise ValidationError("presentations must be a list")

    base = ensure_base_presentation(product)
    existing = {
        p.id: p
        for p in db.session.query(ProductPresentation)
        .filter(ProductPresentation.product_id == product_id, ProductPresentation.id != base.id)
        .all()
    }

    kept: set[str] = set()
    for data in presentations:
        if not isinstance(data, dict):
            raise ValidationError("Each presentation must be an object")
        presentation_id = data.get("id")
        if presentation_id == base.id:
            raise ReservedPresentationError(f'The "{BASE_VARIANT}" presentation cannot be edited here')
        if _is_base_variant(data.get("variant")):
            raise ReservedPresentationError(f'"{BASE_VARIANT}" is reserved for the base presentation')

        if presentation_id:
            presentation = existing.get(presentation_id)
            if presentation is None:
                raise PresentationMismatchError(
                    f"Presentation {presentation_id} does not belong to product {product_id}"
                )
            payload = {k: v for k, v in data.items() if k != "id"}
            patch = validate_payload(model=ProductPresentation, payload=payload, policy=PRESENTATION_POLICY, partial=True)
            enforce_rules_presentation(patch)
            for key, value in patch.items():
                setattr(presentation, key, value)
            kept.add(presentation_id)
        else:
            _build_presentation(product, data)

    for presentation_id, presentation in existing.items():
        if presentation_id in kept:
            continue
        if _is_referenced(presentation_id):
            presentation.is_active = False
        else:
            db.session.delete(presentation)

    _commit("Presentations could not be updated")
    return list_additional_presentations(product_id)


def create_presentation(product_id: str, data: dict) -> ProductPresentation:
    product = get_product(product_id)
    presentation = _build_presentation(product, data)
    _commit("Presentation could not be created")
    return presentation


def set_presentation_active(presentation_id: str, active: bool) -> ProductPresentation:
    presentation = get_presentation(presentation_id)
    if presentation.is_base and not active:
        raise ReservedPresentationError(f'The "{BASE_VARIANT}" presentation cannot be deactivated')
    presentation.is_active = bool(active)
    _commit("Presentation could not be updated")
    return presentation


def deactivate_product(product_id: str) -> Product:
    """Soft delete: the product and every presentation become inactive."""
    product = get_product(product_id)
    product.is_active = False
    for presentation in product.presentations:
        presentation.is_active = False
    _commit("Product could not be deactivated")
    return product


def list_catalog(
    branch_id: str,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Active products of a branch with their active presentations.

    Args:
        branch_id: Branch to list
        search: Case-insensitive match on name, barcode or sku
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = (
        db.session.query(Product)
        .filter(Product.branch_id == branch_id, Product.is_active.is_(True))
        .order_by(Product.name.asc(), Product.id.asc())
    )
    term = optional_text(search)
    if term:
        like = f"%{term}%"
        base_query = base_query.filter(
            or_(Product.name.ilike(like), Product.barcode.ilike(like), Product.sku.ilike(like))
        )

    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict(include_presentations=True) for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict(include_presentations=True) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
