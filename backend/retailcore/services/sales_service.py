"""
Sale Transaction Coordinator

A sale is validated against the catalog and current stock, then written in
one transaction: header, items and stock decrements commit together or not
at all. Session totals and cashier bonification are updated after commit by
sale_completed receivers and never affect the outcome of the sale.

create_sale never raises to its caller; failures come back as a SaleResult
whose error_kind tells the caller what went wrong:
- "validation": bad input, nothing was read
- "integrity": input disagrees with stored data (stock, ownership, existence)
- "storage": the store rejected the transaction (constraint violation)
- "unexpected": any other failure
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..context import OperationContext
from ..events import publish, sale_completed
from ..extensions import db
from ..models import Branch, Business, Product, ProductPresentation, Sale, SaleItem
from ..time_utils import to_utc_z
from ..validation import IntegrityViolation, NotFoundError, ValidationError, optional_text, parse_int
from .branch_service import get_user, resolve_branch_id, resolve_business_id
from .catalog_service import PresentationMismatchError, PresentationNotFoundError, ProductNotFoundError
from .concurrency import lock_for_update
from .stock_ledger import apply_stock_delta, base_units, sale_delta


PAYMENT_METHODS = ("cash", "card", "transfer", "digital_wallet")
STATUS_COMPLETED = "completed"

INTEGRITY_MESSAGE = "Data integrity problem while saving the sale, reload and try again"
GENERIC_FAILURE_MESSAGE = "The sale could not be saved"


class SaleNotFoundError(NotFoundError):
    pass


class InsufficientStockError(IntegrityViolation):
    """Raised when the cart needs more base units than a product has."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PresentationUnitsMismatchError(IntegrityViolation):
    """Caller's units-per-presentation disagree with the stored presentation."""


@dataclass(frozen=True)
class SaleLineInput:
    product_id: str
    presentation_id: str
    quantity: int
    unit_price_cents: int
    # Accepted for compatibility; the product's stored bonification is what accrues
    bonification_cents: int = 0
    # Units shown to the cashier; None means "use the stored value"
    presentation_units: int | None = None

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> "SaleLineInput":
        if not isinstance(data, dict):
            raise ValidationError(f"Item {index + 1}: must be an object")
        prefix = f"Item {index + 1}"
        units = data.get("presentation_units")
        return cls(
            product_id=str(data.get("product_id") or "").strip(),
            presentation_id=str(data.get("product_presentation_id") or data.get("presentation_id") or "").strip(),
            quantity=parse_int(data.get("quantity"), f"{prefix}: quantity"),
            unit_price_cents=parse_int(data.get("unit_price_cents"), f"{prefix}: unit_price_cents"),
            bonification_cents=parse_int(data.get("bonification_cents") or 0, f"{prefix}: bonification_cents"),
            presentation_units=None if units is None else parse_int(units, f"{prefix}: presentation_units"),
        )


@dataclass(frozen=True)
class SaleInput:
    payment_method: str
    items: tuple[SaleLineInput, ...]
    branch_id: str | None = None
    customer: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SaleInput":
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")
        return cls(
            payment_method=str(data.get("payment_method") or "").strip(),
            items=tuple(SaleLineInput.from_dict(item, i) for i, item in enumerate(raw_items)),
            branch_id=optional_text(data.get("branch_id")),
            customer=optional_text(data.get("customer")),
        )


@dataclass
class SaleResult:
    success: bool
    sale_id: str | None = None
    error: str | None = None
    error_kind: str | None = None
    sale_data: dict | None = None
    details: dict = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str, kind: str, details: dict | None = None) -> "SaleResult":
        return cls(success=False, error=error, error_kind=kind, details=details or {})

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "sale_id": self.sale_id, "sale_data": self.sale_data}
        data: dict[str, Any] = {"success": False, "error": self.error, "error_kind": self.error_kind}
        if self.details:
            data["details"] = self.details
        return data


@dataclass
class _PlannedLine:
    line: SaleLineInput
    product: Product
    presentation: ProductPresentation
    required_units: int


@dataclass
class _SalePlan:
    lines: list[_PlannedLine]
    total_cents: int
    bonus_cents: int
    delta_by_product: dict[str, int]


def _validate_input(ctx: OperationContext, sale_input: SaleInput) -> str:
    """Shape checks that need no storage beyond the user lookup. Returns the branch id."""
    branch_id = sale_input.branch_id or ctx.branch_id
    if not branch_id:
        raise ValidationError("Branch id is required")
    if not ctx.user_id:
        raise ValidationError("User id is required")
    if get_user(ctx.user_id) is None:
        raise ValidationError("User not found")
    if sale_input.payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method '{sale_input.payment_method}'. Allowed: {', '.join(PAYMENT_METHODS)}"
        )
    if not sale_input.items:
        raise ValidationError("Sale must contain at least one item")

    for i, line in enumerate(sale_input.items, start=1):
        if not line.product_id:
            raise ValidationError(f"Item {i}: product id is required")
        if not line.presentation_id:
            raise ValidationError(f"Item {i}: presentation id is required")
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError(f"Item {i}: quantity must be an integer greater than 0")
        if isinstance(line.unit_price_cents, bool) or not isinstance(line.unit_price_cents, int) or line.unit_price_cents < 0:
            raise ValidationError(f"Item {i}: unit price must be an integer >= 0")
        if line.presentation_units is not None and line.presentation_units < 1:
            raise ValidationError(f"Item {i}: presentation units must be >= 1")
    return branch_id


def _plan_sale(items: tuple[SaleLineInput, ...]) -> _SalePlan:
    """
    Verify every line against stored data and compute totals and stock deltas.

    Products and presentations are fetched with one query each.
    """
    product_ids = {line.product_id for line in items}
    presentation_ids = {line.presentation_id for line in items}

    products = {
        p.id: p
        for p in lock_for_update(db.session.query(Product).filter(Product.id.in_(product_ids))).all()
    }
    presentations = {
        p.id: p
        for p in db.session.query(ProductPresentation).filter(ProductPresentation.id.in_(presentation_ids)).all()
    }
    if len(presentations) != len(presentation_ids):
        raise PresentationNotFoundError("A presentation no longer exists, reload and try again")

    planned: list[_PlannedLine] = []
    delta_by_product: dict[str, int] = defaultdict(int)
    required_by_product: dict[str, int] = defaultdict(int)
    total_cents = 0
    bonus_cents = 0

    for line in items:
        presentation = presentations[line.presentation_id]
        if presentation.product_id != line.product_id:
            raise PresentationMismatchError(
                f"Presentation {line.presentation_id} does not belong to product {line.product_id}"
            )
        product = products.get(line.product_id)
        if product is None or not product.is_active:
            raise ProductNotFoundError(f"Product {line.product_id} not found")
        if not presentation.is_active:
            raise PresentationNotFoundError(
                f"Presentation '{presentation.variant}' of {product.name} is no longer available, reload and try again"
            )

        units = presentation.units if line.presentation_units is None else line.presentation_units
        if units != presentation.units:
            raise PresentationUnitsMismatchError(
                f"Presentation '{presentation.variant}' of {product.name} now holds "
                f"{presentation.units} units, reload and try again"
            )

        required = base_units(units, line.quantity)
        required_by_product[product.id] += required
        delta_by_product[product.id] += sale_delta(units, line.quantity)
        total_cents += line.unit_price_cents * line.quantity
        bonus_cents += (product.bonification_cents or 0) * required
        planned.append(_PlannedLine(line, product, presentation, required))

    insufficient = []
    for product_id, required in required_by_product.items():
        product = products[product_id]
        if required > product.stock:
            insufficient.append({
                "product_id": product_id,
                "product_name": product.name,
                "available": product.stock,
                "required": required,
            })
    if insufficient:
        first = insufficient[0]
        raise InsufficientStockError(
            f"Insufficient stock for {first['product_name']}: "
            f"available {first['available']}, required {first['required']}",
            details={"items": insufficient},
        )

    return _SalePlan(planned, total_cents, bonus_cents, dict(delta_by_product))


def _write_sale(ctx: OperationContext, branch_id: str, sale_input: SaleInput, plan: _SalePlan) -> Sale:
    """Insert header and items, then apply stock decrements. Flushes, does not commit."""
    sale = Sale(
        branch_id=branch_id,
        user_id=ctx.user_id,
        customer=sale_input.customer,
        payment_method=sale_input.payment_method,
        status=STATUS_COMPLETED,
        total_cents=plan.total_cents,
    )
    db.session.add(sale)

    for planned in plan.lines:
        line = planned.line
        sale.items.append(SaleItem(
            product_presentation_id=planned.presentation.id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            bonification_cents=planned.product.bonification_cents or 0,
            subtotal_cents=line.unit_price_cents * line.quantity,
        ))
    db.session.flush()

    products = {planned.product.id: planned.product for planned in plan.lines}
    for product_id, delta in plan.delta_by_product.items():
        product = products[product_id]
        product.stock = apply_stock_delta(product.stock, delta)
    db.session.flush()
    return sale


def create_sale(ctx: OperationContext, sale_input: SaleInput) -> SaleResult:
    """
    Validate and commit a sale, then publish sale_completed.

    Returns a SaleResult carrying the denormalized receipt on success.
    """
    try:
        branch_id = _validate_input(ctx, sale_input)
    except ValidationError as exc:
        return SaleResult.failure(str(exc), "validation")

    try:
        business_id = resolve_business_id(ctx.user_id)
        branch_id = resolve_branch_id(business_id, branch_id)
        plan = _plan_sale(sale_input.items)
        sale = _write_sale(ctx, branch_id, sale_input, plan)
        db.session.commit()
    except IntegrityViolation as exc:
        db.session.rollback()
        return SaleResult.failure(str(exc), "integrity", getattr(exc, "details", None))
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning("Sale rejected by the database for user %s", ctx.user_id, exc_info=True)
        return SaleResult.failure(INTEGRITY_MESSAGE, "storage")
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Sale transaction failed for user %s", ctx.user_id)
        return SaleResult.failure(GENERIC_FAILURE_MESSAGE, "storage")
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error creating sale for user %s", ctx.user_id)
        return SaleResult.failure(GENERIC_FAILURE_MESSAGE, "unexpected")

    sale_id = sale.id
    current_app.logger.info(
        "Sale %s completed: branch=%s total_cents=%s method=%s",
        sale_id, branch_id, plan.total_cents, sale_input.payment_method,
    )

    publish(
        sale_completed,
        sale_id=sale_id,
        user_id=ctx.user_id,
        branch_id=branch_id,
        total_cents=plan.total_cents,
        bonus_cents=plan.bonus_cents,
        payment_method=sale_input.payment_method,
        created_at=sale.created_at,
    )

    try:
        receipt = build_receipt(get_sale(sale_id))
    except Exception:
        # The sale is committed; a receipt failure must not report it as failed.
        current_app.logger.exception("Could not build receipt for sale %s", sale_id)
        receipt = None
    return SaleResult(success=True, sale_id=sale_id, sale_data=receipt)


def build_receipt(sale: Sale) -> dict:
    """Denormalized receipt payload for printing/rendering."""
    branch = db.session.get(Branch, sale.branch_id)
    business = db.session.get(Business, branch.business_id) if branch is not None else None
    cashier = get_user(sale.user_id)

    items = []
    for item in sale.items:
        presentation = item.presentation
        items.append({
            "product_name": presentation.product.name if presentation is not None else None,
            "variant": presentation.variant if presentation is not None else None,
            "quantity": item.quantity,
            "unit_price_cents": item.unit_price_cents,
            "subtotal_cents": item.subtotal_cents,
        })

    return {
        "sale_id": sale.id,
        "sale_number": sale.sale_number,
        "date": to_utc_z(sale.created_at),
        "business": {
            "name": business.name if business else None,
            "tax_id": business.tax_id if business else None,
            "location": business.location if business else None,
        },
        "branch": {
            "name": branch.name if branch else None,
            "location": branch.location if branch else None,
        },
        "cashier": cashier.name if cashier else None,
        "customer": sale.customer,
        "payment_method": sale.payment_method,
        "items": items,
        "total_cents": sale.total_cents,
    }


def get_sale(sale_id: str) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFoundError(f"Sale {sale_id} not found")
    return sale


def list_branch_sales(
    branch_id: str,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[Sale]:
    """Sales of a branch, newest first, optionally bounded by created_at (inclusive)."""
    query = db.session.query(Sale).filter(Sale.branch_id == branch_id)
    if date_from is not None:
        query = query.filter(Sale.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Sale.created_at <= date_to)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()
