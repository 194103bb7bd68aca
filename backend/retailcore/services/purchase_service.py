# Overview: Purchase orders: creation, approval, cancellation and receipt into stock.

"""
Purchase Receiving Coordinator

LIFECYCLE:
1. pending: created, nothing credited; unknown products exist as inactive placeholders
2. approved: manager approved, ready to receive
3. received: stock credited, placeholder products activated (terminal)
4. cancelled: abandoned before receipt (terminal)

A purchase may also be created directly as received, in which case products
are found or created active and stock is credited in the creation
transaction.

SCHEDULED DELIVERY:
A pending or approved purchase may carry expected_delivery_at. Once that time
passes, receive_due_purchases receives it through the same gate as a manual
receipt.

RECEIVE GATE:
The status flip to received is a conditional UPDATE that only matches a
pending or approved row, executed in the same transaction as the stock
credits. A purchase can therefore be credited at most once.

Coordinators return PurchaseResult and never raise; error_kind is one of
"validation", "integrity", "state", "storage", "verification", "unexpected".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..context import OperationContext
from ..extensions import db
from ..models import Product, ProductPresentation, Purchase, PurchaseItem, Supplier
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import (
    ConflictError,
    IntegrityViolation,
    NotFoundError,
    ValidationError,
    optional_text,
    parse_int,
)
from .branch_service import resolve_branch_id, resolve_business_id
from .catalog_service import (
    ProductNotFoundError,
    ProductSpec,
    create_placeholder_product,
    find_or_create_product,
    get_presentation,
)
from .concurrency import lock_for_update
from .stock_ledger import apply_stock_delta, receipt_delta
from .supplier_service import SupplierNotFoundError, find_or_create_supplier


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_RECEIVED = "received"
STATUS_CANCELLED = "cancelled"

PURCHASE_STATUSES = {STATUS_PENDING, STATUS_APPROVED, STATUS_RECEIVED, STATUS_CANCELLED}
CREATABLE_STATUSES = {STATUS_PENDING, STATUS_APPROVED, STATUS_RECEIVED}
RECEIVABLE_STATUSES = (STATUS_PENDING, STATUS_APPROVED)
CANCELLABLE_STATUSES = (STATUS_PENDING, STATUS_APPROVED)

INTEGRITY_MESSAGE = "Data integrity problem while saving the purchase, reload and try again"
GENERIC_FAILURE_MESSAGE = "The purchase could not be saved"


class PurchaseNotFoundError(NotFoundError):
    """Raised when a purchase is not found (or belongs to another business)."""
    pass


class PurchaseStateError(ConflictError):
    """Raised when an operation is invalid for the current purchase status."""
    pass


@dataclass(frozen=True)
class PurchaseLineInput:
    product_name: str
    quantity: int
    unit_cost_cents: int
    price_cents: int
    brand: str | None = None
    barcode: str | None = None
    expiration: Any = None

    @classmethod
    def from_dict(cls, data: dict, index: int = 0) -> "PurchaseLineInput":
        if not isinstance(data, dict):
            raise ValidationError(f"Item {index + 1}: must be an object")
        prefix = f"Item {index + 1}"
        return cls(
            product_name=str(data.get("product_name") or data.get("name") or "").strip(),
            quantity=parse_int(data.get("quantity"), f"{prefix}: quantity"),
            unit_cost_cents=parse_int(data.get("unit_cost_cents"), f"{prefix}: unit_cost_cents"),
            price_cents=parse_int(data.get("price_cents"), f"{prefix}: price_cents"),
            brand=optional_text(data.get("brand")),
            barcode=optional_text(data.get("barcode")),
            expiration=data.get("expiration"),
        )

    def to_spec(self) -> ProductSpec:
        return ProductSpec(
            name=self.product_name,
            price_cents=self.price_cents,
            cost_cents=self.unit_cost_cents,
            brand=self.brand,
            barcode=self.barcode,
            expiration=self.expiration,
        )


def _parse_delivery_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    try:
        return parse_iso_datetime(str(value))
    except (ValueError, OverflowError):
        raise ValidationError("expected_delivery_at must be an ISO-8601 date-time")


@dataclass(frozen=True)
class PurchaseInput:
    items: tuple[PurchaseLineInput, ...]
    status: str = STATUS_PENDING
    type: str = "purchase"
    supplier_id: str | None = None
    supplier_name: str | None = None
    supplier_tax_id: str | None = None
    business_id: str | None = None
    branch_id: str | None = None
    notes: str | None = None
    expected_delivery_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "PurchaseInput":
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")
        return cls(
            items=tuple(PurchaseLineInput.from_dict(item, i) for i, item in enumerate(raw_items)),
            status=str(data.get("status") or STATUS_PENDING).strip().lower(),
            type=str(data.get("type") or "purchase").strip(),
            supplier_id=optional_text(data.get("supplier_id")),
            supplier_name=optional_text(data.get("supplier_name")),
            supplier_tax_id=optional_text(data.get("supplier_tax_id")),
            business_id=optional_text(data.get("business_id")),
            branch_id=optional_text(data.get("branch_id")),
            notes=optional_text(data.get("notes")),
            expected_delivery_at=_parse_delivery_time(data.get("expected_delivery_at")),
        )


@dataclass
class PurchaseResult:
    success: bool
    purchase_id: str | None = None
    purchase: dict | None = None
    error: str | None = None
    error_kind: str | None = None

    @classmethod
    def failure(cls, error: str, kind: str) -> "PurchaseResult":
        return cls(success=False, error=error, error_kind=kind)

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "purchase_id": self.purchase_id, "purchase": self.purchase}
        return {"success": False, "error": self.error, "error_kind": self.error_kind}


def _transaction(op: Callable[[], Any], *, action: str) -> tuple[Any, PurchaseResult | None]:
    """
    Run op and commit. Any failure rolls back and becomes a failed PurchaseResult.
    """
    try:
        value = op()
        db.session.commit()
        return value, None
    except ValidationError as exc:
        db.session.rollback()
        return None, PurchaseResult.failure(str(exc), "validation")
    except PurchaseStateError as exc:
        db.session.rollback()
        return None, PurchaseResult.failure(str(exc), "state")
    except IntegrityViolation as exc:
        db.session.rollback()
        return None, PurchaseResult.failure(str(exc), "integrity")
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning("Purchase %s rejected by the database", action, exc_info=True)
        return None, PurchaseResult.failure(INTEGRITY_MESSAGE, "storage")
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Purchase %s transaction failed", action)
        return None, PurchaseResult.failure(GENERIC_FAILURE_MESSAGE, "storage")
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error during purchase %s", action)
        return None, PurchaseResult.failure(GENERIC_FAILURE_MESSAGE, "unexpected")


def _validate_lines(items: tuple[PurchaseLineInput, ...]) -> None:
    if not items:
        raise ValidationError("Purchase must contain at least one item")
    for i, line in enumerate(items, start=1):
        if not line.product_name:
            raise ValidationError(f"Item {i}: product name is required")
        if line.quantity <= 0:
            raise ValidationError(f"Item {i}: quantity must be greater than 0")
        if line.unit_cost_cents <= 0:
            raise ValidationError(f"Item {i}: unit cost must be greater than 0")
        if line.price_cents <= 0:
            raise ValidationError(f"Item {i}: sale price must be greater than 0")


def _resolve_supplier(business_id: str, purchase_input: PurchaseInput) -> Supplier:
    if purchase_input.supplier_id:
        supplier = db.session.get(Supplier, purchase_input.supplier_id)
        if supplier is None or supplier.business_id != business_id or not supplier.is_active:
            raise SupplierNotFoundError(f"Supplier {purchase_input.supplier_id} not found")
        return supplier
    if purchase_input.supplier_name:
        return find_or_create_supplier(business_id, purchase_input.supplier_name, purchase_input.supplier_tax_id)
    raise ValidationError("A supplier is required")


def _credit_stock(presentation: ProductPresentation, quantity: int) -> Product:
    """
    Add purchased base units to the presentation's product and activate it
    (with the presentation) when it was a placeholder. Does not commit.
    """
    product = lock_for_update(db.session.query(Product).filter(Product.id == presentation.product_id)).first()
    if product is None:
        raise ProductNotFoundError(f"Product {presentation.product_id} not found")

    # Purchase quantities are already base units
    product.stock = apply_stock_delta(product.stock, receipt_delta(1, quantity))
    if not product.is_active:
        product.is_active = True
        presentation.is_active = True
    return product


def _purchase_for_business(ctx: OperationContext, purchase_id: str) -> Purchase:
    business_id = resolve_business_id(ctx.user_id)
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None or purchase.business_id != business_id:
        raise PurchaseNotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def _reload_purchase(purchase_id: str) -> Purchase | None:
    db.session.expire_all()
    return db.session.get(Purchase, purchase_id)


def create_purchase(ctx: OperationContext, purchase_input: PurchaseInput) -> PurchaseResult:
    """
    Create a purchase order with its items.

    Lines of a received purchase resolve to active products (found or
    created) and credit stock now. Lines of a pending or approved purchase
    never create active products: unknown products become inactive
    placeholders until the purchase is received.
    """
    def _op() -> str:
        if purchase_input.status not in CREATABLE_STATUSES:
            raise ValidationError(
                f"Invalid purchase status '{purchase_input.status}'. "
                f"Allowed: {', '.join(sorted(CREATABLE_STATUSES))}"
            )
        _validate_lines(purchase_input.items)
        if purchase_input.expected_delivery_at is not None and purchase_input.status == STATUS_RECEIVED:
            raise ValidationError("A received purchase cannot be scheduled for delivery")

        business_id = resolve_business_id(ctx.user_id)
        if purchase_input.business_id and purchase_input.business_id != business_id:
            raise ValidationError("Purchase business does not match the user's business")

        supplier = _resolve_supplier(business_id, purchase_input)
        branch_id = resolve_branch_id(business_id, purchase_input.branch_id or ctx.branch_id, strict=True)
        receiving = purchase_input.status == STATUS_RECEIVED
        now = utcnow()

        purchase = Purchase(
            business_id=business_id,
            branch_id=branch_id,
            supplier_id=supplier.id,
            type=purchase_input.type or "purchase",
            status=purchase_input.status,
            notes=purchase_input.notes,
            created_by=ctx.user_id,
            expected_delivery_at=purchase_input.expected_delivery_at,
        )
        if purchase_input.status == STATUS_APPROVED:
            purchase.approved_by = ctx.user_id
            purchase.approved_at = now
        db.session.add(purchase)

        total_cents = 0
        for line in purchase_input.items:
            spec = line.to_spec()
            lookup = find_or_create_product(
                branch_id, spec, create_if_missing=receiving, created_by_user_id=ctx.user_id
            )
            if lookup.is_not_found:
                presentation_id = create_placeholder_product(branch_id, spec, ctx.user_id).id
            else:
                presentation_id = lookup.presentation_id

            subtotal = line.quantity * line.unit_cost_cents
            total_cents += subtotal
            purchase.items.append(PurchaseItem(
                product_presentation_id=presentation_id,
                quantity=line.quantity,
                unit_cost_cents=line.unit_cost_cents,
                subtotal_cents=subtotal,
            ))

            if receiving:
                _credit_stock(get_presentation(presentation_id), line.quantity)

        purchase.total_cents = total_cents
        if receiving:
            purchase.received_at = now
        db.session.flush()
        return purchase.id

    purchase_id, failure = _transaction(_op, action="create")
    if failure is not None:
        return failure

    purchase = db.session.get(Purchase, purchase_id)
    current_app.logger.info(
        "Purchase %s created: status=%s items=%s total_cents=%s",
        purchase_id, purchase.status, len(purchase.items), purchase.total_cents,
    )
    return PurchaseResult(success=True, purchase_id=purchase_id, purchase=purchase.to_dict(include_items=True))


def receive_purchase(ctx: OperationContext, purchase_id: str) -> PurchaseResult:
    """
    Receive a pending or approved purchase into stock.

    Stock credits, placeholder activation and the status flip commit together.
    A received or cancelled purchase is rejected, so stock is credited once.
    """
    return _receive(purchase_id, partial(_purchase_for_business, ctx, purchase_id))


def _receive(purchase_id: str, load_purchase: Callable[[], Purchase]) -> PurchaseResult:
    def _op() -> None:
        purchase = load_purchase()
        if not purchase.branch_id:
            raise ValidationError("Purchase has no branch")
        items = list(purchase.items)
        if not items:
            raise ValidationError("Purchase has no items")
        if purchase.status not in RECEIVABLE_STATUSES:
            raise PurchaseStateError(
                f"Cannot receive {purchase.status} purchase. Only pending or approved purchases can be received."
            )

        updated = (
            db.session.query(Purchase)
            .filter(Purchase.id == purchase_id, Purchase.status.in_(RECEIVABLE_STATUSES))
            .update({"status": STATUS_RECEIVED, "received_at": utcnow()}, synchronize_session=False)
        )
        if updated != 1:
            raise PurchaseStateError("Purchase was modified concurrently, reload and try again")

        for item in items:
            presentation = item.presentation
            if presentation is None:
                raise IntegrityViolation(f"Presentation {item.product_presentation_id} no longer exists")
            _credit_stock(presentation, item.quantity)

    _, failure = _transaction(_op, action="receive")
    if failure is not None:
        return failure

    purchase = _reload_purchase(purchase_id)
    if purchase is None or purchase.status != STATUS_RECEIVED:
        message = f"Purchase {purchase_id} did not transition to received"
        current_app.logger.error(message)
        return PurchaseResult.failure(message, "verification")

    current_app.logger.info("Purchase %s received into branch %s", purchase_id, purchase.branch_id)
    return PurchaseResult(success=True, purchase_id=purchase_id, purchase=purchase.to_dict(include_items=True))


def receive_due_purchases(now: datetime | None = None) -> list[PurchaseResult]:
    """
    Receive every pending or approved purchase whose expected delivery time
    is at or before now. Each purchase commits on its own; a failure is
    logged and the remaining purchases are still processed.
    """
    now = now or utcnow()
    due_ids = [
        row.id
        for row in db.session.query(Purchase.id)
        .filter(
            Purchase.status.in_(RECEIVABLE_STATUSES),
            Purchase.expected_delivery_at.isnot(None),
            Purchase.expected_delivery_at <= now,
        )
        .order_by(Purchase.expected_delivery_at.asc(), Purchase.id.asc())
        .all()
    ]

    results = []
    for purchase_id in due_ids:
        result = _receive(purchase_id, partial(get_purchase, purchase_id))
        if not result.success:
            result.purchase_id = purchase_id
            current_app.logger.warning(
                "Scheduled purchase %s was not received: %s (%s)", purchase_id, result.error, result.error_kind
            )
        results.append(result)
    return results


def approve_purchase(ctx: OperationContext, purchase_id: str) -> PurchaseResult:
    def _op() -> Purchase:
        purchase = _purchase_for_business(ctx, purchase_id)
        if purchase.status != STATUS_PENDING:
            raise PurchaseStateError(
                f"Cannot approve {purchase.status} purchase. Only pending purchases can be approved."
            )
        purchase.status = STATUS_APPROVED
        purchase.approved_by = ctx.user_id
        purchase.approved_at = utcnow()
        return purchase

    purchase, failure = _transaction(_op, action="approve")
    if failure is not None:
        return failure
    return PurchaseResult(success=True, purchase_id=purchase.id, purchase=purchase.to_dict(include_items=True))


def cancel_purchase(ctx: OperationContext, purchase_id: str, reason: str | None = None) -> PurchaseResult:
    """Cancel a pending or approved purchase. A given reason replaces the notes."""
    def _op() -> Purchase:
        purchase = _purchase_for_business(ctx, purchase_id)
        if purchase.status not in CANCELLABLE_STATUSES:
            raise PurchaseStateError(f"Cannot cancel {purchase.status} purchase")
        purchase.status = STATUS_CANCELLED
        cancel_reason = optional_text(reason)
        if cancel_reason:
            purchase.notes = cancel_reason
        return purchase

    purchase, failure = _transaction(_op, action="cancel")
    if failure is not None:
        return failure
    return PurchaseResult(success=True, purchase_id=purchase.id, purchase=purchase.to_dict(include_items=True))


def get_purchase(purchase_id: str) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise PurchaseNotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def list_purchases(business_id: str, branch_id: str | None = None, status: str | None = None) -> list[Purchase]:
    """Purchases of a business, newest first."""
    if status is not None and status not in PURCHASE_STATUSES:
        raise ValidationError(f"Invalid purchase status '{status}'")
    query = db.session.query(Purchase).filter(Purchase.business_id == business_id)
    if branch_id:
        query = query.filter(Purchase.branch_id == branch_id)
    if status:
        query = query.filter(Purchase.status == status)
    return query.order_by(Purchase.created_at.desc(), Purchase.id.desc()).all()
