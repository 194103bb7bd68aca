# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

Suppliers are business-scoped and only ever soft deleted (is_active = False)
because purchases keep referencing them.

find_or_create_supplier takes part in the purchase transaction and only
flushes; the maintenance operations commit.
"""

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Business, Supplier
from ..validation import NotFoundError, ValidationError, optional_text


class SupplierNotFoundError(NotFoundError):
    """Raised when a supplier is not found."""
    pass


class SupplierValidationError(ValidationError):
    """Raised when supplier data fails validation."""
    pass


def _clean_name(name: str | None) -> str:
    if name is None or not str(name).strip():
        raise SupplierValidationError("Supplier name is required")
    return str(name).strip()


def find_or_create_supplier(business_id: str, name: str, tax_id: str | None = None) -> Supplier:
    """
    Active supplier of the business matching the name (or the tax id, when
    one is given); created with an empty phone and no address otherwise.

    Does not commit.
    """
    name = _clean_name(name)
    tax_id = optional_text(tax_id)

    query = db.session.query(Supplier).filter(
        Supplier.business_id == business_id,
        Supplier.is_active.is_(True),
    )
    if tax_id:
        query = query.filter(or_(Supplier.name == name, Supplier.tax_id == tax_id))
    else:
        query = query.filter(Supplier.name == name)

    supplier = query.order_by(Supplier.created_at.asc()).first()
    if supplier is not None:
        return supplier

    supplier = Supplier(business_id=business_id, name=name, tax_id=tax_id, phone="", address=None, is_active=True)
    db.session.add(supplier)
    db.session.flush()
    return supplier


def create_supplier(
    *,
    business_id: str,
    name: str,
    tax_id: str | None = None,
    phone: str | None = None,
    address: str | None = None,
) -> Supplier:
    """
    Create a new supplier.

    Raises:
        SupplierValidationError: missing name or unknown business
    """
    if db.session.get(Business, business_id) is None:
        raise SupplierValidationError("Business not found")

    supplier = Supplier(
        business_id=business_id,
        name=_clean_name(name),
        tax_id=optional_text(tax_id),
        phone=(phone or "").strip(),
        address=optional_text(address),
        is_active=True,
    )
    db.session.add(supplier)
    db.session.commit()
    return supplier


def get_supplier(supplier_id: str) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if supplier is None:
        raise SupplierNotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def update_supplier(
    *,
    supplier_id: str,
    name: str | None = None,
    tax_id: str | None = None,
    phone: str | None = None,
    address: str | None = None,
) -> Supplier:
    """
    Update an existing supplier. Only provided fields change.

    Raises:
        SupplierNotFoundError: If supplier not found
        SupplierValidationError: If validation fails
    """
    supplier = get_supplier(supplier_id)
    if not supplier.is_active:
        raise SupplierValidationError("Cannot update inactive supplier")

    if name is not None:
        supplier.name = _clean_name(name)
    if tax_id is not None:
        supplier.tax_id = optional_text(tax_id)
    if phone is not None:
        supplier.phone = phone.strip()
    if address is not None:
        supplier.address = optional_text(address)

    db.session.commit()
    return supplier


def deactivate_supplier(supplier_id: str) -> Supplier:
    supplier = get_supplier(supplier_id)
    supplier.is_active = False
    db.session.commit()
    return supplier


def list_suppliers(business_id: str, *, include_inactive: bool = False, search: str | None = None) -> list[Supplier]:
    query = db.session.query(Supplier).filter(Supplier.business_id == business_id)

    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))

    if search:
        search_term = f"%{search}%"
        query = query.filter(or_(Supplier.name.ilike(search_term), Supplier.tax_id.ilike(search_term)))

    return query.order_by(Supplier.name.asc()).all()
