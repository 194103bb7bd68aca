from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from ..time_utils import utcnow, to_utc_z

# Reserved variant label of the base-unit presentation (units = 1).
BASE_VARIANT = "unidad"


class Product(db.Model):
    """
    Product master data, scoped to a branch.

    stock is counted in base units and never negative after a commit.
    Inactive products are hidden from sale and catalog flows but can still be
    referenced by purchase items of an order that has not been received yet.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_branch_name", "branch_id", "name"),
        db.Index("ix_products_branch_barcode", "branch_id", "barcode"),
        db.Index("ix_products_branch_active", "branch_id", "is_active"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_nonnegative"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    branch_id = db.Column(db.String(32), db.ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    brand = db.Column(db.String(120), nullable=True)
    barcode = db.Column(db.String(64), nullable=True)
    sku = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    # Accrued to the selling cashier per base unit sold
    bonification_cents = db.Column(db.Integer, nullable=False, default=0)
    expiration = db.Column(db.DateTime, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_user_id = db.Column(db.String(32), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    branch = db.relationship("Branch", backref=db.backref("products", lazy=True))
    presentations = db.relationship(
        "ProductPresentation",
        back_populates="product",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProductPresentation.units",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    @property
    def base_presentation(self):
        for presentation in self.presentations:
            if presentation.variant == BASE_VARIANT:
                return presentation
        return None

    def to_dict(self, include_presentations: bool = False) -> dict:
        data = {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "description": self.description,
            "brand": self.brand,
            "barcode": self.barcode,
            "sku": self.sku,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "bonification_cents": self.bonification_cents,
            "expiration": to_utc_z(self.expiration),
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_presentations:
            data["presentations"] = [p.to_dict() for p in self.presentations if p.is_active]
        return data


class ProductPresentation(db.Model):
    """
    Sellable packaging of a product ("unidad", "pack", "caja", ...).

    units converts one presentation into base units. price_cents may be null,
    in which case the product's base price applies. Exactly one presentation
    per product carries the reserved "unidad" variant.
    """
    __tablename__ = "product_presentations"
    __table_args__ = (
        db.CheckConstraint("units >= 1", name="ck_product_presentations_units_positive"),
        db.Index(
            "uq_product_presentations_one_base",
            "product_id",
            unique=True,
            sqlite_where=db.text("variant = 'unidad'"),
            postgresql_where=db.text("variant = 'unidad'"),
        ),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    product_id = db.Column(db.String(32), db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    variant = db.Column(db.String(64), nullable=False)
    units = db.Column(db.Integer, nullable=False, default=1)
    price_cents = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", back_populates="presentations")

    @property
    def is_base(self) -> bool:
        return self.variant == BASE_VARIANT

    def effective_price_cents(self) -> int:
        if self.price_cents is not None:
            return self.price_cents
        return self.product.price_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant": self.variant,
            "units": self.units,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    """Supplier of a business. Soft delete only (is_active)."""
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_business_name", "business_id", "name"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    business_id = db.Column(db.String(32), db.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(64), nullable=True)
    phone = db.Column(db.String(64), nullable=False, default="")
    address = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "tax_id": self.tax_id,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
