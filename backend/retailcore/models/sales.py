from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from ..time_utils import utcnow, to_utc_z


class Sale(db.Model):
    """
    Sale header. Written once, together with its items, and never mutated.

    total_cents is the sum of item subtotals.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_created", "branch_id", "created_at"),
        db.Index("ix_sales_user_branch_created", "user_id", "branch_id", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    branch_id = db.Column(db.String(32), db.ForeignKey("branches.id"), nullable=False)
    user_id = db.Column(db.String(32), db.ForeignKey("users.id"), nullable=False)
    customer = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    branch = db.relationship("Branch")
    user = db.relationship("User")
    items = db.relationship("SaleItem", back_populates="sale", lazy=True, cascade="all, delete-orphan")

    @property
    def sale_number(self) -> str:
        return self.id[-8:].upper()

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "customer": self.customer,
            "payment_method": self.payment_method,
            "status": self.status,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Individual line of a sale; unit price and bonification are captured at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    sale_id = db.Column(db.String(32), db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_presentation_id = db.Column(
        db.String(32), db.ForeignKey("product_presentations.id"), nullable=False, index=True
    )

    # Count of presentations, not base units
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    bonification_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    sale = db.relationship("Sale", back_populates="items")
    presentation = db.relationship("ProductPresentation")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_presentation_id": self.product_presentation_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "bonification_cents": self.bonification_cents,
            "subtotal_cents": self.subtotal_cents,
            "created_at": to_utc_z(self.created_at),
        }
