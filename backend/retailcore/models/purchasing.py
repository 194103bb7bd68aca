from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from ..time_utils import utcnow, to_utc_z


class Purchase(db.Model):
    """
    Purchase order from a supplier.

    LIFECYCLE:
    - pending -> approved -> received
    - pending | approved -> cancelled
    - received may be entered directly at creation
    - received and cancelled are terminal

    approved_by/approved_at are only set by approval, received_at only by receipt.
    expected_delivery_at schedules an automatic receipt of a pending or approved order.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.Index("ix_purchases_business_status", "business_id", "status"),
        db.Index("ix_purchases_branch_created", "branch_id", "created_at"),
        db.Index("ix_purchases_status_delivery", "status", "expected_delivery_at"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    business_id = db.Column(db.String(32), db.ForeignKey("businesses.id"), nullable=False)
    branch_id = db.Column(db.String(32), db.ForeignKey("branches.id"), nullable=True)
    supplier_id = db.Column(db.String(32), db.ForeignKey("suppliers.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, default="purchase")
    status = db.Column(db.String(16), nullable=False, default="pending")
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    expected_delivery_at = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.String(32), db.ForeignKey("users.id"), nullable=True)
    approved_by = db.Column(db.String(32), db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    received_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    supplier = db.relationship("Supplier")
    branch = db.relationship("Branch")
    items = db.relationship("PurchaseItem", back_populates="purchase", lazy=True, cascade="all, delete-orphan")

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "branch_id": self.branch_id,
            "supplier_id": self.supplier_id,
            "type": self.type,
            "status": self.status,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "expected_delivery_at": to_utc_z(self.expected_delivery_at),
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "received_at": to_utc_z(self.received_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseItem(db.Model):
    """Line of a purchase order; quantity is in base units."""
    __tablename__ = "purchase_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_positive"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    purchase_id = db.Column(db.String(32), db.ForeignKey("purchases.id", ondelete="CASCADE"), nullable=False, index=True)
    product_presentation_id = db.Column(
        db.String(32), db.ForeignKey("product_presentations.id"), nullable=False, index=True
    )
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    purchase = db.relationship("Purchase", back_populates="items")
    presentation = db.relationship("ProductPresentation")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "product_presentation_id": self.product_presentation_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "subtotal_cents": self.subtotal_cents,
            "created_at": to_utc_z(self.created_at),
        }
