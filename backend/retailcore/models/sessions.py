from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from ..time_utils import utcnow, to_utc_z


class WorkSession(db.Model):
    """
    A cashier's shift at a branch, accumulating sale totals until closed.

    INVARIANTS:
    - At most one open session (closed_at IS NULL) per (user_id, branch_id)
    - total_sales_cents equals the sum of sale totals recorded while open
    - payment_totals maps payment method -> cents; always reassigned, never mutated in place
    """
    __tablename__ = "user_sessions"
    __table_args__ = (
        db.Index(
            "uq_user_sessions_one_open",
            "user_id",
            "branch_id",
            unique=True,
            sqlite_where=db.text("closed_at IS NULL"),
            postgresql_where=db.text("closed_at IS NULL"),
        ),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    user_id = db.Column(db.String(32), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = db.Column(db.String(32), db.ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    closed_at = db.Column(db.DateTime, nullable=True)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_bonus_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_totals = db.Column(db.JSON, nullable=False, default=dict)

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "closed_at": to_utc_z(self.closed_at),
            "is_open": self.is_open,
            "total_sales_cents": self.total_sales_cents,
            "total_bonus_cents": self.total_bonus_cents,
            "payment_totals": dict(self.payment_totals or {}),
        }
