from __future__ import annotations

from ..extensions import db
from ..ids import new_id
from ..time_utils import utcnow, to_utc_z


class User(db.Model):
    """
    A person who can operate the point of sale.

    Credentials live with the external auth collaborator; this table only
    carries what receipts and session bookkeeping need.
    """
    __tablename__ = "users"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    email = db.Column(db.String(255), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }


class Business(db.Model):
    """
    Tenant root. Branches, suppliers and purchases belong to exactly one business.
    """
    __tablename__ = "businesses"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Business id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_id": self.tax_id,
            "description": self.description,
            "location": self.location,
            "created_at": to_utc_z(self.created_at),
        }


class BusinessUser(db.Model):
    """Owner membership of a user in a business."""
    __tablename__ = "businesses_users"
    __table_args__ = (
        db.UniqueConstraint("business_id", "user_id", name="uq_businesses_users_business_user"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    business_id = db.Column(db.String(32), db.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.String(32), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = db.Column(db.String(32), nullable=False, default="owner")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    business = db.relationship("Business", backref=db.backref("members", lazy=True))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "user_id": self.user_id,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Branch(db.Model):
    """
    Physical selling location of a business.

    Products, sales and work sessions are branch-scoped; a branch is
    transitively business-scoped.
    """
    __tablename__ = "branches"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    business_id = db.Column(db.String(32), db.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    business = db.relationship("Business", backref=db.backref("branches", lazy=True, order_by="Branch.created_at"))

    def __repr__(self) -> str:
        return f"<Branch id={self.id} business_id={self.business_id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "location": self.location,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }


class BranchUser(db.Model):
    """
    Cashier membership of a user in a branch.

    benefit_cents is the running bonification balance accrued from sales.
    """
    __tablename__ = "branches_users"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "user_id", name="uq_branches_users_branch_user"),
    )

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    branch_id = db.Column(db.String(32), db.ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.String(32), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = db.Column(db.String(32), nullable=False, default="cashier")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    benefit_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    branch = db.relationship("Branch", backref=db.backref("members", lazy=True))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "role": self.role,
            "is_active": self.is_active,
            "benefit_cents": self.benefit_cents,
            "created_at": to_utc_z(self.created_at),
        }
