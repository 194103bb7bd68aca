"""
Branch Directory Service: membership and branch resolution

Every operation runs for a user inside one business. The business is found
through the user's memberships (owner first, then cashier); the branch id the
caller supplies is then normalized against that business.

BRANCH ALIAS:
Older clients send the business id where a branch id is expected. Such an id
(and, for lenient callers, any id that is not a branch of the business) is
replaced by the business's first branch, which is created lazily when the
business has none.

USAGE:
    business_id = resolve_business_id(ctx.user_id)
    branch_id = resolve_branch_id(business_id, ctx.branch_id)
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Branch, BranchUser, Business, BusinessUser, User
from ..validation import NotFoundError, ValidationError
from .concurrency import run_with_retry


def get_user(user_id: str | None) -> User | None:
    if not user_id:
        return None
    return db.session.get(User, user_id)


def resolve_business_id(user_id: str) -> str:
    """
    Business of the user: active owner membership, else active cashier membership.

    Raises:
        NotFoundError: user has no active membership
    """
    owner = (
        db.session.query(BusinessUser)
        .filter_by(user_id=user_id, is_active=True)
        .order_by(BusinessUser.created_at.asc())
        .first()
    )
    if owner is not None:
        return owner.business_id

    cashier = (
        db.session.query(BranchUser)
        .join(Branch, Branch.id == BranchUser.branch_id)
        .filter(BranchUser.user_id == user_id, BranchUser.is_active.is_(True))
        .order_by(BranchUser.created_at.asc())
        .first()
    )
    if cashier is not None:
        return cashier.branch.business_id

    raise NotFoundError("User does not belong to any business")


def get_or_create_default_branch(business_id: str) -> Branch:
    """
    First branch of the business (oldest), created and flushed when missing.

    The caller owns the transaction; nothing is committed here.
    """
    branch = (
        db.session.query(Branch)
        .filter_by(business_id=business_id)
        .order_by(Branch.created_at.asc(), Branch.id.asc())
        .first()
    )
    if branch is not None:
        return branch

    business = db.session.get(Business, business_id)
    if business is None:
        raise NotFoundError("Business not found")

    branch = Branch(
        business_id=business_id,
        name=current_app.config.get("DEFAULT_BRANCH_NAME", "Sucursal Principal"),
        location=business.location,
    )
    db.session.add(branch)
    db.session.flush()
    current_app.logger.info("Created default branch %s for business %s", branch.id, business_id)
    return branch


def resolve_branch_id(business_id: str, branch_id: str | None, *, strict: bool = False) -> str:
    """
    Normalize a caller-supplied branch id against the business.

    - missing, or equal to the business id -> default branch
    - a branch of the business -> unchanged
    - anything else -> default branch (lenient) or ValidationError (strict)
    """
    if not branch_id or branch_id == business_id:
        return get_or_create_default_branch(business_id).id

    branch = db.session.get(Branch, branch_id)
    if branch is not None and branch.business_id == business_id:
        return branch.id

    if strict:
        raise ValidationError("Branch does not belong to the business")

    current_app.logger.debug(
        "Branch %s is not a branch of business %s; using the default branch", branch_id, business_id
    )
    return get_or_create_default_branch(business_id).id


def accrue_cashier_benefit(user_id: str, branch_id: str, bonus_cents: int) -> int | None:
    """
    Add accrued bonification to the user's cashier membership in the branch.

    Returns the new balance, or None when the user is not a cashier of the
    branch (owners selling do not accrue). Does not commit.
    """
    membership = (
        db.session.query(BranchUser)
        .filter_by(user_id=user_id, branch_id=branch_id)
        .first()
    )
    if membership is None:
        return None
    membership.benefit_cents = (membership.benefit_cents or 0) + bonus_cents
    return membership.benefit_cents


def on_sale_completed(sender, *, user_id, branch_id, bonus_cents, **_payload) -> None:
    """sale_completed receiver: credit the cashier's bonification balance."""
    if not bonus_cents:
        return

    def _op():
        balance = accrue_cashier_benefit(user_id, branch_id, bonus_cents)
        db.session.commit()
        return balance

    run_with_retry(_op)


def reset_user_benefit(branch_id: str, user_id: str) -> int:
    """
    Zero the cashier's accrued bonification (paid out). Returns the balance
    that was cleared.

    Raises:
        NotFoundError: user is not a member of the branch
    """
    membership = (
        db.session.query(BranchUser)
        .filter_by(user_id=user_id, branch_id=branch_id)
        .first()
    )
    if membership is None:
        raise NotFoundError("User is not a member of the branch")
    cleared = membership.benefit_cents or 0
    membership.benefit_cents = 0
    db.session.commit()
    current_app.logger.info("Reset benefit of user %s in branch %s (%s cents)", user_id, branch_id, cleared)
    return cleared
