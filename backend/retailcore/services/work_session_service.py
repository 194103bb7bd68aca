"""
Work Session Service: cashier shifts and their running totals

DESIGN PRINCIPLES:
- One open session per (user, branch) at a time (partial unique index)
- Totals are accumulated incrementally, once per completed sale
- Closing is idempotent; only closed sessions may be deleted
- Accumulation is best-effort bookkeeping and never affects a sale
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Sale, WorkSession
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_with_retry
from .sales_service import PAYMENT_METHODS


class WorkSessionNotFoundError(NotFoundError):
    pass


class WorkSessionStateError(ConflictError):
    """Raised when an operation is invalid for the session's open/closed state."""
    pass


def _require_ids(user_id: str | None, branch_id: str | None) -> None:
    if not user_id:
        raise ValidationError("User id is required")
    if not branch_id:
        raise ValidationError("Branch id is required")


def _open_session_query(user_id: str, branch_id: str):
    return db.session.query(WorkSession).filter(
        WorkSession.user_id == user_id,
        WorkSession.branch_id == branch_id,
        WorkSession.closed_at.is_(None),
    )


def get_active_session(user_id: str, branch_id: str) -> WorkSession | None:
    """The open session of the user in the branch, if any."""
    return _open_session_query(user_id, branch_id).first()


def get_session(session_id: str) -> WorkSession:
    session = db.session.get(WorkSession, session_id)
    if session is None:
        raise WorkSessionNotFoundError(f"Session {session_id} not found")
    return session


def start_session(user_id: str, branch_id: str, *, started_at: datetime | None = None) -> WorkSession:
    """
    Open a session, or return the one already open for (user, branch).
    """
    _require_ids(user_id, branch_id)

    existing = get_active_session(user_id, branch_id)
    if existing is not None:
        return existing

    session = WorkSession(
        user_id=user_id,
        branch_id=branch_id,
        created_at=started_at or utcnow(),
        total_sales_cents=0,
        total_bonus_cents=0,
        payment_totals={},
    )
    db.session.add(session)
    try:
        db.session.commit()
    except IntegrityError:
        # Another writer opened it first
        db.session.rollback()
        existing = get_active_session(user_id, branch_id)
        if existing is None:
            raise
        return existing

    current_app.logger.info("Work session %s opened for user %s in branch %s", session.id, user_id, branch_id)
    return session


def update_session_on_sale(
    user_id: str,
    branch_id: str,
    sale_total_cents: int,
    sale_bonus_cents: int,
    payment_method: str,
    *,
    occurred_at: datetime | None = None,
) -> WorkSession:
    """
    Add one sale to the open session's running totals, opening a session when
    none is open. A session opened here starts at occurred_at so the sale
    falls inside it.
    """
    _require_ids(user_id, branch_id)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method '{payment_method}'")

    session = lock_for_update(_open_session_query(user_id, branch_id)).first()
    if session is None:
        session = start_session(user_id, branch_id, started_at=occurred_at)

    session.total_sales_cents = (session.total_sales_cents or 0) + sale_total_cents
    session.total_bonus_cents = (session.total_bonus_cents or 0) + sale_bonus_cents

    totals = dict(session.payment_totals or {})
    totals[payment_method] = totals.get(payment_method, 0) + sale_total_cents
    session.payment_totals = totals
    session.updated_at = utcnow()

    db.session.commit()
    return session


def on_sale_completed(
    sender,
    *,
    user_id,
    branch_id,
    total_cents,
    bonus_cents,
    payment_method,
    created_at=None,
    **_payload,
) -> None:
    """sale_completed receiver: accumulate the sale into the cashier's session."""
    run_with_retry(
        lambda: update_session_on_sale(
            user_id,
            branch_id,
            total_cents,
            bonus_cents,
            payment_method,
            occurred_at=created_at,
        )
    )


def close_session(user_id: str, branch_id: str | None = None) -> int:
    """
    Close the user's open session in a branch, or every open session of the
    user when branch_id is omitted. Returns how many sessions were closed.
    """
    if not user_id:
        raise ValidationError("User id is required")

    query = db.session.query(WorkSession).filter(
        WorkSession.user_id == user_id,
        WorkSession.closed_at.is_(None),
    )
    if branch_id:
        query = query.filter(WorkSession.branch_id == branch_id)

    now = utcnow()
    closed = query.update({"closed_at": now, "updated_at": now}, synchronize_session=False)
    db.session.commit()

    if closed:
        current_app.logger.info("Closed %s work session(s) for user %s", closed, user_id)
    return closed


def close_session_by_id(session_id: str) -> WorkSession:
    """Close one session. Already closed sessions are returned unchanged."""
    session = get_session(session_id)
    if session.closed_at is None:
        now = utcnow()
        session.closed_at = now
        session.updated_at = now
        db.session.commit()
    return session


def delete_session(session_id: str) -> None:
    session = get_session(session_id)
    if session.closed_at is None:
        raise WorkSessionStateError("Cannot delete an open session. Close it first.")
    db.session.delete(session)
    db.session.commit()


def get_session_sales(user_id: str, branch_id: str) -> list[Sale]:
    """Sales of the user in the branch since the open session started."""
    session = get_active_session(user_id, branch_id)
    if session is None:
        return []
    return (
        db.session.query(Sale)
        .filter(
            Sale.user_id == user_id,
            Sale.branch_id == branch_id,
            Sale.created_at >= session.created_at,
        )
        .order_by(Sale.created_at.asc())
        .all()
    )


def list_sessions(
    *,
    user_id: str | None = None,
    branch_id: str | None = None,
    open_only: bool = False,
) -> list[WorkSession]:
    """Sessions, newest first."""
    query = db.session.query(WorkSession)
    if user_id:
        query = query.filter(WorkSession.user_id == user_id)
    if branch_id:
        query = query.filter(WorkSession.branch_id == branch_id)
    if open_only:
        query = query.filter(WorkSession.closed_at.is_(None))
    return query.order_by(WorkSession.created_at.desc()).all()
