# Overview: In-process after-commit events (blinker signals).

from __future__ import annotations

from blinker import Namespace
from flask import current_app

from .extensions import db

_signals = Namespace()

# Sent once a sale transaction has committed.
# Payload: sale_id, user_id, branch_id, total_cents, bonus_cents, payment_method, created_at
sale_completed = _signals.signal("sale-completed")


def publish(signal, sender=None, **payload) -> int:
    """
    Fire-and-forget dispatch of an after-commit event.

    Every receiver runs in isolation: a failing receiver has its pending
    session work rolled back and is logged, and never fails the operation
    that published the event or the receivers after it.

    Returns the number of receivers that completed.
    """
    delivered = 0
    for receiver in list(signal.receivers_for(sender)):
        try:
            receiver(sender, **payload)
            delivered += 1
        except Exception:
            db.session.rollback()
            current_app.logger.exception(
                "Event handler %s failed for %s",
                getattr(receiver, "__name__", repr(receiver)),
                signal.name,
            )
    return delivered
