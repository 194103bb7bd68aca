from __future__ import annotations

import uuid


def new_id() -> str:
    """Random 32-char hex identifier used as primary key for every table."""
    return uuid.uuid4().hex
