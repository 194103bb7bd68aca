# Overview: Pure stock arithmetic in base units; no I/O.

from __future__ import annotations


def _require_count(value, field: str, *, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field} must be an integer")
    if value < minimum:
        raise ValueError(f"{field} must be >= {minimum}")
    return value


def apply_stock_delta(current_stock: int, delta_base_units: int) -> int:
    """
    New stock after applying a signed base-unit delta, floored at zero.

    The floor only guards against races; callers reject insufficient stock
    before reaching this point.
    """
    _require_count(current_stock, "current_stock", minimum=0)
    if isinstance(delta_base_units, bool) or not isinstance(delta_base_units, int):
        raise ValueError("delta_base_units must be an integer")
    return max(0, current_stock + delta_base_units)


def base_units(presentation_units: int, quantity: int) -> int:
    """Base units represented by `quantity` presentations of `presentation_units` each."""
    _require_count(presentation_units, "presentation_units", minimum=1)
    _require_count(quantity, "quantity", minimum=1)
    return presentation_units * quantity


def sale_delta(presentation_units: int, quantity: int) -> int:
    return -base_units(presentation_units, quantity)


def receipt_delta(presentation_units: int, quantity: int) -> int:
    return base_units(presentation_units, quantity)
