"""
Level parsing and validation.

Exchange payloads carry prices and quantities as text. Anything that does not
parse to a finite number becomes 0.0, and the acceptance predicates below
rely on that: a zero price is never accepted, a zero quantity is a deletion.
"""

from __future__ import annotations

import math

from ..types import PriceLevel, RawLevel


def safe_float(value: object) -> float:
    """Parse numeric text or a number. Non-numeric, NaN and +/-inf map to 0.0."""
    if isinstance(value, bool):
        return 0.0
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(parsed) or math.isinf(parsed):
        return 0.0
    return parsed


def parse_level(raw: RawLevel, timestamp: int) -> PriceLevel:
    """
    Turn a raw [price, qty, ...] entry into a PriceLevel.

    Items past the quantity are ignored. An entry too short to hold both
    numbers, or not indexable at all, gets price 0 so both acceptance
    predicates reject it.
    """
    try:
        price_raw, qty_raw = raw[0], raw[1]
    except (TypeError, IndexError, KeyError):
        return PriceLevel(0.0, 0.0, timestamp)
    return PriceLevel(safe_float(price_raw), safe_float(qty_raw), timestamp)


def is_resting(level: PriceLevel) -> bool:
    """Snapshot acceptance: both price and quantity strictly positive."""
    return level.price > 0 and level.quantity > 0


def is_directive(level: PriceLevel) -> bool:
    """Diff acceptance: positive price, quantity 0 (delete) or positive (set)."""
    return level.price > 0 and level.quantity >= 0
