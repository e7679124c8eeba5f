"""Numeric helpers shared by generation and costing."""

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    Python's round() uses banker's rounding (2.5 -> 2); frequency scaling
    needs 2.5 -> 3.
    """
    return int(math.floor(value + 0.5))


def round_to(value: float, places: int = 2) -> float:
    """Half-up rounding to a fixed number of decimal places."""
    factor = 10**places
    return math.floor(value * factor + 0.5) / factor


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def to_int(value) -> int:
    """Coerce a raw assessment response to an int.

    Raw items arrive as ints, floats, numeric strings, booleans or None.
    Anything that is not numeric counts as 0.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        if isinstance(value, float):
            return int(value)
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        return 0
