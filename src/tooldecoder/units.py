"""Linear and feed-rate unit conversions shared by all parsers."""

from __future__ import annotations

__all__ = [
    "MM_PER_INCH",
    "RATE_IN_PER_MIN",
    "RATE_MM_PER_SEC",
    "in_to_mm",
    "mm_to_in",
    "per_min_to_per_sec",
    "rate_to_per_sec",
]

MM_PER_INCH = 25.4

# Rate unit codes stored in Aspire tool databases.
RATE_MM_PER_SEC = 0
RATE_IN_PER_MIN = 4


def in_to_mm(value: float) -> float:
    return value * MM_PER_INCH


def mm_to_in(value: float) -> float:
    return value / MM_PER_INCH


def per_min_to_per_sec(value: float) -> float:
    return value / 60


def rate_to_per_sec(value: float, rate_units: int | None, metric: bool) -> float:
    """Convert a stored feed rate into the per-second rate of the tool's unit system.

    Args:
        value: Rate as stored in the source.
        rate_units: Source rate unit code (0 = mm/sec, 4 = in/min).
        metric: Whether the tool is expressed in mm (result in mm/sec)
            or inches (result in in/sec).

    Returns:
        The converted rate. Unknown unit codes pass through unchanged.
    """
    if rate_units == RATE_MM_PER_SEC:
        return value if metric else mm_to_in(value)
    if rate_units == RATE_IN_PER_MIN:
        in_per_sec = per_min_to_per_sec(value)
        return in_to_mm(in_per_sec) if metric else in_per_sec
    return value
