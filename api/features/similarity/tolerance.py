"""Character-length tolerance used by length-aware similarity search."""
from typing import Optional, Tuple

SHORT_TEXT_LIMIT = 50
SHORT_TEXT_TOLERANCE = 100
MAX_TOLERANCE = 500


def _scaled(query_length: int, tenths: int) -> int:
    """``query_length * tenths / 10`` rounded half up, in integer arithmetic."""
    return (query_length * tenths + 5) // 10


def length_tolerance(query_length: int) -> int:
    """Width of the acceptable neighbour-length window for a query of ``query_length`` chars.

    Short texts (titles) get a fixed absolute window; longer texts get a proportional
    window that tightens as they grow and is capped at MAX_TOLERANCE. Proportional
    widths round half up: 53 chars give 80, 203 chars give 102.
    """
    if query_length <= SHORT_TEXT_LIMIT:
        return SHORT_TEXT_TOLERANCE
    if query_length <= 200:
        return _scaled(query_length, 15)
    if query_length <= 1000:
        return _scaled(query_length, 5)
    return min(MAX_TOLERANCE, _scaled(query_length, 3))


def length_window(
    query_length: int, tolerance: Optional[int] = None
) -> Tuple[int, int]:
    """Inclusive ``(min_length, max_length)`` bounds, clamped at zero."""
    if tolerance is None:
        tolerance = length_tolerance(query_length)
    return max(0, query_length - tolerance), query_length + tolerance
