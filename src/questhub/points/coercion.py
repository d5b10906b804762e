"""Normalization of point values coming from forms and API payloads.

Stored point rewards are always non-negative integers. Anything that does not
parse to one becomes 0 instead of propagating NaN/None into the ledger.
"""

from __future__ import annotations

import math
import re
from typing import Any

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def coerce_points(value: Any) -> int:
    """Coerce ``value`` to a non-negative int.

    >>> coerce_points("150")
    150
    >>> coerce_points("12abc")
    12
    >>> coerce_points("abc"), coerce_points(""), coerce_points(None), coerce_points(-50)
    (0, 0, 0, 0)
    """
    if value is None or isinstance(value, bool):
        return 0

    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return 0
        number = int(value)
    elif isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match is None:
            return 0
        number = int(match.group(1))
    else:
        return 0

    return max(number, 0)


def is_clean_points(value: Any) -> bool:
    """True when ``value`` is already a non-negative int (no coercion needed)."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
