"""fragile_city.units – display text → numbers.

The game UI renders plain counters ("-18,651"), magnitudes ("373.69k") and
gauges ("0/300.37k") with the same markup, so the shape of the text is the
only thing that tells them apart.  All helpers are pure and never raise.
"""
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from pydantic import BaseModel

__all__ = [
    "Bounded",
    "StatValue",
    "extract_integer",
    "parse_magnitude",
    "parse_value_or_range",
]


MAGNITUDE = {"k": Decimal(10) ** 3, "M": Decimal(10) ** 6, "G": Decimal(10) ** 9}

_INTEGER_RE = re.compile(r"-?\d[\d,]*")
_NUMBER = r"-?[\d,]*\.?\d+[kMG]?"
_MAGNITUDE_RE = re.compile(r"(-?[\d,]*\.?\d+)([kMG])?")
_RANGE_RE = re.compile(rf"({_NUMBER})\s*/\s*({_NUMBER})")


class Bounded(BaseModel):
    """A gauge-style current/max pair."""
    current: float
    max: float


# Either a plain scalar or a bounded quantity
StatValue = Union[float, Bounded]


def extract_integer(text: Optional[str]) -> Optional[int]:
    """First signed integer in *text*, thousands separators removed."""
    if not text:
        return None
    m = _INTEGER_RE.search(text)
    if not m:
        return None
    return int(m.group(0).replace(",", ""))


def parse_magnitude(text: Optional[str]) -> Optional[float]:
    """Signed decimal with an optional k/M/G suffix (case-sensitive)."""
    if not text:
        return None
    m = _MAGNITUDE_RE.search(text.strip())
    if not m:
        return None
    try:
        num = Decimal(m.group(1).replace(",", ""))
    except InvalidOperation:
        return None
    suffix = m.group(2)
    if suffix:
        num *= MAGNITUDE[suffix]
    return float(num)


def parse_value_or_range(text: Optional[str]) -> Optional[StatValue]:
    """``"A/B"`` → :class:`Bounded`; anything else → :func:`parse_magnitude`."""
    if not text:
        return None
    m = _RANGE_RE.search(text)
    if m:
        current = parse_magnitude(m.group(1))
        maximum = parse_magnitude(m.group(2))
        if current is not None and maximum is not None:
            return Bounded(current=current, max=maximum)
    return parse_magnitude(text)
