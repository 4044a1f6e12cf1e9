"""Utility helpers for the HydraWatch service."""

from __future__ import annotations

import math
import re
from typing import Any, Mapping


YEAR_RE = re.compile(r"(1[89]|2[01])\d{2}")


def coerce_int(value: Any, *, default: int | None = None) -> int | None:
    """Return ``value`` as an integer, accepting numeric strings."""

    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            return default
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return int(text, 10)
        except ValueError:
            return default
    return default


def coerce_positive_int(value: Any) -> int | None:
    """Return ``value`` as an integer greater than zero or ``None``."""

    number = coerce_int(value)
    if number is None or number <= 0:
        return None
    return number


def coerce_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_year(value: Any) -> int | None:
    """Extract a four digit year from integers or date-like strings."""

    if isinstance(value, int) and not isinstance(value, bool):
        return value if 1800 <= value <= 2199 else None
    if not value:
        return None
    match = YEAR_RE.search(str(value))
    if not match:
        return None
    return int(match.group(0))


def first_present(data: Mapping[str, Any], *keys: str) -> Any:
    """Return the first value under ``keys`` that is not ``None``."""

    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
