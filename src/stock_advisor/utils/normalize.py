"""Numeric normalization helpers shared by the engines and the output layer.

Upstream financial payloads mix floats, numeric strings, sentinel strings
("None", "-", "") and NaN. Everything is funneled through ``parse_number`` so
the engines only ever see ``float | None``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

# String sentinels used by data vendors for "no value"
NULL_SENTINELS = frozenset({"", "none", "null", "nan", "n/a", "na", "-", "--"})


def _is_nan_or_inf(value: Any) -> bool:
    """Check if value is a float NaN or infinity."""
    if isinstance(value, float):
        return math.isnan(value) or math.isinf(value)
    return False


def sanitize_nan_inf(obj: Any) -> Any:
    """Recursively replace NaN/inf with None so output is valid JSON."""
    if _is_nan_or_inf(obj):
        return None
    if isinstance(obj, dict):
        return {k: sanitize_nan_inf(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize_nan_inf(v) for v in obj]
    return obj


def parse_number(value: Any) -> float | None:
    """
    Parse a vendor value into a float.

    None, NaN, infinities, booleans, sentinel strings and anything
    non-numeric normalize to None. Never raises.

    Args:
        value: Raw value (number, numeric string, sentinel, or junk)

    Returns:
        Float value or None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if text.lower() in NULL_SENTINELS:
            return None
        if text.endswith("%"):
            text = text[:-1]
        value = text
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_round(value: float | None, decimals: int = 2) -> float | None:
    """Round value, passing None through."""
    if value is None:
        return None
    return round(value, decimals)


def round_half_up(value: float) -> int:
    """Round to nearest integer with .5 going up (Python's round() is banker's)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def average(values: Iterable[float | None]) -> float | None:
    """Mean of the non-null values, or None when there are none."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def to_percent(value: float | None) -> float | None:
    """Convert a fraction (0.25) to a percentage (25.0)."""
    if value is None:
        return None
    return value * 100


_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def sanitize_text(text: Any, max_length: int = 500) -> str | None:
    """
    Clean untrusted free text (news titles, summaries, sector strings).

    Strips control characters, collapses whitespace and truncates to
    max_length with an ellipsis.
    """
    if text is None:
        return None
    cleaned = " ".join(_CONTROL_CHARS.sub(" ", str(text)).split())
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length].rstrip() + "..."
    return cleaned
