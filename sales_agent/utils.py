"""Shared utilities used across the sales agent."""

import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")
_CONFIDENCE_TOKEN = re.compile(r"\b(0(?:\.\d+)?|1(?:\.0+)?)\b")


def utc_now_iso() -> str:
    """Current UTC timestamp in ISO8601 format."""
    return datetime.now(timezone.utc).isoformat()


def to_number(value: Any, fallback: float = 0.0) -> float:
    """Coerce a value to a finite float, returning ``fallback`` otherwise.

    Examples:
        >>> to_number("3")
        3.0
        >>> to_number("abc", 1)
        1
    """
    if isinstance(value, bool) or value is None:
        return fallback
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(parsed):
        return fallback
    return parsed


def clamp01(value: Any, fallback: float = 0.0) -> float:
    """Clamp a value into [0, 1]; non-numeric, NaN and missing give ``fallback``."""
    parsed = to_number(value, math.nan)
    if math.isnan(parsed):
        return fallback
    return max(0.0, min(1.0, parsed))


def round_money(value: Any) -> float:
    """Round an amount to cents."""
    return round(to_number(value) * 100) / 100


def extract_json_block(text: Any) -> Optional[dict[str, Any]]:
    """Parse the outermost ``{...}`` span of a model response.

    Returns None when there is no span, it does not parse, or it is not an
    object.
    """
    if not text:
        return None
    match = _JSON_BLOCK.search(str(text).strip())
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def find_confidence_token(text: Any, fallback: float = 0.5) -> float:
    """Return the first standalone 0, 0.x, 1 or 1.0 token in free text."""
    match = _CONFIDENCE_TOKEN.search(str(text or ""))
    if not match:
        return fallback
    return clamp01(match.group(1), fallback)


def first_present(*values: Any) -> Any:
    """Return the first truthy value, or None."""
    for value in values:
        if value:
            return value
    return None


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("0412 345 678")
        '0412345678'
        >>> normalize_phone("+61 (412) 345-678")
        '+61412345678'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)
