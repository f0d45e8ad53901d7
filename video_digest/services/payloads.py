from __future__ import annotations

import re
from typing import Any, cast

_NON_DIGIT_PATTERN = re.compile(r"\D")


def as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        converted: dict[str, Any] = {}
        for key, item in raw_dict.items():
            if isinstance(key, str):
                converted[key] = item
        return converted
    return {}


def as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        raw_list = cast(list[Any], value)
        return list(raw_list)
    return []


def coerce_text(raw_value: object) -> str:
    if isinstance(raw_value, str):
        return raw_value
    if raw_value is None or isinstance(raw_value, bool):
        return ""
    if isinstance(raw_value, (int, float)):
        return str(raw_value)
    return ""


def coerce_count(raw_value: object) -> int:
    """Non-negative integer from an int/float/numeric string; anything else is 0."""
    if isinstance(raw_value, bool):
        return 0
    if isinstance(raw_value, int):
        return max(0, raw_value)
    if isinstance(raw_value, float):
        if raw_value != raw_value:
            return 0
        return max(0, int(raw_value))
    if isinstance(raw_value, str):
        try:
            return max(0, int(raw_value.strip()))
        except ValueError:
            return 0
    return 0


def coerce_digit_count(raw_value: object) -> int:
    """Count from a decorated string by keeping only its digits ("1,234" -> 1234).

    Abbreviations are not expanded: "1.2K" becomes 12.
    """
    if isinstance(raw_value, str):
        digits = _NON_DIGIT_PATTERN.sub("", raw_value)
        if not digits:
            return 0
        return int(digits)
    return coerce_count(raw_value)
