from __future__ import annotations

import math


def seconds_to_duration_notation(total_seconds: float) -> str:
    """Render seconds as an ISO-8601 duration (`PT1H2M3S`); the seconds unit is always present."""
    if not isinstance(total_seconds, (int, float)) or math.isnan(total_seconds):
        total_seconds = 0
    if math.isinf(total_seconds):
        total_seconds = 0
    whole_seconds = max(0, math.floor(total_seconds))

    hours, remainder = divmod(whole_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    parts = ["PT"]
    if hours:
        parts.append(f"{hours}H")
    if minutes:
        parts.append(f"{minutes}M")
    parts.append(f"{seconds}S")
    return "".join(parts)


def parse_duration_to_seconds(value: float | int | str | None) -> float:
    """Accept any duration shape the metadata sources produce.

    Numbers pass through untouched; strings are `S`, `M:S` or `H:M:S`.
    Anything unparseable yields 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if not value:
        return 0

    parts = value.strip().split(":")
    if not 1 <= len(parts) <= 3:
        return 0

    numbers: list[float] = []
    for part in parts:
        try:
            number = float(part)
        except ValueError:
            return 0
        if math.isnan(number) or math.isinf(number):
            return 0
        numbers.append(number)

    total = 0.0
    for number in numbers:
        total = total * 60 + number
    return total


def format_timestamp(start_seconds: float) -> str:
    """`mm:ss`, or `hh:mm:ss` once the hour component is non-zero."""
    whole_seconds = max(0, math.floor(start_seconds))
    hours, remainder = divmod(whole_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"
