"""Normalization helpers for free-form model output."""

import re
from datetime import datetime

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_TIME_12H_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp])\.?\s*[Mm]\.?$")
_TIME_24H_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def clean_model_text(value: str) -> str:
    """Strip code fences, surrounding quotes and whitespace from model output.

    Examples:
        >>> clean_model_text('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
        >>> clean_model_text(' "2025-06-17" ')
        '2025-06-17'
    """
    value = _FENCE_RE.sub("", value.strip()).strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1].strip()
    return value


def normalize_date(value: str) -> str:
    """Return ``value`` as ``YYYY-MM-DD`` if it is a real calendar date, else ``""``."""
    value = clean_model_text(value or "")
    try:
        return datetime.strptime(value, "%Y-%m-%d").strftime("%Y-%m-%d")
    except ValueError:
        return ""


def normalize_time(value: str) -> str:
    """Return ``value`` as ``HH:MM AM/PM``, else ``""``.

    Accepts 12-hour input ("3:00 pm", "03:00 P.M.") and 24-hour "HH:MM".

    Examples:
        >>> normalize_time("3:00 pm")
        '03:00 PM'
        >>> normalize_time("15:30")
        '03:30 PM'
        >>> normalize_time("noon")
        ''
    """
    value = clean_model_text(value or "")
    match = _TIME_12H_RE.match(value)
    if match:
        hour, minute, half = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hour <= 12 or minute > 59:
            return ""
        return f"{hour:02d}:{minute:02d} {half}M"
    match = _TIME_24H_RE.match(value)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return ""
        return datetime(2000, 1, 1, hour, minute).strftime("%I:%M %p")
    return ""
