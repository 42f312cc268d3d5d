"""Shared utilities used across the booking core."""

import re
from datetime import date, datetime, timezone
from typing import Any

from bookingpro.errors import ValidationError

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("(555) 123-4567")
        '5551234567'
        >>> normalize_phone("+1 555 123 4567")
        '+15551234567'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def parse_date(value: Any) -> date:
    """Parse a ``YYYY-MM-DD`` calendar date, raising ValidationError on bad input."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"Invalid date: {value!r}")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r} (expected YYYY-MM-DD)") from None


def normalize_date(value: Any) -> str:
    return parse_date(value).strftime(DATE_FORMAT)


def normalize_time(value: Any) -> str:
    """Normalize a time-of-day to ``HH:MM``.

    Seconds are dropped, matching how stored times such as ``09:00:00``
    are compared against slot boundaries.

    Examples:
        >>> normalize_time("9:30")
        '09:30'
        >>> normalize_time("18:30:00")
        '18:30'
    """
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time: {value!r}")
    raw = value.strip()
    if re.fullmatch(r"\d{1,2}:\d{2}:\d{2}", raw):
        raw = raw.rsplit(":", 1)[0]
    try:
        return datetime.strptime(raw, TIME_FORMAT).strftime(TIME_FORMAT)
    except ValueError:
        raise ValidationError(f"Invalid time: {value!r} (expected HH:MM)") from None


def time_to_minutes(value: str) -> int:
    hours, minutes = normalize_time(value).split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def format_display_time(value: str) -> str:
    """Render ``HH:MM`` as a 12-hour clock label.

    Examples:
        >>> format_display_time("09:30")
        '9:30 AM'
        >>> format_display_time("18:00")
        '6:00 PM'
    """
    parsed = datetime.strptime(normalize_time(value), TIME_FORMAT)
    return parsed.strftime("%I:%M %p").lstrip("0")


def validate_company_id(company_id: Any) -> int:
    if isinstance(company_id, bool) or not isinstance(company_id, int) or company_id <= 0:
        raise ValidationError(f"Invalid company id: {company_id!r}")
    return company_id
