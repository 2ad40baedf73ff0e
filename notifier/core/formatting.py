# notifier/core/formatting.py
"""
Display helpers shared by the message templates.

Dates are shown as ``DD.MM.YYYY`` or ``DD.MM.YYYY, HH:MM`` in the display
timezone. A value that already has one of those exact shapes is returned as
is. Every helper is total: bad input is shown verbatim, missing input becomes
the placeholder.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from notifier.config import settings

PLACEHOLDER = "Не указано"
DEFAULT_EQUIPMENT = "БТ"

DATE_FORMAT = "%d.%m.%Y"
DATETIME_FORMAT = "%d.%m.%Y, %H:%M"

_DISPLAY_DATE_RE = re.compile(r"^\d{2}\.\d{2}\.\d{4}$")
_DISPLAY_DATETIME_RE = re.compile(r"^\d{2}\.\d{2}\.\d{4}, \d{2}:\d{2}$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@lru_cache(maxsize=8)
def _zone(name: str):
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def display_tz():
    return _zone(settings.display_timezone)


def to_local(value: datetime) -> datetime:
    """Aware datetimes are converted; naive ones are taken as display-local."""
    tz = display_tz()
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def local_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return to_local(value).date()
    return value


def is_display_formatted(value: str) -> bool:
    return bool(_DISPLAY_DATE_RE.match(value) or _DISPLAY_DATETIME_RE.match(value))


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def text(value: Any, default: str = PLACEHOLDER) -> str:
    """Value as display text, ``default`` when missing or empty."""
    if is_blank(value):
        return default
    if isinstance(value, bool):
        return "Да" if value else "Нет"
    if isinstance(value, (int, float, Decimal)):
        return format_amount(value)
    return str(value).strip()


def format_amount(value: int | float | Decimal) -> str:
    if not isinstance(value, (float, Decimal)):
        return str(value)
    try:
        integral = value == int(value)
    except (ValueError, OverflowError, ArithmeticError):
        integral = False
    return str(int(value)) if integral else str(value)


def format_date(value: Any, with_time: bool = False) -> str:
    """
    Normalise a date-like value for display.

    Accepts datetime/date objects and ISO-8601 strings. Strings already in
    display form pass through untouched; anything unparsable is shown as is.
    """
    if is_blank(value):
        return PLACEHOLDER

    if isinstance(value, datetime):
        try:
            local = to_local(value)
        except (OverflowError, ValueError):
            # out of range once shifted to the display timezone
            return value.isoformat()
        return local.strftime(DATETIME_FORMAT if with_time else DATE_FORMAT)

    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)

    raw = str(value).strip()
    if is_display_formatted(raw):
        return raw

    if _ISO_DATE_RE.match(raw):
        try:
            return date.fromisoformat(raw).strftime(DATE_FORMAT)
        except ValueError:
            return raw

    parsed = parse_datetime(raw)
    if parsed is None:
        return raw
    try:
        local = to_local(parsed)
    except (OverflowError, ValueError):
        return raw
    return local.strftime(DATETIME_FORMAT if with_time else DATE_FORMAT)


def format_datetime(value: Any) -> str:
    return format_date(value, with_time=True)


def parse_datetime(raw: str) -> datetime | None:
    candidate = raw.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(candidate)
    except ValueError:
        return None


def parse_date(value: Any) -> date | None:
    """Calendar date (display timezone) of a date-like value, None when unknown."""
    if is_blank(value):
        return None
    if isinstance(value, (date, datetime)):
        return local_date(value)
    raw = str(value).strip()
    if _DISPLAY_DATE_RE.match(raw) or _DISPLAY_DATETIME_RE.match(raw):
        try:
            return datetime.strptime(raw[:10], DATE_FORMAT).date()
        except ValueError:
            return None
    if _ISO_DATE_RE.match(raw):
        try:
            return date.fromisoformat(raw)
        except ValueError:
            return None
    parsed = parse_datetime(raw)
    if parsed is None:
        return None
    try:
        return local_date(parsed)
    except (OverflowError, ValueError):
        return None
