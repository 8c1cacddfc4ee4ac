from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
import re
from typing import Iterable

from .errors import InvalidMonthToken
from .models import MonthRange, TravelEntry

ISO_TS = "%Y-%m-%dT%H:%M:%S.%fZ"

MONTH_TOKEN = re.compile(r"([0-9]{4})-([0-9]{2})")
ISO_DATE = re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2})")
DEFAULT_TRAVELER = "Traveler"


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime(ISO_TS)


def parse_month(token: str) -> date | None:
    """Return the first day of a strict ``YYYY-MM`` token, or None."""
    if not isinstance(token, str):
        return None
    match = MONTH_TOKEN.fullmatch(token)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), 1)
    except ValueError:
        return None


def parse_iso_date(value: str) -> date | None:
    if not isinstance(value, str):
        return None
    match = ISO_DATE.fullmatch(value)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def month_range(token: str) -> MonthRange:
    first = parse_month(token)
    if first is None:
        raise InvalidMonthToken(token)
    last_day = calendar.monthrange(first.year, first.month)[1]
    return MonthRange(start=first.isoformat(), end=first.replace(day=last_day).isoformat())


def current_month(today: date | None = None) -> str:
    today = today or date.today()
    return today.strftime("%Y-%m")


def default_entry_date(month: str, current: str | None = None) -> str | None:
    """Keep ``current`` when it falls inside ``month``, else the month's first day."""
    first = parse_month(month)
    if first is None:
        return current
    parsed = parse_iso_date(current) if current else None
    if parsed and (parsed.year, parsed.month) == (first.year, first.month):
        return current
    return first.isoformat()


def format_month_human(token: str) -> str:
    first = parse_month(token)
    return first.strftime("%B %Y") if first else token


def format_date_for_display(iso_date: str) -> str:
    parsed = parse_iso_date(iso_date)
    return parsed.strftime("%m/%d/%Y") if parsed else iso_date


def total_miles(entries: Iterable[TravelEntry]) -> float:
    return sum((float(entry.miles or 0) for entry in entries), 0.0)


def build_export_filename(display_name: str, month: str) -> str:
    first = parse_month(month)
    month_part = first.strftime("%m_%Y") if first else month.replace("-", "_", 1)

    name_parts = display_name.strip().split() if display_name else []
    first_name = name_parts[0] if name_parts else DEFAULT_TRAVELER
    last_name = name_parts[-1] if len(name_parts) > 1 else ""
    joined = "_".join(part for part in (first_name, last_name) if part)
    normalized = re.sub(r"[^A-Za-z0-9_]", "", joined) or DEFAULT_TRAVELER

    return f"{normalized}_{month_part} Mileage.xlsx"
