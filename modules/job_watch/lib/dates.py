"""
Tolerant posting-date parser.

Job boards mix relative ("2 days ago"), Spanish relative ("hace 3 horas",
"ayer") and absolute formats, and some omit the year on recent postings.
parse_posted_date() tries a fixed cascade and returns the first match; the
order is significant and must not be rearranged.

  1. "hoy" / "ayer"
  2. hace N hora(s)|dia(s)|semana(s)
  3. N minute(s)|hour(s)|day(s)|week(s) ago
  4. ISO-8601
  5. fixed absolute formats (_ABSOLUTE_FORMATS)
  6. month name + day [+ year], English or Spanish; current year if absent

Every returned value is a timezone-aware UTC datetime. Absolute dates without
an explicit offset are taken as UTC midnight.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from dateutil import parser as date_parser

from .utils import now_utc, strip_accents

_HOUR = timedelta(hours=1)
_DAY = timedelta(days=1)
_WEEK = timedelta(weeks=1)

_SPANISH_RELATIVE_RE = re.compile(r"^hace\s+(\d+)\s+(horas?|dias?|semanas?)$")
_ENGLISH_RELATIVE_RE = re.compile(r"^(\d+)\s+(minutes?|hours?|days?|weeks?)\s+ago$")
_MONTH_DAY_RE = re.compile(r"^([a-záéíóúñ]+)\.?\s+(\d{1,2})(?:,?\s*(\d{4}))?$")

_SPANISH_UNITS = {"hora": _HOUR, "dia": _DAY, "semana": _WEEK}
_ENGLISH_UNITS = {"minute": timedelta(minutes=1), "hour": _HOUR, "day": _DAY, "week": _WEEK}

# strptime equivalents of yyyy-MM-dd, MM/dd/yyyy, dd/MM/yyyy, yyyy/MM/dd,
# "MMMM dd, yyyy" and "MMM dd, yyyy". MM/dd wins over dd/MM when both fit.
_ABSOLUTE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
)

_MONTHS = {
    "jan": 1, "january": 1, "ene": 1, "enero": 1,
    "feb": 2, "february": 2, "febrero": 2,
    "mar": 3, "march": 3, "marzo": 3,
    "apr": 4, "april": 4, "abr": 4, "abril": 4,
    "may": 5, "mayo": 5,
    "jun": 6, "june": 6, "junio": 6,
    "jul": 7, "july": 7, "julio": 7,
    "aug": 8, "august": 8, "ago": 8, "agosto": 8,
    "sep": 9, "sept": 9, "september": 9, "septiembre": 9, "setiembre": 9,
    "oct": 10, "october": 10, "octubre": 10,
    "nov": 11, "november": 11, "noviembre": 11,
    "dec": 12, "december": 12, "dic": 12, "diciembre": 12,
}


def parse_posted_date(raw: object, now: datetime | None = None) -> datetime | None:
    """
    Normalize a free-form posting date. Returns None when nothing matches;
    never raises, whatever the input.
    """
    if not isinstance(raw, str):
        return None
    cleaned = " ".join(raw.strip().lower().split())
    if not cleaned:
        return None
    now = now or now_utc()

    try:
        for step in (_parse_token, _parse_spanish_relative, _parse_english_relative):
            result = step(cleaned, now)
            if result is not None:
                return result

        result = _parse_iso(raw.strip())
        if result is not None:
            return result

        for step in (_parse_absolute, _parse_month_day):
            result = step(cleaned, now)
            if result is not None:
                return result
    except (ValueError, OverflowError):
        # Relative amounts large enough to leave datetime's range.
        return None
    return None


def is_within_days(date: datetime, days: int, now: datetime | None = None) -> bool:
    """
    True if `date` is at most `days` whole days in the past. The difference is
    truncated toward zero, so a date a few hours in the future counts as day 0.
    """
    now = now or now_utc()
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    diff_days = int((now - date) / _DAY)
    return 0 <= diff_days <= days


# ---- cascade steps ------------------------------------------------------------


def _parse_token(cleaned: str, now: datetime) -> datetime | None:
    if cleaned == "hoy":
        return now
    if cleaned == "ayer":
        return now - _DAY
    return None


def _parse_spanish_relative(cleaned: str, now: datetime) -> datetime | None:
    m = _SPANISH_RELATIVE_RE.match(strip_accents(cleaned))
    if not m:
        return None
    unit = m.group(2).rstrip("s")
    return now - int(m.group(1)) * _SPANISH_UNITS[unit]


def _parse_english_relative(cleaned: str, now: datetime) -> datetime | None:
    m = _ENGLISH_RELATIVE_RE.match(cleaned)
    if not m:
        return None
    unit = m.group(2).rstrip("s")
    return now - int(m.group(1)) * _ENGLISH_UNITS[unit]


def _parse_iso(text: str) -> datetime | None:
    try:
        parsed = date_parser.isoparse(text)
    except (ValueError, OverflowError):
        return None
    return _as_utc(parsed)


def _parse_absolute(cleaned: str, now: datetime) -> datetime | None:
    for fmt in _ABSOLUTE_FORMATS:
        try:
            return _as_utc(datetime.strptime(cleaned, fmt))
        except ValueError:
            continue
    return None


def _parse_month_day(cleaned: str, now: datetime) -> datetime | None:
    m = _MONTH_DAY_RE.match(cleaned)
    if not m:
        return None
    month = _MONTHS.get(strip_accents(m.group(1)))
    if month is None:
        return None
    year = int(m.group(3)) if m.group(3) else now.year
    try:
        return datetime(year, month, int(m.group(2)), tzinfo=timezone.utc)
    except ValueError:
        return None


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
