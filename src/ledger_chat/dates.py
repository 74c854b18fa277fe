"""
Date resolution for extracted transactions.

Everything is resolved against an explicit reference date so results are
reproducible; callers pass ``date.today()`` at the edge.
"""

import re
from datetime import date, datetime, timedelta

from .schemas.transaction import UNKNOWN_DATE

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

# Shared with the extractors so every regex recognises the same phrases.
DATE_PHRASE_PATTERN = (
    r"(?:yesterday|today"
    r"|(?:last|this)\s+(?:mon|tues|wednes|thurs|fri|satur|sun)day"
    r"|(?:mon|tues|wednes|thurs|fri|satur|sun)day"
    r"|\d{4}-\d{2}-\d{2}"
    r"|\d{1,2}/\d{1,2}(?:/\d{2,4})?"
    r"|(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?\s+\d{1,2}(?:st|nd|rd|th)?"
    r"(?:,?\s*\d{4})?)"
)

# Statement block headers: "Apr 17, 2025" or "04/17/2025" on a line of their own
STATEMENT_DATE_HEADER_RE = re.compile(
    r"^(?:(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)\s+\d{1,2},\s+\d{4}"
    r"|\d{1,2}/\d{1,2}/\d{4})$"
)

_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_SLASH_RE = re.compile(r"^(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?$")
_MONTH_NAME_RE = re.compile(
    r"^(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?\s+(\d{1,2})(?:st|nd|rd|th)?"
    r"(?:,?\s*(\d{4}))?$"
)
_WEEKDAY_RE = re.compile(r"^(?:(last|this|on)\s+)?(monday|tuesday|wednesday|thursday|friday|saturday|sunday)$")


def is_iso_date(value: str) -> bool:
    """True for a real calendar date in YYYY-MM-DD form."""
    if not value or not _ISO_RE.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _expand_year(year_str: str | None, reference: date) -> int:
    if not year_str:
        return reference.year
    year = int(year_str)
    if year < 100:
        year += 2000
    return year


def resolve_date(text: str | None, reference: date) -> str:
    """
    Resolve an absolute or relative date phrase to YYYY-MM-DD.

    Understands today/yesterday, weekday names ("Monday" is the most recent
    Monday on or before the reference, "last Monday" is strictly before it),
    ISO dates, m/d[/y] and month-name dates.

    Args:
        text: Date phrase as typed by the user or printed on a statement
        reference: Date that "today" refers to

    Returns:
        ISO date string, or "unknown" when the phrase cannot be resolved
    """
    if not text:
        return UNKNOWN_DATE

    phrase = re.sub(r"\s+", " ", text.strip().lower())
    if not phrase or phrase == UNKNOWN_DATE:
        return UNKNOWN_DATE

    if phrase == "today":
        return reference.isoformat()
    if phrase == "yesterday":
        return (reference - timedelta(days=1)).isoformat()

    resolved: date | None = None

    weekday_match = _WEEKDAY_RE.match(phrase)
    iso_match = _ISO_RE.match(phrase)
    slash_match = _SLASH_RE.match(phrase)
    month_match = _MONTH_NAME_RE.match(phrase)

    if weekday_match:
        qualifier, weekday_name = weekday_match.groups()
        days_back = (reference.weekday() - WEEKDAYS[weekday_name]) % 7
        if qualifier == "last" and days_back == 0:
            days_back = 7
        resolved = reference - timedelta(days=days_back)
    elif iso_match:
        year, month, day = iso_match.groups()
        resolved = _safe_date(int(year), int(month), int(day))
    elif slash_match:
        month, day, year = slash_match.groups()
        resolved = _safe_date(_expand_year(year, reference), int(month), int(day))
    elif month_match:
        month_name, day, year = month_match.groups()
        resolved = _safe_date(_expand_year(year, reference), MONTHS[month_name], int(day))

    if resolved is None:
        return UNKNOWN_DATE
    return resolved.isoformat()


def normalize_llm_date(value: object, reference: date) -> str:
    """Validate a date coming back from the model; anything unparsable is "unknown"."""
    if not isinstance(value, str):
        return UNKNOWN_DATE
    value = value.strip()
    if is_iso_date(value):
        return value
    return resolve_date(value, reference)
