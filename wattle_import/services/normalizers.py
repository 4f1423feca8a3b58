from __future__ import annotations

import re
from datetime import date, time

"""Cell-level normalizers used by the validator.

Each function takes the trimmed cell text and returns the typed value, or
None when the text cannot be interpreted. None never means "blank": blank
cells are filtered out before a normalizer is called.
"""

__all__ = [
    "parse_flexible_date",
    "normalize_email",
    "normalize_phone",
    "normalize_enum",
    "normalize_attendance_status",
    "parse_boolean",
    "parse_time",
    "parse_positive_int",
    "ENUM_SYNONYMS",
    "ATTENDANCE_STATUS_CODES",
]

MIN_YEAR = 1900
MAX_YEAR = 2100

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DASH_DATE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_DOT_DATE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_STRIP = re.compile(r"[\s\-().]")
_PHONE = re.compile(r"^\+?\d{6,15}$")
_TIME_24 = re.compile(r"^(\d{1,2}):(\d{2})$")
_TIME_12 = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)$", re.IGNORECASE)
_TIME_HOUR = re.compile(r"^(\d{1,2})$")

ENUM_SYNONYMS: dict[str, str] = {
    # gender
    "m": "male",
    "f": "female",
    "boy": "male",
    "girl": "female",
    "nb": "non-binary",
    "nonbinary": "non-binary",
    "non binary": "non-binary",
    "x": "other",
    "unknown": "other",
    "unspecified": "other",
    # enrollment status
    "enrolled": "active",
    "current": "active",
    "left": "withdrawn",
    "departed": "withdrawn",
    "alumnus": "graduated",
    "alumni": "graduated",
    "completed": "graduated",
    "prospect": "inquiry",
    "enquiry": "inquiry",
    "pending": "applicant",
    "applied": "applicant",
    # severity
    "life threatening": "life_threatening",
    "life-threatening": "life_threatening",
    "critical": "life_threatening",
    "anaphylaxis": "life_threatening",
    "anaphylactic": "life_threatening",
    "high": "severe",
    "low": "mild",
    "medium": "moderate",
    # relationship
    "mum": "mother",
    "mom": "mother",
    "dad": "father",
    "grandma": "grandparent",
    "grandmother": "grandparent",
    "grandpa": "grandparent",
    "grandfather": "grandparent",
    "nana": "grandparent",
    "nan": "grandparent",
    "pop": "grandparent",
    "step_parent": "step-parent",
    "step parent": "step-parent",
    "stepparent": "step-parent",
    "stepmom": "step-parent",
    "stepdad": "step-parent",
    "foster_parent": "foster-parent",
    "foster parent": "foster-parent",
    "carer": "other",
    "guardian": "other",
    "relative": "other",
    "aunt": "other",
    "uncle": "other",
}

# Registers from other school systems use single-letter codes and tick marks
ATTENDANCE_STATUS_CODES: dict[str, str] = {
    "present": "present",
    "p": "present",
    "attended": "present",
    "in": "present",
    "yes": "present",
    "✓": "present",
    "✔": "present",
    "absent": "absent",
    "a": "absent",
    "away": "absent",
    "no": "absent",
    "missing": "absent",
    "✗": "absent",
    "✘": "absent",
    "x": "absent",
    "late": "late",
    "l": "late",
    "tardy": "late",
    "late arrival": "late",
    "arrived late": "late",
    "excused": "excused",
    "e": "excused",
    "excused absence": "excused",
    "excused absent": "excused",
    "sick": "excused",
    "illness": "excused",
    "medical": "excused",
    "holiday": "excused",
    "half_day": "half_day",
    "half day": "half_day",
    "half-day": "half_day",
    "half": "half_day",
    "h": "half_day",
    "partial": "half_day",
    "am only": "half_day",
    "pm only": "half_day",
}

_TRUE = frozenset({"yes", "true", "1", "y", "on"})
_FALSE = frozenset({"no", "false", "0", "n", "off"})


def _make_date(year: int, month: int, day: int) -> date | None:
    if not MIN_YEAR <= year <= MAX_YEAR:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_flexible_date(value: str) -> date | None:
    """Parse the date spellings common in Australian school exports.

    Slash dates are read day-first; MM/DD/YYYY is only used when the day-first
    reading is impossible (e.g. 03/15/2019).
    """
    text = value.strip()
    m = _ISO_DATE.match(text)
    if m:
        return _make_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = _SLASH_DATE.match(text)
    if m:
        a, b, y = int(m.group(1)), int(m.group(2)), int(m.group(3))
        return _make_date(y, b, a) or _make_date(y, a, b)
    for pattern in (_DASH_DATE, _DOT_DATE):
        m = pattern.match(text)
        if m:
            return _make_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    return None


def normalize_email(value: str) -> str | None:
    text = value.strip()
    if not _EMAIL.match(text):
        return None
    return text.lower()


def normalize_phone(value: str) -> str | None:
    stripped = _PHONE_STRIP.sub("", value.strip())
    if not _PHONE.match(stripped):
        return None
    return stripped


def normalize_enum(value: str, allowed: tuple[str, ...]) -> str | None:
    text = value.strip()
    if text in allowed:
        return text
    lower = text.lower()
    for a in allowed:
        if a.lower() == lower:
            return a
    synonym = ENUM_SYNONYMS.get(lower)
    if synonym is not None and synonym in allowed:
        return synonym
    return None


def normalize_attendance_status(value: str) -> str | None:
    return ATTENDANCE_STATUS_CODES.get(value.strip().lower())


def parse_boolean(value: str) -> bool | None:
    lower = value.strip().lower()
    if lower in _TRUE:
        return True
    if lower in _FALSE:
        return False
    return None


def parse_time(value: str) -> time | None:
    """Accepts HH:MM (24h), HH:MM am/pm, H am/pm and a bare hour."""
    text = value.strip()
    hours: int
    minutes = 0
    m = _TIME_24.match(text)
    if m:
        hours, minutes = int(m.group(1)), int(m.group(2))
    else:
        m = _TIME_12.match(text)
        if m:
            hours = int(m.group(1))
            minutes = int(m.group(2) or 0)
            if not 1 <= hours <= 12:
                return None
            period = m.group(3).lower()
            if period == "pm" and hours < 12:
                hours += 12
            elif period == "am" and hours == 12:
                hours = 0
        else:
            m = _TIME_HOUR.match(text)
            if not m:
                return None
            hours = int(m.group(1))
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        return None
    return time(hours, minutes)


def parse_positive_int(value: str) -> int | None:
    text = value.strip()
    if not text.isdigit():
        return None
    n = int(text)
    return n if n >= 1 else None
