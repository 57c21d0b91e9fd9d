"""
Turn-Around-Time Parsing
========================

Staff enter TAT as free text ("2 days", "36 hours", "1 week"). Text without
a recognisable duration falls back to one day; a month counts as 30 days.
Fractional amounts are rejected rather than truncated, and a TAT may not
exceed one year.
"""

import re
from datetime import datetime, timedelta
from typing import Optional

from campus_resolve.core import ValidationException, utcnow

TAT_PATTERN = re.compile(r"(?<![\d.,])(\d+)\s*(hour|hours|day|days|week|weeks|month|months)\b")
FRACTION_PATTERN = re.compile(r"\d+[.,]\d+\s*(hour|day|week|month)")

_UNIT_HOURS = {
    "hour": 1,
    "day": 24,
    "week": 24 * 7,
    "month": 24 * 30,
}

DEFAULT_TAT = timedelta(days=1)
MAX_TAT = timedelta(days=365)


def parse_tat(text: str) -> timedelta:
    """Duration described by a free-text TAT value."""
    normalized = text.lower().strip()
    if FRACTION_PATTERN.search(normalized):
        raise ValidationException("TAT must be a whole number of hours, days, weeks or months", {"tat": text})

    match = TAT_PATTERN.search(normalized)
    if not match:
        return DEFAULT_TAT

    amount = int(match.group(1))
    if amount <= 0:
        raise ValidationException("TAT must be a positive duration", {"tat": text})

    hours = amount * _UNIT_HOURS[match.group(2).rstrip("s")]
    if hours > MAX_TAT.total_seconds() // 3600:
        raise ValidationException(f"TAT cannot exceed {MAX_TAT.days} days", {"tat": text})
    return timedelta(hours=hours)


def calculate_tat_date(text: str, now: Optional[datetime] = None) -> datetime:
    return (now or utcnow()) + parse_tat(text)
