"""
Budget-month helpers.

A budget month is the accounting period an order's spend is attributed to,
written ``MM-YYYY`` (zero-padded month, four-digit year).
"""

import re
from calendar import monthrange
from datetime import datetime, date

from errors import ValidationError

_BUDGET_MONTH_RE = re.compile(r'^\s*(\d{1,2})-(\d{4})\s*$')
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


def format_budget_month(month, year):
    """Return the ``MM-YYYY`` label for a month and year."""
    month = int(month)
    year = int(year)
    if not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month}")
    return f'{month:02d}-{year:04d}'


def parse_budget_month(value):
    """Split ``MM-YYYY`` (or ``M-YYYY``) into ``(month, year)`` ints."""
    match = _BUDGET_MONTH_RE.match(str(value or ''))
    if not match:
        raise ValidationError(f"Invalid budget month '{value}', expected MM-YYYY")
    month, year = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid budget month '{value}', month must be 01-12")
    return month, year


def normalize_budget_month(value):
    """Return the canonical zero-padded form, e.g. ``1-2025`` → ``01-2025``."""
    month, year = parse_budget_month(value)
    return format_budget_month(month, year)


def parse_timestamp(value):
    """Parse a datetime, date or ISO-8601 string (``Z`` suffix allowed)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise ValidationError(f"Invalid timestamp '{value}'") from e


def budget_month_from_timestamp(value):
    """Budget month an order created at ``value`` falls in (local to the timestamp)."""
    ts = parse_timestamp(value)
    return format_budget_month(ts.month, ts.year)


def days_in_month(month, year):
    return monthrange(int(year), int(month))[1]


def month_bounds(month, year):
    """Half-open ``[start, next_start)`` timestamp strings for a calendar month."""
    month, year = int(month), int(year)
    if not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month}")
    start = datetime(year, month, 1)
    if month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 1, 1)
    return start.strftime(TIMESTAMP_FORMAT), end.strftime(TIMESTAMP_FORMAT)


def current_month_and_year():
    today = date.today()
    return today.month, today.year
