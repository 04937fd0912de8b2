"""Wayback Machine timestamp helpers.

The canonical wire format is a 14-digit ``YYYYMMDDhhmmss`` string.  Callers
may supply shorter digit strings, ISO dates, or ``YYYY-MM-DD HH:MM:SS``;
:func:`normalize_timestamp` converts all of them to the canonical form.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)

WB_TIMESTAMP_FORMAT: str = "%Y%m%d%H%M%S"

_FULL_RE = re.compile(r"^\d{14}$")
_PARTIAL_RE = re.compile(r"^\d{1,13}$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$")
_WAYBACK_PATH_RE = re.compile(r"/web/(\d{14})(?:id_)?/")

_SECONDS_PER_DAY = 86400


def normalize_timestamp(value: str) -> str:
    """Normalize a date-like string to the 14-digit Wayback format.

    Accepted inputs, in order of precedence:

    - ``YYYYMMDDhhmmss``: returned unchanged.
    - 1 to 13 digits: right-padded with zeros (``"2020"`` → ``"20200000000000"``).
    - ``YYYY-MM-DD``: ``"2020-01-15"`` → ``"20200115000000"``.
    - ``YYYY-MM-DD HH:MM:SS``.
    - Anything :meth:`datetime.fromisoformat` understands.

    Unparseable input is returned as-is; the upstream API decides what to do
    with it.

    Args:
        value: Raw timestamp string.

    Returns:
        The normalized timestamp, or *value* unchanged.
    """
    if _FULL_RE.match(value):
        return value
    if _PARTIAL_RE.match(value):
        return value.ljust(14, "0")
    if _ISO_DATE_RE.match(value):
        return value.replace("-", "") + "000000"
    if _ISO_DATETIME_RE.match(value):
        return re.sub(r"[-: ]", "", value)
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        logger.debug("wayback: could not normalize timestamp '%s'", value)
        return value
    return parsed.strftime(WB_TIMESTAMP_FORMAT)


def format_timestamp(timestamp: str) -> str:
    """Format a Wayback timestamp as ``YYYY-MM-DD``.

    Inputs shorter than 8 characters are returned unchanged.
    """
    if len(timestamp) < 8:
        return timestamp
    return f"{timestamp[0:4]}-{timestamp[4:6]}-{timestamp[6:8]}"


def format_timestamp_full(timestamp: str) -> str:
    """Format a Wayback timestamp as ``YYYY-MM-DD HH:MM:SS``."""
    if len(timestamp) < 14:
        return format_timestamp(timestamp)
    return (
        f"{format_timestamp(timestamp)} "
        f"{timestamp[8:10]}:{timestamp[10:12]}:{timestamp[12:14]}"
    )


def parse_timestamp(timestamp: str) -> datetime:
    """Parse a (possibly partial) Wayback timestamp into a naive datetime.

    Missing time components default to zero; missing month/day default to 1.

    Raises:
        ValueError: If the leading digits do not form a valid date.
    """
    padded = timestamp.ljust(14, "0")
    year = int(padded[0:4])
    month = int(padded[4:6]) or 1
    day = int(padded[6:8]) or 1
    return datetime(
        year,
        month,
        day,
        int(padded[8:10]),
        int(padded[10:12]),
        int(padded[12:14]),
    )


def days_between(timestamp1: str, timestamp2: str) -> int:
    """Return the whole number of days between two timestamps, rounded up."""
    delta = abs(parse_timestamp(timestamp2) - parse_timestamp(timestamp1))
    return math.ceil(delta.total_seconds() / _SECONDS_PER_DAY)


def format_date(value: date) -> str:
    """Format a date as ``YYYY-MM-DD``."""
    return value.strftime("%Y-%m-%d")


def date_range(days: int, today: date | None = None) -> tuple[str, str]:
    """Return ``(start, end)`` ``YYYY-MM-DD`` strings covering the last *days* days."""
    end = today or date.today()
    start = end - timedelta(days=days)
    return format_date(start), format_date(end)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def format_duration(days: float) -> str:
    """Render a (possibly fractional) day count as ``"3 weeks"``, ``"1 year"``, ...

    Thresholds are 7, 30 and 365 days; each unit is rounded half up to a
    whole number.
    """
    if days < 1:
        return "less than a day"
    if days < 7:
        whole = _round_half_up(days)
        return "1 day" if whole == 1 else f"{whole} days"
    if days < 30:
        weeks = _round_half_up(days / 7)
        return "1 week" if weeks == 1 else f"{weeks} weeks"
    if days < 365:
        months = _round_half_up(days / 30)
        return "1 month" if months == 1 else f"{months} months"
    years = _round_half_up(days / 365)
    return "1 year" if years == 1 else f"{years} years"


def extract_timestamp_from_wayback_url(url: str) -> str | None:
    """Return the 14-digit timestamp embedded in a ``/web/{ts}[id_]/`` address."""
    match = _WAYBACK_PATH_RE.search(url)
    return match.group(1) if match else None
