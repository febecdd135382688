"""Timestamp normalization service.

Handles agenda timestamps of the form::

    [SCHEDULED:|DEADLINE:|CLOSED:] <2025-10-15 Wed 14:30-15:00 +1w -2d>

- Active (``<...>``) and inactive (``[...]``) brackets, or none at all
- Optional day abbreviation in any language
- Optional time of day or time range (the start is the instant)
- Optional repeater (``+1w``, ``++1d``, ``.+1m``) and warning period (ignored)

Instants are naive datetimes in the author's local time; no timezone
conversion is performed.
"""

import math
import re
from datetime import date, datetime, time, timedelta
from typing import Final

from dateutil.relativedelta import relativedelta

from agenda_alerts.domain.exceptions import MalformedTimestamp
from agenda_alerts.domain.models import EventTime, TimestampKeyword

KEYWORD_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^\s*(SCHEDULED|DEADLINE|CLOSED)\s*:\s*", flags=re.IGNORECASE
)
"""Planning keyword prefix such as 'SCHEDULED: '."""

DATE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
"""ISO calendar date 'YYYY-MM-DD'."""

TIME_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^(\d{1,2}):(\d{2})(?:-(\d{1,2}):(\d{2}))?$"
)
"""Time of day 'HH:MM' with optional '-HH:MM' end."""

REPEATER_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(\+\+|\.\+|\+)(\d+)([hdwmy])$")
"""Repeater cookie like '+1w', '++2d' or '.+1m'."""

WARNING_PATTERN: Final[re.Pattern[str]] = re.compile(r"^--?\d+[hdwmy]$")
"""Warning period like '-2d' (ignored)."""

DAY_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[^\W\d_]+\.?$")
"""Day abbreviation in any script, e.g. 'Wed', 'Mi.', 'ven'."""

_RANGE_SEPARATOR: Final[re.Pattern[str]] = re.compile(r"[>\]]--[<\[]")


def _strip_brackets(text: str) -> str:
    text = text.strip()
    # Only the first half of a date range '<a>--<b>' matters.
    text = _RANGE_SEPARATOR.split(text, maxsplit=1)[0]
    if text[:1] in "<[":
        text = text[1:]
    if text[-1:] in ">]":
        text = text[:-1]
    return text.strip()


def _parse_date(token: str, raw: str) -> date:
    match = DATE_PATTERN.match(token)
    if not match:
        raise MalformedTimestamp(raw)
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise MalformedTimestamp(raw, str(exc)) from exc


def _parse_clock(hour: str, minute: str) -> time | None:
    try:
        return time(int(hour), int(minute))
    except ValueError:
        return None


def parse_repeater(cookie: str) -> relativedelta | None:
    """Convert a repeater cookie into a step.

    Example:
        >>> parse_repeater("+2w")
        relativedelta(days=+14)
    """
    match = REPEATER_PATTERN.match(cookie)
    if not match:
        return None
    amount = int(match.group(2))
    unit = match.group(3)
    if amount <= 0:
        return None
    if unit == "h":
        return relativedelta(hours=amount)
    if unit == "d":
        return relativedelta(days=amount)
    if unit == "w":
        return relativedelta(weeks=amount)
    if unit == "m":
        return relativedelta(months=amount)
    return relativedelta(years=amount)


def advance_to(instant: datetime, step: relativedelta, floor: datetime) -> datetime:
    """Move `instant` forward by whole steps until it is not before `floor`."""

    if instant >= floor:
        return instant

    if step.months or step.years:
        count = 1
        while instant + step * count < floor:
            count += 1
        return instant + step * count

    fixed = timedelta(days=step.days, hours=step.hours)
    steps = math.ceil((floor - instant) / fixed)
    return instant + fixed * steps


def normalize_timestamp(raw: str, *, reference: datetime | None = None) -> EventTime:
    """Normalize one raw agenda timestamp.

    Args:
        raw: Timestamp text, optionally with a planning keyword prefix
        reference: Current time; when given, repeating timestamps that fall
            before the reference day are advanced to their next occurrence

    Returns:
        Normalized EventTime

    Raises:
        MalformedTimestamp: If the date is missing or invalid

    Example:
        >>> normalize_timestamp("SCHEDULED: <2025-10-15 Wed 14:30>").instant
        datetime.datetime(2025, 10, 15, 14, 30)
        >>> normalize_timestamp("<2025-10-15 Wed 25:99>").all_day
        True
    """
    if not raw or not raw.strip():
        raise MalformedTimestamp(raw, "empty timestamp")

    text = raw
    keyword: TimestampKeyword | None = None
    keyword_match = KEYWORD_PATTERN.match(text)
    if keyword_match:
        keyword = TimestampKeyword(keyword_match.group(1).upper())
        text = text[keyword_match.end() :]

    tokens = _strip_brackets(text).split()
    if not tokens:
        raise MalformedTimestamp(raw, "no date")

    day = _parse_date(tokens[0], raw)
    start: time | None = None
    end: time | None = None
    repeater: str | None = None
    malformed_time = False

    for token in tokens[1:]:
        time_match = TIME_PATTERN.match(token)
        if time_match:
            start = _parse_clock(time_match.group(1), time_match.group(2))
            if start is None:
                malformed_time = True
            elif time_match.group(3) is not None:
                end = _parse_clock(time_match.group(3), time_match.group(4))
            continue
        if REPEATER_PATTERN.match(token):
            repeater = token
            continue
        if WARNING_PATTERN.match(token) or DAY_NAME_PATTERN.match(token):
            continue
        # Anything else in time position is a garbled time of day.
        malformed_time = True

    all_day = start is None or malformed_time
    instant = datetime.combine(day, time(0, 0) if all_day else start)  # type: ignore[arg-type]
    end_instant = (
        datetime.combine(day, end) if end is not None and not all_day else None
    )

    if repeater and reference is not None:
        step = parse_repeater(repeater)
        if step is not None:
            floor = datetime.combine(reference.date(), time(0, 0))
            try:
                shifted = advance_to(instant, step, floor)
                if end_instant is not None:
                    end_instant = end_instant + (shifted - instant)
            except (ValueError, OverflowError) as exc:
                raise MalformedTimestamp(
                    raw, f"repeater {repeater} leaves the calendar range"
                ) from exc
            instant = shifted

    return EventTime(
        raw=raw.strip(),
        instant=instant,
        all_day=all_day,
        keyword=keyword,
        repeater=repeater,
        end_instant=end_instant,
    )


__all__ = [
    "advance_to",
    "normalize_timestamp",
    "parse_repeater",
]
