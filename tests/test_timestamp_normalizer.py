"""Tests for timestamp normalization service."""

from datetime import datetime

import pytest
from dateutil.relativedelta import relativedelta

from agenda_alerts.domain.exceptions import MalformedTimestamp
from agenda_alerts.domain.models import TimestampKeyword
from agenda_alerts.services import timestamp_normalizer
from agenda_alerts.services.timestamp_normalizer import normalize_timestamp


def test_timed_timestamp() -> None:
    result = normalize_timestamp("<2025-10-15 Wed 14:30>")
    assert result.instant == datetime(2025, 10, 15, 14, 30)
    assert result.all_day is False
    assert result.keyword is None
    assert result.raw == "<2025-10-15 Wed 14:30>"


def test_date_only_is_all_day_at_midnight() -> None:
    result = normalize_timestamp("<2025-10-16 Thu>")
    assert result.instant == datetime(2025, 10, 16, 0, 0)
    assert result.all_day is True


def test_keyword_prefix_is_recognized() -> None:
    scheduled = normalize_timestamp("SCHEDULED: <2025-10-15 Wed 09:00>")
    deadline = normalize_timestamp("deadline: <2025-10-20 Mon>")
    closed = normalize_timestamp("CLOSED: [2025-10-14 Tue 18:02]")

    assert scheduled.keyword is TimestampKeyword.SCHEDULED
    assert deadline.keyword is TimestampKeyword.DEADLINE
    assert deadline.all_day is True
    assert closed.keyword is TimestampKeyword.CLOSED
    assert closed.instant == datetime(2025, 10, 14, 18, 2)


def test_inactive_brackets_and_bare_text() -> None:
    assert normalize_timestamp("[2025-10-15 Wed 08:05]").instant == datetime(
        2025, 10, 15, 8, 5
    )
    assert normalize_timestamp("2025-10-15 7:45").instant == datetime(
        2025, 10, 15, 7, 45
    )


def test_non_english_day_name_is_ignored() -> None:
    result = normalize_timestamp("<2025-10-15 Mi. 10:00>")
    assert result.instant == datetime(2025, 10, 15, 10, 0)
    assert result.all_day is False


def test_time_range_keeps_start_and_end() -> None:
    result = normalize_timestamp("<2025-10-15 Wed 14:00-15:30>")
    assert result.instant == datetime(2025, 10, 15, 14, 0)
    assert result.end_instant == datetime(2025, 10, 15, 15, 30)


def test_date_range_uses_first_date() -> None:
    result = normalize_timestamp("<2025-10-15 Wed>--<2025-10-17 Fri>")
    assert result.instant == datetime(2025, 10, 15)
    assert result.all_day is True


@pytest.mark.parametrize(
    "raw",
    ["<2025-10-15 Wed 25:61>", "<2025-10-15 Wed 14h30>"],
)
def test_malformed_time_degrades_to_all_day(raw: str) -> None:
    result = normalize_timestamp(raw)
    assert result.all_day is True
    assert result.instant == datetime(2025, 10, 15)


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "<>", "<Wed 14:30>", "<2025-13-01>", "<2025-02-30 Sun>", "tomorrow"],
)
def test_missing_or_invalid_date_raises(raw: str) -> None:
    with pytest.raises(MalformedTimestamp):
        normalize_timestamp(raw)


def test_warning_period_is_ignored() -> None:
    result = normalize_timestamp("DEADLINE: <2025-10-20 Mon -3d>")
    assert result.instant == datetime(2025, 10, 20)
    assert result.repeater is None


def test_repeater_without_reference_keeps_base_date() -> None:
    result = normalize_timestamp("<2025-10-01 Wed 09:00 +1w>")
    assert result.repeater == "+1w"
    assert result.instant == datetime(2025, 10, 1, 9, 0)


def test_weekly_repeater_advances_past_reference_day() -> None:
    reference = datetime(2025, 10, 15, 12, 0)
    result = normalize_timestamp("<2025-10-01 Wed 09:00 +1w>", reference=reference)
    # Same day as the reference counts as the next occurrence even if earlier.
    assert result.instant == datetime(2025, 10, 15, 9, 0)


def test_monthly_repeater_uses_calendar_months() -> None:
    reference = datetime(2025, 10, 15, 12, 0)
    result = normalize_timestamp("<2025-01-31 Fri .+1m>", reference=reference)
    assert result.instant == datetime(2025, 10, 31)
    assert result.all_day is True


def test_repeater_shifts_end_instant() -> None:
    reference = datetime(2025, 10, 16, 8, 0)
    result = normalize_timestamp("<2025-10-14 Tue 10:00-11:00 ++1d>", reference=reference)
    assert result.instant == datetime(2025, 10, 16, 10, 0)
    assert result.end_instant == datetime(2025, 10, 16, 11, 0)


def test_future_repeating_timestamp_is_untouched() -> None:
    reference = datetime(2025, 10, 15, 12, 0)
    result = normalize_timestamp("<2025-11-01 Sat +1y>", reference=reference)
    assert result.instant == datetime(2025, 11, 1)


def test_parse_repeater_units() -> None:
    assert timestamp_normalizer.parse_repeater("+2w") == relativedelta(weeks=2)
    assert timestamp_normalizer.parse_repeater("++3d") == relativedelta(days=3)
    assert timestamp_normalizer.parse_repeater(".+1m") == relativedelta(months=1)
    assert timestamp_normalizer.parse_repeater("+1y") == relativedelta(years=1)
    assert timestamp_normalizer.parse_repeater("+0d") is None
    assert timestamp_normalizer.parse_repeater("weekly") is None


def test_advance_to_hourly_steps() -> None:
    instant = datetime(2025, 10, 15, 0, 30)
    floor = datetime(2025, 10, 15, 3, 0)
    advanced = timestamp_normalizer.advance_to(instant, relativedelta(hours=2), floor)
    assert advanced == datetime(2025, 10, 15, 4, 30)


@pytest.mark.parametrize(
    "raw",
    [
        "<2020-01-01 Wed +8000y>",
        "<2020-01-01 Wed +120000m>",
        "<2020-01-01 Wed 09:00 +999999999999d>",
        "<2020-01-01 Wed 09:00 +999999999h>",
    ],
)
def test_repeater_beyond_calendar_range_is_malformed(raw: str) -> None:
    reference = datetime(2025, 10, 15, 12, 0)
    with pytest.raises(MalformedTimestamp, match="calendar range"):
        normalize_timestamp(raw, reference=reference)
