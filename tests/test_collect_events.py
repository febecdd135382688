"""Tests for the event collection use case."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from structlog.testing import capture_logs

from agenda_alerts.config.settings import DONE_STATES_DEFAULT
from agenda_alerts.domain.exceptions import (
    CollectionError,
    SourceMalformed,
    SourceUnreadable,
)
from agenda_alerts.domain.models import (
    AlertInterval,
    EventState,
    RawCandidate,
    Severity,
)
from agenda_alerts.observability.metrics import SOURCE_FAILURES_TOTAL
from agenda_alerts.use_cases import collect_events as collect_module
from agenda_alerts.use_cases.collect_events import (
    DONE_MARKERS_DEFAULT,
    collect_events,
    normalize_candidate,
)
from tests.conftest import FakeParser, candidate, stamp


def test_collect_excludes_done_and_cancelled(now: datetime) -> None:
    parser = FakeParser(
        {
            "a.org": [
                candidate("Write report", stamp(now + timedelta(hours=2))),
                candidate("Old task", stamp(now), state="DONE"),
                candidate("Dropped idea", stamp(now), state="cancelled"),
                candidate("Typo", stamp(now), state="CANCELED"),
            ]
        }
    )

    result = collect_events(["a.org"], parser)

    assert [event.title for event in result.events] == ["Write report"]
    assert all(event.state is EventState.ACTIVE for event in result.events)
    assert result.failed_sources == ()


def test_default_done_markers_follow_settings_default() -> None:
    assert DONE_MARKERS_DEFAULT == frozenset(DONE_STATES_DEFAULT)


def test_collect_respects_custom_done_markers(now: datetime) -> None:
    parser = FakeParser(
        {
            "a.org": [
                candidate("Waiting", stamp(now), state="WAIT"),
                candidate("Done one", stamp(now), state="DONE"),
            ]
        }
    )

    result = collect_events(["a.org"], parser, done_markers={"wait"})

    assert [event.title for event in result.events] == ["Done one"]


def test_collect_is_idempotent(now: datetime) -> None:
    parser = FakeParser(
        {
            "a.org": [
                candidate("Standup", stamp(now + timedelta(minutes=30))),
                candidate("Review", stamp(now + timedelta(hours=3))),
            ],
            "b.org": [candidate("Dentist", stamp(now + timedelta(days=1), all_day=True))],
        }
    )

    first = collect_events(["a.org", "b.org"], parser, reference=now)
    second = collect_events(["a.org", "b.org"], parser, reference=now)

    assert first == second
    assert parser.calls == ["a.org", "b.org", "a.org", "b.org"]


def test_collect_deduplicates_in_first_encounter_order(now: datetime) -> None:
    due = stamp(now + timedelta(hours=1))
    parser = FakeParser(
        {
            "a.org": [candidate("Shared", due), candidate("Only A", due)],
            "b.org": [candidate("Only B", due), candidate("Shared", due)],
        }
    )

    result = collect_events(["a.org", "b.org"], parser)

    assert [event.title for event in result.events] == ["Shared", "Only A", "Only B"]
    assert result.events[0].source == "a.org"


def test_same_title_at_different_times_are_distinct(now: datetime) -> None:
    parser = FakeParser(
        {
            "a.org": [
                candidate("Gym", stamp(now + timedelta(hours=1))),
                candidate("Gym", stamp(now + timedelta(days=2))),
            ]
        }
    )

    result = collect_events(["a.org"], parser)

    assert len(result.events) == 2
    assert result.events[0].identity != result.events[1].identity


def test_candidate_without_valid_timestamp_is_dropped(now: datetime) -> None:
    parser = FakeParser(
        {
            "a.org": [
                candidate("No date"),
                candidate("Garbage date", "<someday>"),
                candidate("Completion only", "CLOSED: [2025-10-14 Tue 18:00]"),
                candidate("Kept", "<garbage>", stamp(now)),
            ]
        }
    )

    with capture_logs() as logs:
        result = collect_events(["a.org"], parser)

    assert [event.title for event in result.events] == ["Kept"]
    assert result.dropped_candidates == 3
    assert len(result.events[0].times) == 1
    events = [log["event"] for log in logs]
    assert events.count("candidate_dropped") == 3
    assert "timestamp_malformed" in events


def test_out_of_range_repeater_only_drops_its_candidate(now: datetime) -> None:
    parser = FakeParser(
        {
            "a.org": [candidate("Millennium chore", "<2020-01-01 Wed +8000y>")],
            "b.org": [candidate("Dentist", stamp(now + timedelta(hours=3)))],
        }
    )

    with capture_logs() as logs:
        result = collect_events(["a.org", "b.org"], parser, reference=now)

    assert [event.title for event in result.events] == ["Dentist"]
    assert result.failed_sources == ()
    assert result.dropped_candidates == 1
    assert "timestamp_malformed" in [log["event"] for log in logs]


def test_unexpected_candidate_error_is_isolated(mocker, now: datetime) -> None:
    real_normalize = collect_module.normalize_candidate

    def normalize(item: RawCandidate, **kwargs: object):
        if item.title == "Cursed":
            raise RuntimeError("normalizer bug")
        return real_normalize(item, **kwargs)

    mocker.patch.object(collect_module, "normalize_candidate", side_effect=normalize)
    parser = FakeParser(
        {
            "a.org": [
                candidate("Cursed", stamp(now)),
                candidate("Standup", stamp(now + timedelta(hours=1))),
            ]
        }
    )

    with capture_logs() as logs:
        result = collect_events(["a.org"], parser)

    assert [event.title for event in result.events] == ["Standup"]
    assert result.failed_sources == ()
    assert result.dropped_candidates == 1
    failed = [log for log in logs if log["event"] == "candidate_failed"]
    assert len(failed) == 1
    assert failed[0]["title"] == "Cursed"


def test_partial_source_failure_collects_the_rest(now: datetime) -> None:
    parser = FakeParser(
        {
            "broken.org": SourceUnreadable("broken.org", "permission denied"),
            "crash.org": RuntimeError("parser bug"),
            "good.org": [candidate("Standup", stamp(now + timedelta(hours=1)))],
        }
    )
    before = SOURCE_FAILURES_TOTAL._value.get()

    with capture_logs() as logs:
        result = collect_events(["broken.org", "crash.org", "good.org"], parser)

    assert [event.title for event in result.events] == ["Standup"]
    assert [failure.source for failure in result.failed_sources] == [
        "broken.org",
        "crash.org",
    ]
    assert "permission denied" in result.failed_sources[0].error
    assert "RuntimeError" in result.failed_sources[1].error
    assert SOURCE_FAILURES_TOTAL._value.get() == before + 2
    assert any(log["event"] == "source_failed" for log in logs)


def test_total_collection_failure_raises() -> None:
    parser = FakeParser(
        {
            "a.org": SourceMalformed("a.org", "unbalanced drawer"),
            "b.org": SourceUnreadable("b.org", "missing"),
        }
    )

    with pytest.raises(CollectionError, match="unbalanced drawer"):
        collect_events(["a.org", "b.org"], parser)


def test_no_events_is_a_normal_outcome() -> None:
    result = collect_events(["empty.org"], FakeParser())
    assert result.events == ()
    assert result.failed_sources == ()


def test_normalize_candidate_applies_default_ladder(now: datetime) -> None:
    ladder = (
        AlertInterval(threshold_minutes=30, severity=Severity.LOW),
        AlertInterval(threshold_minutes=5, severity=Severity.HIGH),
    )

    event = normalize_candidate(
        candidate("Call", stamp(now)),
        source="a.org",
        default_intervals=ladder,
    )

    assert event is not None
    assert [interval.threshold_minutes for interval in event.intervals] == [5, 30]


def test_normalize_candidate_keeps_explicit_ladder(now: datetime) -> None:
    raw = candidate("Call", stamp(now), intervals=[(60, Severity.URGENT)])

    event = normalize_candidate(raw, source="a.org", default_intervals=())

    assert event is not None
    assert event.intervals == (
        AlertInterval(threshold_minutes=60, severity=Severity.URGENT),
    )


def test_event_uses_earliest_timestamp(now: datetime) -> None:
    raw = RawCandidate(
        title="  Release  ",
        raw_timestamps=(
            "DEADLINE: <2025-10-20 Mon>",
            "SCHEDULED: <2025-10-16 Thu 09:00>",
        ),
    )

    event = normalize_candidate(raw, source="a.org", default_intervals=())

    assert event is not None
    assert event.title == "Release"
    assert event.earliest.instant == datetime(2025, 10, 16, 9, 0)
    assert event.all_day is False
    assert [time.raw for time in event.times] == [
        "DEADLINE: <2025-10-20 Mon>",
        "SCHEDULED: <2025-10-16 Thu 09:00>",
    ]
