"""Domain models for agenda alerts.

All models use Pydantic v2 for validation. Records that cross the
scheduler/reader boundary are frozen so published snapshots can be shared
between threads without copying.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, field_validator

class Severity(StrEnum):
    """Alert tier severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class EventState(StrEnum):
    """Completion state derived from the source's state marker."""

    ACTIVE = "active"
    DONE = "done"


class TimestampKeyword(StrEnum):
    """Planning keyword preceding a timestamp."""

    SCHEDULED = "SCHEDULED"
    DEADLINE = "DEADLINE"
    CLOSED = "CLOSED"


class SchedulerState(StrEnum):
    """Refresh scheduler lifecycle states."""

    IDLE = "idle"
    VALIDATING = "validating"
    COLLECTING = "collecting"
    MATCHING = "matching"
    PUBLISHING = "publishing"
    FAILED = "failed"
    STOPPED = "stopped"


class FailureReason(StrEnum):
    """Why a refresh cycle was aborted."""

    VALIDATION = "validation"
    COLLECTION = "collection"
    INTERNAL = "internal"


class CycleStatus(StrEnum):
    """Terminal status of a refresh cycle."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class AlertInterval(BaseModel):
    """One rung of an alert ladder: fire `severity` once within `threshold_minutes`."""

    model_config = ConfigDict(frozen=True)

    threshold_minutes: int = Field(..., ge=0, description="Minutes before due time")
    severity: Severity = Field(default=Severity.MEDIUM)


DEFAULT_INTERVALS: Final[tuple[AlertInterval, ...]] = (
    AlertInterval(threshold_minutes=10, severity=Severity.MEDIUM),
)


def sort_intervals(
    intervals: tuple[AlertInterval, ...] | list[AlertInterval],
) -> tuple[AlertInterval, ...]:
    """Return intervals ordered ascending by threshold (most urgent first)."""

    return tuple(sorted(intervals, key=lambda item: item.threshold_minutes))


class EventTime(BaseModel):
    """A normalized timestamp together with its raw source text."""

    model_config = ConfigDict(frozen=True)

    raw: str
    instant: datetime
    all_day: bool = False
    keyword: TimestampKeyword | None = None
    repeater: str | None = None
    end_instant: datetime | None = None


class RawCandidate(BaseModel):
    """Entry as produced by an agenda parser, before normalization."""

    model_config = ConfigDict(frozen=True)

    title: str
    state_marker: str = ""
    raw_timestamps: tuple[str, ...] = ()
    intervals: tuple[AlertInterval, ...] | None = None


class Event(BaseModel):
    """One scheduled agenda item ready for matching."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1)
    times: tuple[EventTime, ...] = Field(..., min_length=1)
    state: EventState = EventState.ACTIVE
    intervals: tuple[AlertInterval, ...] = DEFAULT_INTERVALS
    source: str = ""

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("title must not be blank")
        return stripped

    @field_validator("intervals")
    @classmethod
    def _order_intervals(
        cls, value: tuple[AlertInterval, ...]
    ) -> tuple[AlertInterval, ...]:
        if not value:
            return DEFAULT_INTERVALS
        return sort_intervals(value)

    @property
    def earliest(self) -> EventTime:
        """Timestamp with the smallest instant (first one wins on ties)."""
        return min(self.times, key=lambda item: item.instant)

    @property
    def all_day(self) -> bool:
        return self.earliest.all_day

    @property
    def identity(self) -> str:
        """Stable identity derived from title and earliest instant."""
        key_material = f"{self.title}||{self.earliest.instant.isoformat()}"
        return hashlib.sha1(key_material.encode("utf-8")).hexdigest()


class AlertKey(BaseModel):
    """Deduplication key for a fired alert tier."""

    model_config = ConfigDict(frozen=True)

    event_identity: str
    severity: Severity


class AlertRecord(BaseModel):
    """A tier that has been fired (or collapsed) for an event."""

    model_config = ConfigDict(frozen=True)

    key: AlertKey
    fired_at: datetime
    presented: bool = True


class UpcomingEvent(BaseModel):
    """Event inside the lookahead window at publication time."""

    model_config = ConfigDict(frozen=True)

    event: Event
    minutes_until: int
    overdue: bool = False


class AgendaSnapshot(BaseModel):
    """Immutable published view consumed by display readers."""

    model_config = ConfigDict(frozen=True)

    summary: str = ""
    upcoming: tuple[UpcomingEvent, ...] = ()
    generated_at: datetime | None = None
    cycle_id: str | None = None


class SourceFailure(BaseModel):
    """A source that could not be collected in a cycle."""

    model_config = ConfigDict(frozen=True)

    source: str
    error: str


class CollectionResult(BaseModel):
    """Result of one collection pass across all sources."""

    model_config = ConfigDict(frozen=True)

    events: tuple[Event, ...] = ()
    failed_sources: tuple[SourceFailure, ...] = ()
    dropped_candidates: int = 0


class FiredAlert(BaseModel):
    """A tier selected for presentation in the current cycle."""

    model_config = ConfigDict(frozen=True)

    event: Event
    interval: AlertInterval
    minutes_until: int
    overdue: bool = False


class CycleResult(BaseModel):
    """Outcome of a single refresh cycle."""

    model_config = ConfigDict(frozen=True)

    cycle_id: str
    status: CycleStatus
    failure: FailureReason | None = None
    issues: tuple[str, ...] = ()
    events_collected: int = 0
    alerts_fired: tuple[FiredAlert, ...] = ()
    alerts_suppressed: int = 0
    failed_sources: tuple[SourceFailure, ...] = ()


@dataclass(slots=True)
class ValidationState:
    """Precondition bookkeeping owned by the refresh scheduler."""

    done: bool = False
    retry_count: int = 0
