"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import pytest

from agenda_alerts.adapters.collection_runner import InlineCollectionRunner
from agenda_alerts.adapters.parser_loader import StaticParserLoader
from agenda_alerts.config.settings import Settings
from agenda_alerts.domain.exceptions import PresentationError
from agenda_alerts.domain.models import (
    AlertInterval,
    Event,
    EventTime,
    RawCandidate,
    Severity,
)
from agenda_alerts.use_cases.refresh_scheduler import RefreshScheduler


class FakeParser:
    """Parser returning canned candidates (or raising) per source."""

    def __init__(
        self, responses: dict[str, Sequence[RawCandidate] | Exception] | None = None
    ) -> None:
        self.responses: dict[str, Sequence[RawCandidate] | Exception] = dict(
            responses or {}
        )
        self.calls: list[str] = []

    def parse(self, source: str) -> Sequence[RawCandidate]:
        self.calls.append(source)
        response = self.responses.get(source, ())
        if isinstance(response, Exception):
            raise response
        return list(response)


@dataclass
class PresentedAlert:
    title: str
    message: str
    severity: Severity


@dataclass
class RecordingPresenter:
    """Presenter that records every alert handed to it."""

    alerts: list[PresentedAlert] = field(default_factory=list)
    fail_titles: set[str] = field(default_factory=set)

    def present(self, title: str, message: str, severity: Severity) -> None:
        if title in self.fail_titles:
            raise PresentationError(f"cannot show {title}")
        self.alerts.append(PresentedAlert(title, message, severity))

    @property
    def titles(self) -> list[str]:
        return [alert.title for alert in self.alerts]


@dataclass
class _PendingCall:
    delay: float
    callback: Callable[[], object]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimer:
    """Timer that only runs callbacks when the test fires them."""

    def __init__(self) -> None:
        self.calls: list[_PendingCall] = []

    def call_later(
        self, delay_seconds: float, callback: Callable[[], object]
    ) -> _PendingCall:
        call = _PendingCall(delay=delay_seconds, callback=callback)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> list[_PendingCall]:
        return [call for call in self.calls if not call.cancelled]

    @property
    def delays(self) -> list[float]:
        return [call.delay for call in self.calls]

    def fire(self) -> None:
        """Run the most recently armed, still pending callback."""
        pending = self.pending
        assert pending, "no pending timer callback"
        call = pending[-1]
        call.cancelled = True
        call.callback()


class FixedClock:
    """Mutable clock for deterministic cycles."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def candidate(
    title: str,
    *timestamps: str,
    state: str = "",
    intervals: Sequence[tuple[int, Severity]] | None = None,
) -> RawCandidate:
    """Helper to build a parser candidate."""
    return RawCandidate(
        title=title,
        state_marker=state,
        raw_timestamps=tuple(timestamps),
        intervals=(
            tuple(
                AlertInterval(threshold_minutes=threshold, severity=severity)
                for threshold, severity in intervals
            )
            if intervals is not None
            else None
        ),
    )


def make_event(
    title: str,
    instant: datetime,
    *,
    all_day: bool = False,
    intervals: Sequence[tuple[int, Severity]] = ((10, Severity.MEDIUM),),
) -> Event:
    """Helper to build a normalized event."""
    return Event(
        title=title,
        times=(EventTime(raw=f"<{instant:%Y-%m-%d}>", instant=instant, all_day=all_day),),
        intervals=tuple(
            AlertInterval(threshold_minutes=threshold, severity=severity)
            for threshold, severity in intervals
        ),
    )


def stamp(value: datetime, *, all_day: bool = False) -> str:
    """Render an active agenda timestamp for `value`."""
    if all_day:
        return f"<{value:%Y-%m-%d %a}>"
    return f"<{value:%Y-%m-%d %a %H:%M}>"


@pytest.fixture
def now() -> datetime:
    """Reference instant: Wed Oct 15 2025, 12:00 local."""
    return datetime(2025, 10, 15, 12, 0)


@pytest.fixture
def clock(now: datetime) -> FixedClock:
    return FixedClock(now)


@pytest.fixture
def agenda_file(tmp_path: Path) -> Path:
    path = tmp_path / "work.org"
    path.write_text("* placeholder\n", encoding="utf-8")
    return path


@pytest.fixture
def settings(agenda_file: Path) -> Settings:
    """Settings with one existing agenda file and no env influence."""
    return Settings(
        agenda_files=[str(agenda_file)],
        lookahead_minutes=24 * 60,
        refresh_period_seconds=60,
        startup_delay_seconds=5,
        retry_max_seconds=600,
    )


@pytest.fixture
def parser() -> FakeParser:
    return FakeParser()


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture
def timer() -> ManualTimer:
    return ManualTimer()


@pytest.fixture
def make_scheduler(
    settings: Settings,
    parser: FakeParser,
    presenter: RecordingPresenter,
    timer: ManualTimer,
    clock: FixedClock,
) -> Callable[..., RefreshScheduler]:
    """Factory for a scheduler wired with inline collection and fakes."""

    def _factory(**overrides: object) -> RefreshScheduler:
        kwargs: dict[str, object] = {
            "settings": settings,
            "parser_loader": StaticParserLoader(parser),
            "presenter": presenter,
            "timer": timer,
            "collection_runner": InlineCollectionRunner(),
            "clock": clock,
            "jitter_provider": lambda base: 0.0,
        }
        kwargs.update(overrides)
        return RefreshScheduler(**kwargs)  # type: ignore[arg-type]

    return _factory
