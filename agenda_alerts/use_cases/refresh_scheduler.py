"""Refresh scheduler: the control loop of agenda alerts.

One cycle walks ``IDLE -> VALIDATING -> COLLECTING -> MATCHING -> PUBLISHING
-> IDLE``; an aborted cycle passes through ``FAILED`` back to ``IDLE``.

Concurrency model:
- The scheduler is the only writer of validation state, the alert tracker
  and the published snapshot, and runs at most one cycle at a time. A
  trigger arriving while a cycle is in flight is coalesced into it.
- Collection is submitted to a collection runner; the rest of the cycle runs
  as the continuation of that future, handed to the injected dispatcher
  (inline by default, or a host's main-thread queue).
- Readers get the snapshot through a single reference, replaced in one
  assignment at the end of a successful cycle, so they always see a
  complete snapshot.
"""

from __future__ import annotations

import random
import threading
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import Future
from contextlib import contextmanager
from datetime import datetime
from functools import partial
from typing import Final
from uuid import uuid4

from agenda_alerts.adapters.collection_runner import ThreadedCollectionRunner
from agenda_alerts.adapters.parser_loader import ImportParserLoader
from agenda_alerts.adapters.presenters import (
    CommandAlertPresenter,
    LoggingAlertPresenter,
)
from agenda_alerts.adapters.threading_timer import ThreadingTimer
from agenda_alerts.config.logging_config import bind_context, get_logger, unbind_context
from agenda_alerts.config.settings import Settings
from agenda_alerts.domain.exceptions import ConfigurationError, PresentationError
from agenda_alerts.domain.models import (
    AgendaSnapshot,
    CollectionResult,
    CycleResult,
    CycleStatus,
    Event,
    FailureReason,
    FiredAlert,
    SchedulerState,
    UpcomingEvent,
    ValidationState,
)
from agenda_alerts.domain.protocols import AlertPresenterProtocol, ParserLoaderProtocol
from agenda_alerts.observability.metrics import (
    ALERTS_FIRED_TOTAL,
    ALERTS_SUPPRESSED_TOTAL,
    REFRESH_CYCLES_TOTAL,
)
from agenda_alerts.ports.collection_runner import CollectionRunnerPort
from agenda_alerts.ports.timer import TimerHandle, TimerPort
from agenda_alerts.services.alert_tracker import AlertTracker
from agenda_alerts.services.interval_matcher import alert_key, match_event
from agenda_alerts.services.summary_renderer import (
    order_upcoming,
    render_alert,
    render_summary,
)
from agenda_alerts.services.validation_gate import validate_preconditions
from agenda_alerts.use_cases.collect_events import collect_events

logger = get_logger(__name__)

Clock = Callable[[], datetime]
Dispatcher = Callable[[Callable[[], None]], object]
SourcesProvider = Callable[[], Sequence[str]]

_BACKOFF_BASE: Final[float] = 2.0


def _run_inline(continuation: Callable[[], None]) -> None:
    continuation()


def _default_jitter(base: float) -> float:
    return random.uniform(0.0, base * 0.25)


@contextmanager
def _cycle_scope(cycle_id: str, phase: str) -> Iterator[None]:
    """Tag log entries with the cycle and the part of it being run."""
    bind_context(cycle_id=cycle_id, cycle_phase=phase)
    try:
        yield
    finally:
        unbind_context("cycle_id", "cycle_phase")


class RefreshScheduler:
    """Periodically re-collects agenda events and fires graduated alerts."""

    def __init__(
        self,
        *,
        settings: Settings,
        parser_loader: ParserLoaderProtocol | None,
        presenter: AlertPresenterProtocol,
        timer: TimerPort,
        collection_runner: CollectionRunnerPort,
        sources: SourcesProvider | None = None,
        clock: Clock = datetime.now,
        dispatcher: Dispatcher = _run_inline,
        jitter_provider: Callable[[float], float] | None = None,
    ) -> None:
        self._settings = settings
        self._parser_loader = parser_loader
        self._presenter = presenter
        self._timer = timer
        self._runner = collection_runner
        self._sources = sources or (lambda: settings.agenda_files)
        self._clock = clock
        self._dispatch = dispatcher
        self._jitter_provider = jitter_provider or _default_jitter

        self._lock = threading.RLock()
        self._state = SchedulerState.IDLE
        self._alive = True
        self._activated = False
        self._in_flight: Future[CycleResult] | None = None
        self._timer_handle: TimerHandle | None = None
        self._last_result: CycleResult | None = None

        self._validation = ValidationState()
        self._tracker = AlertTracker()
        self._snapshot = AgendaSnapshot()

    # Readers ----------------------------------------------------------

    @property
    def summary(self) -> str:
        """Rendered summary for a display surface."""
        return self._snapshot.summary

    @property
    def snapshot(self) -> AgendaSnapshot:
        return self._snapshot

    @property
    def upcoming_events(self) -> tuple[UpcomingEvent, ...]:
        return self._snapshot.upcoming

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    @property
    def validation_state(self) -> ValidationState:
        with self._lock:
            return ValidationState(
                done=self._validation.done,
                retry_count=self._validation.retry_count,
            )

    @property
    def alert_tracker(self) -> AlertTracker:
        return self._tracker

    @property
    def last_result(self) -> CycleResult | None:
        with self._lock:
            return self._last_result

    @property
    def is_alive(self) -> bool:
        with self._lock:
            return self._alive

    # Lifecycle --------------------------------------------------------

    def activate(self, initial_delay: float | None = None) -> bool:
        """Arm the first cycle. Later calls are ignored.

        Returns:
            True if this call activated the scheduler
        """
        delay = (
            self._settings.startup_delay_seconds
            if initial_delay is None
            else max(0.0, initial_delay)
        )
        with self._lock:
            if self._activated or not self._alive:
                return False
            self._activated = True
            self._arm(delay)

        logger.info("scheduler_activated", initial_delay_seconds=delay)
        return True

    def shutdown(self) -> None:
        """Stop re-arming and discard any collection still in flight."""
        with self._lock:
            if not self._alive:
                return
            self._alive = False
            self._state = SchedulerState.STOPPED
            if self._timer_handle is not None:
                self._timer_handle.cancel()
                self._timer_handle = None

        self._runner.shutdown()
        logger.info("scheduler_stopped")

    def reconfigure(self) -> None:
        """Force the next cycle to re-validate preconditions."""
        with self._lock:
            self._validation = ValidationState()
        logger.info("scheduler_reconfigured")

    # Cycle ------------------------------------------------------------

    def refresh(self) -> Future[CycleResult]:
        """Start a refresh cycle now.

        Returns:
            Future resolved with the cycle's outcome. While a cycle is in
            flight the same future is returned and no new cycle starts.
        """
        with self._lock:
            if not self._alive:
                skipped: Future[CycleResult] = Future()
                skipped.set_result(
                    CycleResult(cycle_id="", status=CycleStatus.SKIPPED)
                )
                return skipped
            if self._in_flight is not None:
                logger.info("refresh_coalesced", state=self._state.value)
                return self._in_flight
            future: Future[CycleResult] = Future()
            self._in_flight = future

        cycle_id = uuid4().hex[:12]
        try:
            self._start_cycle(cycle_id, future)
        except Exception:  # noqa: BLE001
            logger.exception("refresh_cycle_crashed", cycle_id=cycle_id)
            self._fail(future, cycle_id, FailureReason.INTERNAL)
        return future

    def _start_cycle(self, cycle_id: str, future: Future[CycleResult]) -> None:
        with _cycle_scope(cycle_id, "collect"):
            logger.debug("refresh_cycle_started")
            self._set_state(SchedulerState.VALIDATING)
            sources = tuple(str(source) for source in self._sources())

            with self._lock:
                needs_validation = not self._validation.done

            if needs_validation:
                issues = validate_preconditions(sources, self._parser_loader)
                if issues:
                    with self._lock:
                        self._validation.retry_count += 1
                        retry_count = self._validation.retry_count
                    delay = self._retry_delay(retry_count)
                    logger.warning(
                        "refresh_validation_failed",
                        issues=issues,
                        retry_count=retry_count,
                        retry_in_seconds=round(delay, 1),
                    )
                    self._fail(
                        future,
                        cycle_id,
                        FailureReason.VALIDATION,
                        issues=tuple(issues),
                        next_delay=delay,
                    )
                    return
                with self._lock:
                    self._validation.done = True
                logger.info("refresh_validation_passed", sources=len(sources))

            if self._parser_loader is None:
                raise ConfigurationError("No agenda parser is configured")
            parser = self._parser_loader.load()
            settings = self._settings

            self._set_state(SchedulerState.COLLECTING)
            collection = self._runner.submit(
                partial(
                    collect_events,
                    sources,
                    parser,
                    default_intervals=settings.default_intervals,
                    done_markers=settings.done_states,
                    reference=self._clock(),
                )
            )

        collection.add_done_callback(partial(self._hand_off, cycle_id, future))

    def _hand_off(
        self,
        cycle_id: str,
        future: Future[CycleResult],
        collection: Future[CollectionResult],
    ) -> None:
        try:
            self._dispatch(partial(self._on_collected, cycle_id, future, collection))
        except Exception:  # noqa: BLE001
            with _cycle_scope(cycle_id, "hand_off"):
                logger.exception("continuation_dispatch_failed")
                if not future.done():
                    self._fail(future, cycle_id, FailureReason.INTERNAL)

    def _on_collected(
        self,
        cycle_id: str,
        future: Future[CycleResult],
        collection: Future[CollectionResult],
    ) -> None:
        with _cycle_scope(cycle_id, "publish"):
            if not self.is_alive:
                logger.info("collection_result_discarded", reason="shutdown")
                self._release(
                    future, CycleResult(cycle_id=cycle_id, status=CycleStatus.SKIPPED)
                )
                return

            try:
                result = collection.result()
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "refresh_collection_failed",
                    error=f"{type(exc).__name__}: {exc}",
                )
                self._fail(future, cycle_id, FailureReason.COLLECTION)
                return

            try:
                self._match_and_publish(cycle_id, future, result)
            except Exception:  # noqa: BLE001
                logger.exception("refresh_cycle_crashed")
                self._fail(future, cycle_id, FailureReason.INTERNAL)

    def _match_and_publish(
        self,
        cycle_id: str,
        future: Future[CycleResult],
        result: CollectionResult,
    ) -> None:
        now = self._clock()

        self._set_state(SchedulerState.MATCHING)
        fired, suppressed, upcoming = self._match(result.events, now)

        self._set_state(SchedulerState.PUBLISHING)
        self._present(fired)

        snapshot = AgendaSnapshot(
            summary=render_summary(upcoming, self._settings.summary_max_items),
            upcoming=upcoming,
            generated_at=now,
            cycle_id=cycle_id,
        )
        with self._lock:
            alive = self._alive
            if alive:
                self._snapshot = snapshot
        if not alive:
            logger.info("snapshot_discarded", reason="shutdown")
            self._release(
                future, CycleResult(cycle_id=cycle_id, status=CycleStatus.SKIPPED)
            )
            return

        logger.info(
            "snapshot_published",
            events=len(result.events),
            upcoming=len(upcoming),
            alerts_fired=len(fired),
            alerts_suppressed=suppressed,
        )
        self._finish(
            future,
            CycleResult(
                cycle_id=cycle_id,
                status=CycleStatus.SUCCEEDED,
                events_collected=len(result.events),
                alerts_fired=tuple(fired),
                alerts_suppressed=suppressed,
                failed_sources=result.failed_sources,
            ),
            next_delay=self._settings.refresh_period_seconds,
        )

    def _match(
        self, events: Sequence[Event], now: datetime
    ) -> tuple[list[FiredAlert], int, tuple[UpcomingEvent, ...]]:
        self._tracker.prune(event.identity for event in events)

        fired: list[FiredAlert] = []
        upcoming: list[UpcomingEvent] = []
        suppressed = 0
        lookahead = self._settings.lookahead_minutes

        for event in events:
            match = match_event(event, now, self._tracker.has_fired)
            if match.selected is not None:
                self._tracker.mark_fired(alert_key(event, match.selected), now)
                fired.append(
                    FiredAlert(
                        event=event,
                        interval=match.selected,
                        minutes_until=match.minutes_until,
                        overdue=match.overdue,
                    )
                )
            for skipped in match.skipped:
                self._tracker.mark_fired(alert_key(event, skipped), now, presented=False)
                ALERTS_SUPPRESSED_TOTAL.labels(severity=skipped.severity.value).inc()
                suppressed += 1

            if match.minutes_until <= lookahead:
                upcoming.append(
                    UpcomingEvent(
                        event=event,
                        minutes_until=match.minutes_until,
                        overdue=match.overdue,
                    )
                )

        return fired, suppressed, order_upcoming(upcoming)

    def _present(self, fired: Sequence[FiredAlert]) -> None:
        for alert in fired:
            title, message = render_alert(alert.event, alert.minutes_until)
            severity = alert.interval.severity
            try:
                self._presenter.present(title, message, severity)
            except PresentationError as exc:
                logger.error("alert_presentation_failed", title=title, error=str(exc))
                continue
            except Exception:  # noqa: BLE001
                logger.exception("alert_presenter_crashed", title=title)
                continue
            ALERTS_FIRED_TOTAL.labels(severity=severity.value).inc()
            logger.info(
                "alert_presented",
                title=title,
                severity=severity.value,
                minutes_until=alert.minutes_until,
                overdue=alert.overdue,
            )

    # Bookkeeping ------------------------------------------------------

    def _fail(
        self,
        future: Future[CycleResult],
        cycle_id: str,
        reason: FailureReason,
        *,
        issues: tuple[str, ...] = (),
        next_delay: float | None = None,
    ) -> None:
        self._set_state(SchedulerState.FAILED)
        self._finish(
            future,
            CycleResult(
                cycle_id=cycle_id,
                status=CycleStatus.FAILED,
                failure=reason,
                issues=issues,
            ),
            next_delay=(
                self._settings.refresh_period_seconds
                if next_delay is None
                else next_delay
            ),
        )

    def _finish(
        self,
        future: Future[CycleResult],
        result: CycleResult,
        *,
        next_delay: float,
    ) -> None:
        with self._lock:
            self._last_result = result
            self._in_flight = None
            if self._state is not SchedulerState.STOPPED:
                self._state = SchedulerState.IDLE
            if self._alive and self._activated:
                self._arm(next_delay)

        REFRESH_CYCLES_TOTAL.labels(status=result.status.value).inc()
        logger.info(
            "refresh_cycle_finished",
            status=result.status.value,
            failure=result.failure.value if result.failure else None,
            next_in_seconds=round(next_delay, 1),
        )
        if not future.done():
            future.set_result(result)

    def _release(self, future: Future[CycleResult], result: CycleResult) -> None:
        with self._lock:
            self._in_flight = None
        if not future.done():
            future.set_result(result)

    def _set_state(self, state: SchedulerState) -> None:
        with self._lock:
            if self._state is SchedulerState.STOPPED:
                return
            previous = self._state
            self._state = state
        logger.debug("scheduler_state_changed", previous=previous.value, state=state.value)

    def _retry_delay(self, retry_count: int) -> float:
        period = self._settings.refresh_period_seconds
        base = min(
            self._settings.retry_max_seconds,
            period * _BACKOFF_BASE ** max(retry_count - 1, 0),
        )
        jitter = max(0.0, self._jitter_provider(base))
        return max(period, base + jitter)

    def _arm(self, delay: float) -> None:
        # Caller holds the lock; one pending timer at a time.
        if self._timer_handle is not None:
            self._timer_handle.cancel()
        self._timer_handle = self._timer.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        with self._lock:
            self._timer_handle = None
            if not self._alive:
                return
        self.refresh()


def create_scheduler(
    settings: Settings,
    *,
    parser_loader: ParserLoaderProtocol | None = None,
    presenter: AlertPresenterProtocol | None = None,
    timer: TimerPort | None = None,
    collection_runner: CollectionRunnerPort | None = None,
    sources: SourcesProvider | None = None,
    dispatcher: Dispatcher = _run_inline,
) -> RefreshScheduler:
    """Build a scheduler wired with the default adapters for `settings`.

    Example:
        >>> scheduler = create_scheduler(get_settings())
        >>> scheduler.activate()
        >>> ...
        >>> scheduler.shutdown()
    """
    if parser_loader is None and settings.parser:
        parser_loader = ImportParserLoader(settings.parser)
    if presenter is None:
        presenter = (
            CommandAlertPresenter(settings.notify_command)
            if settings.notify_command
            else LoggingAlertPresenter()
        )

    return RefreshScheduler(
        settings=settings,
        parser_loader=parser_loader,
        presenter=presenter,
        timer=timer or ThreadingTimer(),
        collection_runner=collection_runner or ThreadedCollectionRunner(),
        sources=sources,
        dispatcher=dispatcher,
    )


__all__ = ["RefreshScheduler", "create_scheduler"]
