"""Event collection use case.

Runs the external parser over every agenda source and turns surviving raw
candidates into normalized, deduplicated events.
"""

from __future__ import annotations

import time
from collections.abc import Collection, Sequence
from datetime import datetime
from typing import Final

from agenda_alerts.config.logging_config import get_logger
from agenda_alerts.config.settings import DONE_STATES_DEFAULT
from agenda_alerts.domain.exceptions import (
    CollectionError,
    MalformedTimestamp,
    SourceError,
)
from agenda_alerts.domain.models import (
    DEFAULT_INTERVALS,
    AlertInterval,
    CollectionResult,
    Event,
    EventState,
    EventTime,
    RawCandidate,
    SourceFailure,
    TimestampKeyword,
)
from agenda_alerts.domain.protocols import AgendaParserProtocol
from agenda_alerts.observability.metrics import (
    COLLECTION_DURATION_SECONDS,
    SOURCE_FAILURES_TOTAL,
)
from agenda_alerts.services.timestamp_normalizer import normalize_timestamp

logger = get_logger(__name__)

DONE_MARKERS_DEFAULT: Final[frozenset[str]] = frozenset(DONE_STATES_DEFAULT)


def is_done_marker(marker: str, done_markers: Collection[str]) -> bool:
    return marker.strip().upper() in done_markers


def normalize_candidate(
    candidate: RawCandidate,
    *,
    source: str,
    default_intervals: Sequence[AlertInterval],
    reference: datetime | None = None,
) -> Event | None:
    """Build an Event from a raw candidate.

    Unparsable timestamps and CLOSED completion stamps are skipped.

    Returns:
        Event, or None when no usable timestamp remains
    """
    times: list[EventTime] = []
    for raw in candidate.raw_timestamps:
        try:
            normalized = normalize_timestamp(raw, reference=reference)
        except MalformedTimestamp as exc:
            logger.warning(
                "timestamp_malformed",
                source=source,
                title=candidate.title,
                raw=raw,
                error=str(exc),
            )
            continue
        if normalized.keyword is TimestampKeyword.CLOSED:
            continue
        times.append(normalized)

    if not times or not candidate.title.strip():
        logger.info(
            "candidate_dropped",
            source=source,
            title=candidate.title,
            reason="no_timestamp" if not times else "empty_title",
        )
        return None

    return Event(
        title=candidate.title,
        times=tuple(times),
        state=EventState.ACTIVE,
        intervals=tuple(candidate.intervals or default_intervals or DEFAULT_INTERVALS),
        source=source,
    )


def collect_events(
    sources: Sequence[str],
    parser: AgendaParserProtocol,
    *,
    default_intervals: Sequence[AlertInterval] = DEFAULT_INTERVALS,
    done_markers: Collection[str] = DONE_MARKERS_DEFAULT,
    reference: datetime | None = None,
) -> CollectionResult:
    """Collect active events from all sources.

    Args:
        sources: Agenda source identifiers, read-only
        parser: External parser capability
        default_intervals: Ladder for candidates without explicit tiers
        done_markers: Upper-case state markers that exclude a candidate
        reference: Current time used to roll repeating timestamps forward

    Returns:
        Events in first-encounter order plus per-source failures

    Raises:
        CollectionError: If every source failed
    """
    start_time = time.perf_counter()
    markers = {marker.upper() for marker in done_markers}
    events: dict[str, Event] = {}
    failures: list[SourceFailure] = []
    dropped = 0
    excluded = 0

    for source in sources:
        source_id = str(source)
        try:
            candidates = parser.parse(source_id)
        except SourceError as exc:
            logger.warning("source_failed", source=source_id, error=exc.reason)
            failures.append(SourceFailure(source=source_id, error=str(exc)))
            continue
        except Exception as exc:  # noqa: BLE001
            logger.exception("source_parser_crashed", source=source_id)
            failures.append(
                SourceFailure(source=source_id, error=f"{type(exc).__name__}: {exc}")
            )
            continue

        for candidate in candidates:
            try:
                if is_done_marker(candidate.state_marker, markers):
                    excluded += 1
                    continue

                event = normalize_candidate(
                    candidate,
                    source=source_id,
                    default_intervals=default_intervals,
                    reference=reference,
                )
            except Exception:  # noqa: BLE001
                logger.exception(
                    "candidate_failed",
                    source=source_id,
                    title=getattr(candidate, "title", None),
                )
                dropped += 1
                continue
            if event is None:
                dropped += 1
                continue
            events.setdefault(event.identity, event)

    duration = time.perf_counter() - start_time
    COLLECTION_DURATION_SECONDS.observe(duration)
    if failures:
        SOURCE_FAILURES_TOTAL.inc(len(failures))

    if sources and len(failures) == len(sources):
        raise CollectionError(
            "All agenda sources failed: "
            + "; ".join(failure.error for failure in failures)
        )

    logger.info(
        "events_collected",
        sources=len(sources),
        events=len(events),
        excluded_done=excluded,
        dropped=dropped,
        failed_sources=len(failures),
        duration_seconds=round(duration, 4),
    )

    return CollectionResult(
        events=tuple(events.values()),
        failed_sources=tuple(failures),
        dropped_candidates=dropped,
    )


__all__ = ["DONE_MARKERS_DEFAULT", "collect_events", "normalize_candidate"]
