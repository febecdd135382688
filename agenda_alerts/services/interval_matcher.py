"""Interval matching service.

Decides, for one event at one instant, which alert tier (if any) fires.

Rules:
1. Minutes until due are measured against the event's earliest timestamp
2. All-day events count whole calendar days (midnight to midnight)
3. A tier is eligible once ``minutes_until <= threshold``; overdue events
   are eligible for every tier
4. Only the smallest eligible tier that has not fired is selected; the other
   unfired eligible tiers are reported as skipped so they never backlog
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Final

from agenda_alerts.domain.models import AlertInterval, AlertKey, Event

MINUTES_PER_DAY: Final[int] = 24 * 60


@dataclass(frozen=True, slots=True)
class TierMatch:
    """Outcome of matching one event against its alert ladder."""

    event: Event
    minutes_until: int
    overdue: bool
    selected: AlertInterval | None
    skipped: tuple[AlertInterval, ...] = ()

    @property
    def fires(self) -> bool:
        return self.selected is not None


def minutes_until(event: Event, now: datetime) -> int:
    """Whole minutes from `now` until the event is due (negative when overdue).

    Example:
        >>> minutes_until(event_at_14_30, datetime(2025, 10, 15, 14, 0, 30))
        29
    """
    earliest = event.earliest
    if earliest.all_day:
        return (earliest.instant.date() - now.date()).days * MINUTES_PER_DAY
    return math.floor((earliest.instant - now).total_seconds() / 60)


def alert_key(event: Event, interval: AlertInterval) -> AlertKey:
    return AlertKey(event_identity=event.identity, severity=interval.severity)


def match_event(
    event: Event,
    now: datetime,
    has_fired: Callable[[AlertKey], bool],
) -> TierMatch:
    """Select the alert tier to fire for `event` at `now`.

    Args:
        event: Event with an ascending interval ladder
        now: Current instant (naive, local)
        has_fired: Tracker lookup for already fired tiers

    Returns:
        TierMatch describing the selected and skipped tiers
    """
    delta = minutes_until(event, now)
    overdue = delta < 0

    eligible = [
        interval
        for interval in event.intervals
        if delta <= interval.threshold_minutes
    ]
    unfired = [
        interval for interval in eligible if not has_fired(alert_key(event, interval))
    ]

    if not unfired:
        return TierMatch(
            event=event, minutes_until=delta, overdue=overdue, selected=None
        )

    return TierMatch(
        event=event,
        minutes_until=delta,
        overdue=overdue,
        selected=unfired[0],
        skipped=tuple(unfired[1:]),
    )


__all__ = ["MINUTES_PER_DAY", "TierMatch", "alert_key", "match_event", "minutes_until"]
