"""Rendering of the status-line summary and alert messages.

Format: ``<time> <Title> (<relative>)`` joined by `` | ``, e.g.::

    14:30 Standup (in 25m) | Report (overdue 1h 05m) | +2 more
"""

from collections.abc import Sequence
from typing import Final

from agenda_alerts.domain.models import Event, UpcomingEvent
from agenda_alerts.services.interval_matcher import MINUTES_PER_DAY

SEPARATOR: Final[str] = " | "
MAX_TITLE_LENGTH: Final[int] = 40
ELLIPSIS: Final[str] = "…"


def format_minutes(minutes: int) -> str:
    """Render a non-negative duration compactly.

    Example:
        >>> format_minutes(125)
        '2h 05m'
        >>> format_minutes(3 * 1440 + 60)
        '3d 1h'
    """
    minutes = abs(minutes)
    if minutes < 60:
        return f"{minutes}m"
    if minutes < MINUTES_PER_DAY:
        hours, rest = divmod(minutes, 60)
        return f"{hours}h {rest:02d}m"
    days, rest = divmod(minutes, MINUTES_PER_DAY)
    hours = rest // 60
    return f"{days}d {hours}h" if hours else f"{days}d"


def _truncate(title: str, limit: int = MAX_TITLE_LENGTH) -> str:
    if len(title) <= limit:
        return title
    return title[: limit - len(ELLIPSIS)].rstrip() + ELLIPSIS


def _relative_all_day(minutes_until: int) -> str:
    days = minutes_until // MINUTES_PER_DAY
    if days == 0:
        return "today"
    if days == 1:
        return "tomorrow"
    if days < 0:
        return f"overdue {-days}d"
    return f"in {days}d"


def relative_label(event: Event, minutes_until: int) -> str:
    """Human label for how far away the event is."""
    if event.all_day:
        return _relative_all_day(minutes_until)
    if minutes_until < 0:
        return f"overdue {format_minutes(minutes_until)}"
    if minutes_until == 0:
        return "now"
    return f"in {format_minutes(minutes_until)}"


def render_item(item: UpcomingEvent) -> str:
    event = item.event
    label = relative_label(event, item.minutes_until)
    title = _truncate(event.title)
    if event.all_day or item.overdue:
        return f"{title} ({label})"
    return f"{event.earliest.instant:%H:%M} {title} ({label})"


def render_summary(upcoming: Sequence[UpcomingEvent], max_items: int = 3) -> str:
    """Render the compact summary for a display surface.

    Events still ahead are named first; overdue events fill the remaining
    slots, oldest first.

    Args:
        upcoming: Events in the lookahead window, already ordered
        max_items: Number of events named before collapsing into '+N more'

    Returns:
        Summary string; empty when nothing is upcoming
    """
    if not upcoming:
        return ""

    ranked = [item for item in upcoming if not item.overdue]
    ranked.extend(item for item in upcoming if item.overdue)
    shown = [render_item(item) for item in ranked[:max_items]]
    hidden = len(upcoming) - len(shown)
    if hidden > 0:
        shown.append(f"+{hidden} more")
    return SEPARATOR.join(shown)


def render_alert(event: Event, minutes_until: int) -> tuple[str, str]:
    """Render the (title, message) pair handed to the alert presenter.

    Example:
        >>> render_alert(standup, 25)
        ('Standup', 'Due at 2025-10-15 14:30 (in 25m)')
    """
    earliest = event.earliest
    label = relative_label(event, minutes_until)
    if event.all_day:
        due = f"{earliest.instant:%Y-%m-%d}"
        return event.title, f"Due {label} ({due})"
    due = f"{earliest.instant:%Y-%m-%d %H:%M}"
    if minutes_until < 0:
        return event.title, f"Was due at {due} ({label})"
    return event.title, f"Due at {due} ({label})"


def order_upcoming(items: Sequence[UpcomingEvent]) -> tuple[UpcomingEvent, ...]:
    """Order events by due instant, then title, for stable display."""
    return tuple(
        sorted(items, key=lambda item: (item.event.earliest.instant, item.event.title))
    )


__all__ = [
    "format_minutes",
    "order_upcoming",
    "relative_label",
    "render_alert",
    "render_item",
    "render_summary",
]
