"""In-memory record of alert tiers that have already fired.

Not persisted: a restart re-arms every alert still inside its window.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime

from agenda_alerts.config.logging_config import get_logger
from agenda_alerts.domain.models import AlertKey, AlertRecord

logger = get_logger(__name__)


class AlertTracker:
    """Thread-safe store of fired alert keys."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[AlertKey, AlertRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def has_fired(self, key: AlertKey) -> bool:
        """Check if the tier identified by `key` already fired."""
        with self._lock:
            return key in self._records

    def mark_fired(self, key: AlertKey, at: datetime, *, presented: bool = True) -> None:
        """Record a fired tier. Re-marking keeps the original record."""
        with self._lock:
            self._records.setdefault(
                key, AlertRecord(key=key, fired_at=at, presented=presented)
            )

    def prune(self, live_identities: Iterable[str]) -> int:
        """Drop records for events absent from the latest collection.

        Returns:
            Number of records removed
        """
        live = set(live_identities)
        with self._lock:
            stale = [key for key in self._records if key.event_identity not in live]
            for key in stale:
                del self._records[key]

        if stale:
            logger.debug("alert_records_pruned", removed=len(stale), remaining=len(self))
        return len(stale)

    def records(self) -> tuple[AlertRecord, ...]:
        """Snapshot of all records in insertion order."""
        with self._lock:
            return tuple(self._records.values())

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


__all__ = ["AlertTracker"]
