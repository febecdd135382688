"""Timer adapter backed by `threading.Timer`."""

from __future__ import annotations

import threading
from collections.abc import Callable

from agenda_alerts.config.logging_config import get_logger
from agenda_alerts.ports.timer import TimerHandle, TimerPort

logger = get_logger(__name__)


class ThreadingTimer(TimerPort):
    """Schedules each callback on its own daemon timer thread."""

    def call_later(
        self, delay_seconds: float, callback: Callable[[], object]
    ) -> TimerHandle:
        delay = max(0.0, delay_seconds)
        timer = threading.Timer(delay, _guarded(callback))
        timer.daemon = True
        timer.start()
        return timer


def _guarded(callback: Callable[[], object]) -> Callable[[], None]:
    def _run() -> None:
        try:
            callback()
        except Exception:  # noqa: BLE001
            logger.exception("timer_callback_failed")

    return _run


__all__ = ["ThreadingTimer"]
