from __future__ import annotations

"""Common runtime helpers for the agenda alerts daemon."""

import signal
import threading
from dataclasses import dataclass
from types import FrameType
from typing import Protocol

from agenda_alerts.config.logging_config import get_logger, setup_logging
from agenda_alerts.config.settings import Settings

logger = get_logger(__name__)


class ShutdownSignal(Protocol):
    def is_set(self) -> bool: ...

    def wait(self, timeout: float | None = None) -> bool: ...


@dataclass
class _ShutdownController:
    """Mutable shutdown state shared across signal handlers and the main loop."""

    _event: threading.Event

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def request(self, signum: int, frame: FrameType | None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("shutdown_signal_received", signal=sig_name)
        self._event.set()


def create_shutdown_controller() -> _ShutdownController:
    return _ShutdownController(threading.Event())


def install_signal_handlers(controller: _ShutdownController) -> None:
    """Register SIGTERM/SIGINT handlers for graceful shutdown."""

    def _handler(signum: int, frame: FrameType | None) -> None:
        controller.request(signum, frame)

    signal.signal(signal.SIGTERM, _handler)
    signal.signal(signal.SIGINT, _handler)


def initialize_logging(settings: Settings, *, json_logs: bool = False) -> None:
    """Initialize structlog-based logging for scripts."""

    effective_json = json_logs or settings.json_logs
    setup_logging(log_level=settings.log_level, json_logs=effective_json)
    logger.info(
        "logging_initialized", level=settings.log_level, json_logs=effective_json
    )


def wait_for_shutdown(controller: ShutdownSignal, *, poll_seconds: float = 1.0) -> None:
    """Block until shutdown is requested."""

    poll_seconds = max(0.1, poll_seconds)
    while not controller.is_set():
        controller.wait(poll_seconds)


__all__ = [
    "ShutdownSignal",
    "create_shutdown_controller",
    "initialize_logging",
    "install_signal_handlers",
    "wait_for_shutdown",
]
