"""Alert presenters: structured log output and desktop notification command."""

from __future__ import annotations

import shlex
import shutil
import subprocess
from typing import Final

from agenda_alerts.config.logging_config import get_logger
from agenda_alerts.domain.exceptions import PresentationError
from agenda_alerts.domain.models import Severity
from agenda_alerts.domain.protocols import AlertPresenterProtocol

logger = get_logger(__name__)

# notify-send urgency levels
_URGENCY_BY_SEVERITY: Final[dict[Severity, str]] = {
    Severity.LOW: "low",
    Severity.MEDIUM: "normal",
    Severity.HIGH: "critical",
    Severity.URGENT: "critical",
}


class LoggingAlertPresenter(AlertPresenterProtocol):
    """Writes alerts to the structured log."""

    def present(self, title: str, message: str, severity: Severity) -> None:
        logger.warning(
            "agenda_alert",
            title=title,
            message=message,
            severity=severity.value,
        )


class CommandAlertPresenter(AlertPresenterProtocol):
    """Spawns a notification command such as ``notify-send``.

    The process is started without waiting for it, so a slow notification
    daemon never stalls publication.
    """

    def __init__(self, command: str = "notify-send") -> None:
        argv = shlex.split(command)
        if not argv:
            raise ValueError("command must not be empty")
        self._argv = argv

    @property
    def available(self) -> bool:
        return shutil.which(self._argv[0]) is not None

    def present(self, title: str, message: str, severity: Severity) -> None:
        argv = [
            *self._argv,
            "--urgency",
            _URGENCY_BY_SEVERITY.get(severity, "normal"),
            title,
            message,
        ]
        try:
            subprocess.Popen(  # noqa: S603
                argv,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise PresentationError(
                f"Failed to run {self._argv[0]!r}: {exc}"
            ) from exc
        logger.debug("notification_command_spawned", command=self._argv[0])


__all__ = ["CommandAlertPresenter", "LoggingAlertPresenter"]
