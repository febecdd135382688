"""Port definition for delayed callbacks."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable


class TimerHandle(Protocol):
    """Handle returned for a pending callback."""

    def cancel(self) -> None:
        """Prevent the callback from running if it has not started."""


@runtime_checkable
class TimerPort(Protocol):
    """Interface for "run this after delay D"."""

    def call_later(self, delay_seconds: float, callback: Callable[[], object]) -> TimerHandle:
        """Run `callback` once after `delay_seconds`.

        Args:
            delay_seconds: Non-negative delay.
            callback: Zero-argument callable.

        Returns:
            Handle that can cancel the pending call.
        """


__all__ = ["TimerHandle", "TimerPort"]
