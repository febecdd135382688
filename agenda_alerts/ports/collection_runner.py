"""Port definition for running collection off the triggering thread."""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future
from typing import Protocol, TypeVar, runtime_checkable

T = TypeVar("T")


@runtime_checkable
class CollectionRunnerPort(Protocol):
    """Interface for executing a blocking collection call."""

    def submit(self, fn: Callable[[], T]) -> Future[T]:
        """Schedule `fn` for execution.

        Args:
            fn: Zero-argument callable performing the blocking work.

        Returns:
            Future resolved with the callable's result or exception.
        """

    def shutdown(self) -> None:
        """Release worker resources. Pending work may be abandoned."""


__all__ = ["CollectionRunnerPort"]
