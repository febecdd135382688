"""Collection runners: a worker thread for the daemon, inline for tests."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Final, TypeVar

from agenda_alerts.config.logging_config import get_logger
from agenda_alerts.ports.collection_runner import CollectionRunnerPort

logger = get_logger(__name__)

T = TypeVar("T")

_THREAD_NAME_PREFIX: Final[str] = "agenda-collect"


class ThreadedCollectionRunner(CollectionRunnerPort):
    """Runs collection on a single background worker thread."""

    def __init__(self, max_workers: int = 1) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=_THREAD_NAME_PREFIX
        )
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, fn: Callable[[], T]) -> Future[T]:
        with self._lock:
            if self._closed:
                raise RuntimeError("collection runner is shut down")
            future = self._executor.submit(fn)
        logger.debug("collection_submitted", runner="threaded")
        return future

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        # A hung parser call must not block process teardown.
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("collection_runner_stopped")


class InlineCollectionRunner(CollectionRunnerPort):
    """Runs collection synchronously on the caller's thread.

    The returned future is already resolved, so the scheduler's continuation
    runs before `submit` returns.
    """

    def submit(self, fn: Callable[[], T]) -> Future[T]:
        future: Future[T] = Future()
        try:
            result = fn()
        except Exception as exc:  # noqa: BLE001
            future.set_exception(exc)
        else:
            future.set_result(result)
        return future

    def shutdown(self) -> None:
        return None


__all__ = ["InlineCollectionRunner", "ThreadedCollectionRunner"]
