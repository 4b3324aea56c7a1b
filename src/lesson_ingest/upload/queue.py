"""Sequential FIFO upload queue."""
from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

MAX_CONCURRENT = 1


class UploadQueue:
    """Runs upload tasks one at a time, in submission order."""

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=MAX_CONCURRENT, thread_name_prefix="upload")
        self._lock = threading.Lock()
        self._pending: deque[Future] = deque()
        self._active = 0

    def submit(self, task: Callable[..., T], *args: Any, name: str = "", **kwargs: Any) -> "Future[T]":
        def run() -> T:
            with self._lock:
                self._active += 1
            LOGGER.info("Starting upload %s", name or task)
            try:
                return task(*args, **kwargs)
            finally:
                with self._lock:
                    self._active -= 1

        future = self._executor.submit(run)
        with self._lock:
            self._pending.append(future)
            position = len(self._pending)
        future.add_done_callback(self._forget)
        LOGGER.info("Queued upload %s at position %s", name or task, position)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            if future in self._pending:
                self._pending.remove(future)

    def status(self) -> dict[str, int]:
        with self._lock:
            queued = sum(1 for future in self._pending if not future.running() and not future.done())
            return {"active": self._active, "queued": queued, "maxConcurrent": MAX_CONCURRENT}

    def clear(self) -> int:
        """Cancel every upload that has not started yet; return how many were dropped."""

        with self._lock:
            waiting = list(self._pending)
        cancelled = sum(1 for future in waiting if future.cancel())
        LOGGER.info("Cleared %s pending uploads", cancelled)
        return cancelled

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
