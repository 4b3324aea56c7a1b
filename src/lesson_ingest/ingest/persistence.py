"""Persistence collaborators for extraction results."""
from __future__ import annotations

import threading
from typing import Protocol

from .models import ExtractionResult


class ExtractionStore(Protocol):
    def save(self, result: ExtractionResult) -> None:
        """Persist ``result``; raise :class:`PersistenceError` on failure."""

    def list_for_lesson(self, lesson_id: str) -> list[ExtractionResult]:
        ...


class InMemoryExtractionStore:
    """Keeps extraction results keyed by lesson and file id."""

    def __init__(self) -> None:
        self._results: dict[str, dict[str, ExtractionResult]] = {}
        self._lock = threading.Lock()

    def save(self, result: ExtractionResult) -> None:
        with self._lock:
            self._results.setdefault(result.lesson_id, {})[result.file_id] = result

    def list_for_lesson(self, lesson_id: str) -> list[ExtractionResult]:
        with self._lock:
            return list(self._results.get(lesson_id, {}).values())

    def clear(self) -> None:
        with self._lock:
            self._results.clear()
