"""Content-addressable extraction cache."""
from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional, Protocol

from .models import CacheEntry

LOGGER = logging.getLogger(__name__)


def content_hash(data: bytes) -> str:
    """Return the SHA-256 hex digest used as the cache key."""

    return hashlib.sha256(data).hexdigest()


class CacheStore(Protocol):
    def get(self, key: str) -> Optional[CacheEntry]:
        ...

    def put(self, key: str, entry: CacheEntry) -> None:
        ...


class InMemoryCacheStore:
    """Process-local cache, written once per hash."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.writes = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            if key in self._entries:
                return
            self._entries[key] = entry
            self.writes += 1

    def __len__(self) -> int:
        return len(self._entries)


class FileCacheStore:
    """Stores one JSON document per content hash inside a directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[CacheEntry]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return CacheEntry.from_dict(payload)
        except (OSError, ValueError, KeyError) as error:
            LOGGER.warning("Ignoring unreadable cache entry %s: %s", path.name, error)
            return None

    def put(self, key: str, entry: CacheEntry) -> None:
        path = self._path_for(key)
        with self._lock:
            if path.exists():
                return
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(json.dumps(entry.to_dict(), ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
