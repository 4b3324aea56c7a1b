"""Queued reference uploads: one transfer in flight, FIFO."""
from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Optional

from .queue import UploadQueue
from .transport import UploadReceipt, UploadTransport

LOGGER = logging.getLogger(__name__)


class ReferenceUploader:
    """Feeds :meth:`UploadTransport.upload` calls through an :class:`UploadQueue`."""

    def __init__(self, transport: Optional[UploadTransport] = None, queue: Optional[UploadQueue] = None) -> None:
        self.transport = transport or UploadTransport()
        self.queue = queue or UploadQueue()

    def submit(
        self,
        data: bytes,
        *,
        lesson_id: str,
        category: str,
        original_name: str,
        content_hash: Optional[str] = None,
    ) -> "Future[UploadReceipt]":
        return self.queue.submit(
            self.transport.upload,
            data,
            lesson_id=lesson_id,
            category=category,
            original_name=original_name,
            content_hash=content_hash,
            name=original_name,
        )

    def status(self) -> dict[str, int]:
        return self.queue.status()

    def close(self) -> None:
        LOGGER.info("Closing reference uploader")
        self.queue.shutdown()
        self.transport.close()
