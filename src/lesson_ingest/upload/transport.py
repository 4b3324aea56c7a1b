"""HTTP transport for storing uploaded reference files."""
from __future__ import annotations

import hashlib
import logging
import mimetypes
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from ..config import UploadConfig
from ..errors import UploadError

LOGGER = logging.getLogger(__name__)

RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.TransportError,
)


@dataclass(slots=True)
class UploadReceipt:
    storage_path: str
    attempts: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {"storagePath": self.storage_path}


class UploadTransport:
    """Posts files to the storage endpoint, retrying network-class failures.

    Retries use a linear backoff of ``retry_delay_seconds * attempt``. HTTP
    error statuses are surfaced immediately as :class:`UploadError`.
    """

    def __init__(
        self,
        config: Optional[UploadConfig] = None,
        *,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or UploadConfig()
        self._client = client or httpx.Client(timeout=self.config.timeout_seconds)
        self._owns_client = client is None
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        if not self.config.token:
            return {}
        return {"Authorization": f"Bearer {self.config.token}"}

    def upload(
        self,
        data: bytes,
        *,
        lesson_id: str,
        category: str,
        original_name: str,
        content_hash: Optional[str] = None,
    ) -> UploadReceipt:
        digest = content_hash or hashlib.sha256(data).hexdigest()
        mime_type = mimetypes.guess_type(original_name)[0] or "application/octet-stream"
        form = {
            "lessonId": lesson_id,
            "category": category,
            "sha256": digest,
            "originalName": original_name,
        }

        max_attempts = self.config.retries + 1
        for attempt in range(1, max_attempts + 1):
            try:
                response = self._client.post(
                    self.config.url,
                    data=form,
                    files={"file": (original_name, data, mime_type)},
                    headers=self._headers(),
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as error:
                status_code = error.response.status_code
                raise UploadError(
                    f"Upload failed with status {status_code}: {error.response.text[:200]}",
                    status_code=status_code,
                    cause=error,
                ) from error
            except RETRYABLE_EXCEPTIONS as error:
                if attempt >= max_attempts:
                    LOGGER.warning("Upload of %s failed after %s attempts: %s", original_name, attempt, error)
                    raise UploadError(
                        f"Upload failed after {attempt} attempts: {error}", cause=error
                    ) from error
                delay = self.config.retry_delay_seconds * attempt
                LOGGER.info(
                    "Upload attempt %s for %s failed: %s. Retrying in %.1fs...",
                    attempt,
                    original_name,
                    error,
                    delay,
                )
                self._sleep(delay)
                continue

            return UploadReceipt(storage_path=self._storage_path(response), attempts=attempt)

        raise UploadError(f"Upload of {original_name} did not complete")  # pragma: no cover

    @staticmethod
    def _storage_path(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError as error:
            raise UploadError("Upload response is not valid JSON", cause=error) from error
        storage_path = payload.get("storagePath") if isinstance(payload, dict) else None
        if not storage_path:
            raise UploadError("Upload response is missing storagePath")
        return storage_path

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
