"""Centralised observability helpers for structured lifecycle logging."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from typing import Any, Iterator, Optional

LOGGER = logging.getLogger("lesson_ingest.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "OCR_LANG",
    "OCR_MAX_DIMENSION",
    "OCR_MAX_SCALE",
    "OCR_MIN_IMAGE_BYTES",
    "PDF_TEXT_LAYER",
    "ARCHIVE_MAX_MEMBERS",
    "EXTRACTION_CACHE_DIR",
    "UPLOAD_URL",
    "UPLOAD_RETRIES",
    "LOG_LEVEL",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    lesson_id: str | None = None,
    file_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if lesson_id:
        event["lesson_id"] = lesson_id
    if file_id:
        event["file_id"] = file_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    log_event(LOGGER, "app.startup", details=details, pid=os.getpid(), hostname=socket.gethostname())


def emit_extraction_event(
    step: str,
    *,
    file_name: str,
    lesson_id: str,
    file_id: str | None = None,
    format: str | None = None,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    status: str | None = None,
    chunks: int | None = None,
    confidence: float | None = None,
    cache_hit: bool | None = None,
) -> None:
    details = {
        "file": file_name,
        "format": format,
        "size_bytes": size_bytes,
        "status": status,
        "chunks": chunks,
        "confidence": confidence,
        "cache_hit": cache_hit,
    }
    log_event(
        LOGGER,
        step,
        lesson_id=lesson_id,
        file_id=file_id,
        duration_ms=duration_ms,
        details=details,
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    lesson_id: str | None = None,
    file_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        lesson_id=lesson_id,
        file_id=file_id,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_extraction_event",
    "emit_exception",
    "traced_duration",
    "log_event",
]
