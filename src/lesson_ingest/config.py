"""Environment driven configuration for the ingestion pipeline."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

LOGGER = logging.getLogger(__name__)

LOW_CONFIDENCE_THRESHOLD = 0.70


def int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def bool_from_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off", ""}


@dataclass(slots=True)
class PipelineConfig:
    """Tunables for extraction, rendering and archive expansion."""

    ocr_language: str = "eng"
    max_dimension: int = 2000
    max_scale: float = 2.0
    min_image_bytes: int = 20 * 1024
    pdf_text_layer: bool = False
    pdf_min_chars_per_page: int = 50
    archive_max_members: int = 50
    archive_max_total_bytes: int = 200 * 1024 * 1024
    cache_dir: Optional[str] = None

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        defaults = cls()
        return cls(
            ocr_language=os.getenv("OCR_LANG", defaults.ocr_language),
            max_dimension=int_from_env("OCR_MAX_DIMENSION", defaults.max_dimension),
            max_scale=float_from_env("OCR_MAX_SCALE", defaults.max_scale),
            min_image_bytes=int_from_env("OCR_MIN_IMAGE_BYTES", defaults.min_image_bytes),
            pdf_text_layer=bool_from_env("PDF_TEXT_LAYER", defaults.pdf_text_layer),
            pdf_min_chars_per_page=int_from_env("PDF_MIN_CHARS_PER_PAGE", defaults.pdf_min_chars_per_page),
            archive_max_members=int_from_env("ARCHIVE_MAX_MEMBERS", defaults.archive_max_members),
            archive_max_total_bytes=int_from_env("ARCHIVE_MAX_TOTAL_BYTES", defaults.archive_max_total_bytes),
            cache_dir=os.getenv("EXTRACTION_CACHE_DIR") or None,
        )


@dataclass(slots=True)
class UploadConfig:
    """Settings for the storage upload transport."""

    url: str = "http://localhost:54321/storage/upload"
    token: Optional[str] = None
    timeout_seconds: float = 120.0
    retries: int = 2
    retry_delay_seconds: float = 0.7

    @classmethod
    def from_env(cls) -> "UploadConfig":
        defaults = cls()
        return cls(
            url=os.getenv("UPLOAD_URL", defaults.url),
            token=os.getenv("UPLOAD_TOKEN") or None,
            timeout_seconds=float_from_env("UPLOAD_TIMEOUT_SECONDS", defaults.timeout_seconds),
            retries=int_from_env("UPLOAD_RETRIES", defaults.retries),
            retry_delay_seconds=float_from_env("UPLOAD_RETRY_DELAY_SECONDS", defaults.retry_delay_seconds),
        )
