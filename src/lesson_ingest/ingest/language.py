"""Language detection helpers."""
from __future__ import annotations

import logging
from typing import Optional

from langdetect import DetectorFactory, LangDetectException, detect

LOGGER = logging.getLogger(__name__)
DetectorFactory.seed = 0


class LanguageDetector:
    """Wraps langdetect so undetectable text yields ``None`` instead of raising."""

    def __init__(self, min_chars: int = 20) -> None:
        self.min_chars = min_chars

    def detect(self, text: str) -> Optional[str]:
        cleaned = text.strip()
        if len(cleaned) < self.min_chars:
            return None
        try:
            language = detect(cleaned)
        except LangDetectException:
            LOGGER.info("Unable to determine language for text of length %s", len(cleaned))
            return None
        LOGGER.debug("Detected language: %s", language)
        return language
