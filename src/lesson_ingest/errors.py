"""Common exceptions for the reference ingestion pipeline."""
from __future__ import annotations


class IngestError(RuntimeError):
    """Base class for failures raised while ingesting reference materials."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class UnsupportedFormatError(IngestError):
    """Raised when an uploaded item cannot be mapped to any extractor."""


class ArchiveError(IngestError):
    """Raised when an archive container cannot be read."""


class ExtractionError(IngestError):
    """Raised when an extractor fails on a whole file."""


class RecognitionError(IngestError):
    """Raised when the recognition engine cannot process an image."""


class PersistenceError(IngestError):
    """Raised when the extraction store rejects a result."""


class UploadError(IngestError):
    """Raised when a file transfer fails permanently."""

    def __init__(self, message: str, *, status_code: int | None = None, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.status_code = status_code


class InvalidTransitionError(IngestError):
    """Raised when an extraction result is moved to a state it cannot reach."""
