"""Reference material ingestion package."""

from .models import ChunkSource, ExtractionResult, ExtractionStatus, ReferenceChunk
from .pipeline import IngestionRouter, IngestReport

__all__ = [
    "ChunkSource",
    "ExtractionResult",
    "ExtractionStatus",
    "IngestReport",
    "IngestionRouter",
    "ReferenceChunk",
]
