"""Lesson reference ingestion and structured-output validation."""

__version__ = "0.1.0"
