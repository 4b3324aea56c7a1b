"""Utilities for detecting the format of uploaded reference materials."""
from __future__ import annotations

import io
import mimetypes
import zipfile
from enum import Enum
from pathlib import Path
from typing import Optional

from ..errors import UnsupportedFormatError


class DocumentFormat(str, Enum):
    """Supported reference material formats."""

    PPTX = "pptx"
    PDF = "pdf"
    IMAGE = "image"
    DOCX = "docx"
    TXT = "txt"
    ZIP = "zip"


_LEGACY_HINTS = {
    ".doc": (
        "Old .doc format is not supported. Please convert to .docx format using Microsoft Word "
        "(File → Save As → Word Document (.docx))"
    ),
    ".ppt": "Old .ppt format is not supported. Please convert to .pptx format and upload again.",
}

_IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tif", ".tiff", ".webp"}


class DocumentFormatDetector:
    """Classifies uploads by MIME type, then file suffix, then leading bytes."""

    _MIME_MAP = {
        "application/vnd.openxmlformats-officedocument.presentationml.presentation": DocumentFormat.PPTX,
        "application/pdf": DocumentFormat.PDF,
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentFormat.DOCX,
        "text/plain": DocumentFormat.TXT,
        "text/markdown": DocumentFormat.TXT,
        "application/zip": DocumentFormat.ZIP,
        "application/x-zip-compressed": DocumentFormat.ZIP,
    }

    _SUFFIX_MAP = {
        ".pptx": DocumentFormat.PPTX,
        ".pdf": DocumentFormat.PDF,
        ".docx": DocumentFormat.DOCX,
        ".txt": DocumentFormat.TXT,
        ".md": DocumentFormat.TXT,
        ".zip": DocumentFormat.ZIP,
        **{suffix: DocumentFormat.IMAGE for suffix in _IMAGE_SUFFIXES},
    }

    _SIGNATURES = (
        (b"%PDF-", DocumentFormat.PDF),
        (b"\x89PNG\r\n\x1a\n", DocumentFormat.IMAGE),
        (b"\xff\xd8\xff", DocumentFormat.IMAGE),
        (b"GIF87a", DocumentFormat.IMAGE),
        (b"GIF89a", DocumentFormat.IMAGE),
        (b"BM", DocumentFormat.IMAGE),
        (b"II*\x00", DocumentFormat.IMAGE),
        (b"MM\x00*", DocumentFormat.IMAGE),
    )

    @classmethod
    def detect(
        cls, file_name: str, mime_type: Optional[str] = None, data: Optional[bytes] = None
    ) -> DocumentFormat:
        """Return the detected document format.

        An explicit MIME type wins, then `mimetypes.guess_type`, then the file
        suffix and finally the leading bytes of the payload. Legacy binary
        Office formats are rejected with a conversion hint.
        """

        suffix = Path(file_name).suffix.lower()
        if suffix in _LEGACY_HINTS:
            raise UnsupportedFormatError(_LEGACY_HINTS[suffix])

        if mime_type:
            mime = mime_type.split(";")[0].strip().lower()
            if mime in cls._MIME_MAP:
                return cls._MIME_MAP[mime]
            if mime.startswith("image/"):
                return DocumentFormat.IMAGE

        guessed_type, _ = mimetypes.guess_type(file_name)
        if guessed_type and guessed_type in cls._MIME_MAP:
            return cls._MIME_MAP[guessed_type]

        if suffix in cls._SUFFIX_MAP:
            return cls._SUFFIX_MAP[suffix]

        if data:
            sniffed = cls.sniff(data)
            if sniffed is not None:
                return sniffed

        raise UnsupportedFormatError(f"Unsupported file format: {file_name}")

    @classmethod
    def sniff(cls, data: bytes) -> Optional[DocumentFormat]:
        """Guess the format from the payload's signature."""

        for signature, document_format in cls._SIGNATURES:
            if data.startswith(signature):
                return document_format
        if data.startswith(b"PK\x03\x04"):
            return cls._sniff_ooxml(data)
        return None

    @staticmethod
    def _sniff_ooxml(data: bytes) -> DocumentFormat:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                names = set(archive.namelist())
        except zipfile.BadZipFile:
            return DocumentFormat.ZIP
        if "ppt/presentation.xml" in names:
            return DocumentFormat.PPTX
        if "word/document.xml" in names:
            return DocumentFormat.DOCX
        return DocumentFormat.ZIP

    @classmethod
    def is_supported(cls, file_name: str) -> bool:
        return Path(file_name).suffix.lower() in cls._SUFFIX_MAP
