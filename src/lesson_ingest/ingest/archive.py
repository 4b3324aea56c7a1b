"""Expansion of zip archives into individually processed members."""
from __future__ import annotations

import io
import logging
import mimetypes
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Optional

from ..errors import ArchiveError
from .format_detection import DocumentFormat, DocumentFormatDetector

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_MEMBERS = 50
DEFAULT_MAX_TOTAL_BYTES = 200 * 1024 * 1024


@dataclass(slots=True)
class ArchiveMember:
    name: str
    path: str
    data: bytes
    mime_type: Optional[str] = None
    error: Optional[str] = None


@dataclass(slots=True)
class ExpandedArchive:
    members: list[ArchiveMember] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def _is_system_entry(path: str) -> bool:
    return (
        path.startswith("__MACOSX")
        or "/." in path
        or path.startswith(".")
        or path.endswith(".DS_Store")
    )


class ArchiveExpander:
    """Reads the supported members out of a zip container.

    Directory entries and operating-system metadata are ignored silently,
    unsupported members are reported as skipped and expansion stops once the
    member count or the uncompressed size budget is exhausted. Members that
    cannot be decompressed are kept with an empty payload and an ``error``.
    """

    def __init__(
        self,
        max_members: int = DEFAULT_MAX_MEMBERS,
        max_total_bytes: int = DEFAULT_MAX_TOTAL_BYTES,
    ) -> None:
        self.max_members = max_members
        self.max_total_bytes = max_total_bytes

    def expand(self, data: bytes) -> ExpandedArchive:
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as error:
            raise ArchiveError("Failed to read ZIP file", cause=error) from error

        result = ExpandedArchive()
        total_bytes = 0
        with archive:
            for info in archive.infolist():
                path = info.filename
                if info.is_dir() or _is_system_entry(path):
                    continue

                name = PurePosixPath(path).name
                if not self._is_supported_member(name):
                    result.skipped.append(path)
                    continue

                if len(result.members) >= self.max_members:
                    result.errors.append(
                        f"ZIP contains too many files (max {self.max_members}). Remaining files skipped."
                    )
                    break

                total_bytes += info.file_size
                if total_bytes > self.max_total_bytes:
                    limit_mb = round(self.max_total_bytes / 1024 / 1024)
                    result.errors.append(f"ZIP contents exceed {limit_mb}MB limit. Remaining files skipped.")
                    break

                try:
                    payload = archive.read(info)
                except (zipfile.BadZipFile, OSError, RuntimeError) as error:
                    LOGGER.warning("Failed to extract archive member %s: %s", path, error)
                    message = f"Failed to extract {path}"
                    result.errors.append(message)
                    result.members.append(ArchiveMember(name=name, path=path, data=b"", error=message))
                    continue

                mime_type, _ = mimetypes.guess_type(name)
                result.members.append(ArchiveMember(name=name, path=path, data=payload, mime_type=mime_type))

        if not result.members:
            result.errors.append("No supported files found in ZIP")
        LOGGER.info(
            "Expanded archive: %s members, %s skipped, %s errors",
            len(result.members),
            len(result.skipped),
            len(result.errors),
        )
        return result

    @staticmethod
    def _is_supported_member(name: str) -> bool:
        if not DocumentFormatDetector.is_supported(name):
            return False
        return DocumentFormatDetector.detect(name) is not DocumentFormat.ZIP
