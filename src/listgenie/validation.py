"""Client-side checks on image files before they are uploaded.

Mirrors the backend's limits so obviously bad batches fail fast without
spending an upload: only JPEG, PNG and WebP images, at most 10 MB each,
and between one and 20 files per batch.
"""

from __future__ import annotations

import mimetypes
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Union

from listgenie.constants import ALLOWED_MIME_TYPES
from listgenie.exceptions import FileValidationError


@dataclass(frozen=True, slots=True)
class UploadFile:
    """An image ready to be placed in the multipart body."""

    filename: str
    content: bytes
    content_type: str

    @classmethod
    def from_path(cls, path: str | Path) -> UploadFile:
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            filename=path.name,
            content=path.read_bytes(),
            content_type=content_type or "application/octet-stream",
        )

    @property
    def size(self) -> int:
        return len(self.content)


FileInput = Union[str, Path, tuple[str, Union[bytes, BinaryIO], str], UploadFile]


def coerce_files(files: Iterable[FileInput]) -> list[UploadFile]:
    """Normalize paths and ``(name, bytes|file, mime)`` tuples to :class:`UploadFile`.

    File objects are read from their current position.
    """
    result: list[UploadFile] = []
    for item in files:
        if isinstance(item, UploadFile):
            result.append(item)
        elif isinstance(item, (str, Path)):
            result.append(UploadFile.from_path(item))
        else:
            filename, content, content_type = item
            if not isinstance(content, (bytes, bytearray)):
                content = content.read()
            result.append(UploadFile(filename, bytes(content), content_type))
    return result


def validate_files(
    files: Sequence[UploadFile],
    max_file_size: int = 10 * 1024 * 1024,
    max_files: int = 20,
    allowed_types: frozenset[str] = ALLOWED_MIME_TYPES,
) -> None:
    """Reject the batch if any file breaks the upload rules.

    Raises:
        FileValidationError: Listing every problem found, one per line.
    """
    if not files:
        raise FileValidationError(["Please select at least one image to process."])
    if len(files) > max_files:
        raise FileValidationError(
            [f"Too many files: {len(files)} selected, at most {max_files} per upload."]
        )

    problems: list[str] = []
    limit_mb = max_file_size / (1024 * 1024)
    for f in files:
        if f.content_type not in allowed_types:
            problems.append(
                f"{f.filename}: unsupported file type {f.content_type} "
                "(allowed: JPEG, PNG, WebP)"
            )
        if f.size > max_file_size:
            problems.append(
                f"{f.filename}: {f.size / (1024 * 1024):.1f} MB exceeds the "
                f"{limit_mb:.0f} MB limit"
            )
        elif f.size == 0:
            problems.append(f"{f.filename}: file is empty")

    if problems:
        raise FileValidationError(problems)
