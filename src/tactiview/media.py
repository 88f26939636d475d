"""Encoded media payloads handed to the model."""

from __future__ import annotations

import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path

# Used when the platform's mimetypes table has no entry for the extension.
_FALLBACK_MIME_TYPES = {
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "webm": "video/webm",
    "avi": "video/x-msvideo",
    "mkv": "video/x-matroska",
    "3gp": "video/3gpp",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
}

_VIDEO_EXTENSIONS = {"mp4", "mov", "webm", "avi", "mkv", "m4v", "3gp", "ts"}


@dataclass(frozen=True)
class MediaPayload:
    """A still image as base64 text plus its MIME type."""

    data: str
    mime_type: str

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> MediaPayload:
        return cls(data=base64.b64encode(raw).decode("ascii"), mime_type=mime_type)

    @classmethod
    def from_path(cls, path: Path | str, mime_type: str | None = None) -> MediaPayload:
        """Read a file from disk and encode it.

        The MIME type is guessed from the file extension when not given.
        """
        path = Path(path)
        return cls.from_bytes(path.read_bytes(), mime_type or guess_mime_type(path))

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)


def guess_mime_type(path: Path | str) -> str:
    path = Path(path)
    guessed, _ = mimetypes.guess_type(path.name)
    if guessed:
        return guessed
    extension = path.suffix.lstrip(".").lower()
    return _FALLBACK_MIME_TYPES.get(extension, "application/octet-stream")


def is_video(path: Path | str, mime_type: str | None = None) -> bool:
    """True if the file looks like a video, by MIME type first, then extension."""
    if mime_type and mime_type.startswith("video/"):
        return True
    return Path(path).suffix.lstrip(".").lower() in _VIDEO_EXTENSIONS
