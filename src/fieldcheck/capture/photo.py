# src/fieldcheck/capture/photo.py

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jpg"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_preview(data: bytes, content_type: str) -> str:
    """Locally renderable preview (data URI). No network involved."""
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


@dataclass(slots=True, frozen=True)
class PhotoSelection:
    """
    One picked image.

    - data: raw bytes that get uploaded
    - filename: original file name (its extension names the uploaded object)
    - preview: data URI for immediate display
    """

    data: bytes
    filename: str
    content_type: str = "image/jpeg"
    preview: str = ""
    selected_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        filename: str,
        content_type: str | None = None,
        selected_at: datetime | None = None,
    ) -> PhotoSelection:
        ctype = content_type or mimetypes.guess_type(filename)[0] or "image/jpeg"
        return cls(
            data=data,
            filename=filename,
            content_type=ctype,
            preview=build_preview(data, ctype),
            selected_at=selected_at or _utcnow(),
        )

    @property
    def extension(self) -> str:
        if "." not in self.filename:
            return DEFAULT_EXTENSION
        ext = self.filename.rsplit(".", 1)[-1].strip().lower()
        return ext or DEFAULT_EXTENSION

    @property
    def size(self) -> int:
        return len(self.data)


def load_image_file(path: str | Path) -> PhotoSelection:
    p = Path(path).expanduser()
    ctype = mimetypes.guess_type(p.name)[0]
    if not ctype or not ctype.startswith("image/"):
        raise ValueError(f"Not an image file: {p.name}")
    data = p.read_bytes()
    logger.debug("Loaded image %s (%d bytes, %s)", p, len(data), ctype)
    return PhotoSelection.from_bytes(data, p.name, ctype)


class FilePathPicker:
    """
    FilePickerCapability backed by a path chosen up front (console usage).

    A picker without a path behaves like a cancelled dialog.
    """

    def __init__(self, path: str | Path | None) -> None:
        self._path = Path(path).expanduser() if path else None

    async def pick_image(self) -> PhotoSelection | None:
        if self._path is None:
            return None
        return await asyncio.to_thread(load_image_file, self._path)
