"""
attachments.py — Encoding of the single file a user may stage per turn.

Files are carried as ``{mime_type, base64 data}``; each provider binding
turns that into its own multimedia part.
"""

import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path

#: Largest file accepted as an inline attachment.
MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024  # 20 MB

_DEFAULT_MIME = "application/octet-stream"


def _normalize_mime(mime: str) -> str:
    """Normalize common MIME type variants."""
    if mime == "image/jpg":
        return "image/jpeg"
    return mime


@dataclass(frozen=True)
class Attachment:
    """A binary payload encoded as base64."""

    mime_type: str
    data: str
    name: str = ""

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str, name: str = "") -> "Attachment":
        return cls(
            mime_type=_normalize_mime(mime_type),
            data=base64.b64encode(raw).decode("ascii"),
            name=name,
        )

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


def encode_file(path: Path) -> Attachment:
    """
    Read *path* and encode it as an ``Attachment``.

    Raises:
        ValueError: If the file is missing, not a regular file, or too large.
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise ValueError(f"Not a file: {path}")

    size = path.stat().st_size
    if size > MAX_ATTACHMENT_BYTES:
        raise ValueError(
            f"{path.name} is {size} bytes; the limit is {MAX_ATTACHMENT_BYTES}"
        )

    mime, _ = mimetypes.guess_type(path.name)
    return Attachment.from_bytes(
        path.read_bytes(), mime or _DEFAULT_MIME, name=path.name
    )
