"""Upload validation: extension allow-list, size limit, magic bytes."""

import unicodedata
from pathlib import PurePosixPath
from typing import Optional

from securepad.config import Settings, get_settings
from securepad.errors import ValidationFailed

# Extension -> (accepted header prefixes, MIME type)
_MAGIC = {
    ".pdf": ((b"%PDF",), "application/pdf"),
    ".jpg": ((b"\xff\xd8\xff",), "image/jpeg"),
    ".jpeg": ((b"\xff\xd8\xff",), "image/jpeg"),
    ".png": ((b"\x89PNG",), "image/png"),
    # DOCX is a zip container
    ".docx": (
        (b"PK\x03\x04", b"PK\x05\x06"),
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ),
}

_MIN_HEADER_BYTES = 8
_MAX_NAME_CHARS = 255


class FileTooLarge(ValidationFailed):
    """Upload exceeds max_file_size_bytes."""


def clean_filename(name: Optional[str]) -> str:
    """
    Return the display name for an upload: last path component only, control
    characters removed, capped at 255 chars. Raises ValidationFailed if nothing is left.
    """
    base = PurePosixPath((name or "").replace("\\", "/")).name
    base = "".join(c for c in base if unicodedata.category(c)[0] != "C").strip()
    if not base or base in (".", ".."):
        raise ValidationFailed("No file provided")
    if len(base) > _MAX_NAME_CHARS:
        stem, dot, ext = base.rpartition(".")
        if dot and len(ext) <= 10:
            base = stem[: _MAX_NAME_CHARS - len(ext) - 1] + "." + ext
        else:
            base = base[:_MAX_NAME_CHARS]
    return base


def detect_mime(filename: str, data: bytes) -> Optional[str]:
    """Return the MIME type if the header matches the extension, else None."""
    ext = PurePosixPath(filename).suffix.lower()
    entry = _MAGIC.get(ext)
    if entry is None or len(data) < _MIN_HEADER_BYTES:
        return None
    prefixes, mime = entry
    if any(data.startswith(p) for p in prefixes):
        return mime
    return None


def validate_upload(filename: str, data: bytes, settings: Optional[Settings] = None) -> str:
    """
    Check an upload before anything is stored. Returns the MIME type.
    Raises FileTooLarge or ValidationFailed.
    """
    settings = settings or get_settings()
    ext = PurePosixPath(filename).suffix.lower()
    if ext not in settings.allowed_extensions_list or ext not in _MAGIC:
        raise ValidationFailed("Invalid file type")
    if len(data) > settings.max_file_size_bytes:
        raise FileTooLarge(
            f"File too large. Maximum size is {settings.max_file_size_bytes // (1024 * 1024)}MB"
        )
    mime = detect_mime(filename, data)
    if mime is None:
        raise ValidationFailed("Invalid or corrupted file")
    return mime
