"""Local-disk blob store for uploaded file bytes. Keys are opaque to callers."""

import asyncio
import logging
import re
import secrets
from pathlib import Path, PurePosixPath
from typing import Mapping, Optional

from securepad.config import get_settings
from securepad.errors import BlobStoreError, FileNotFound

log = logging.getLogger(__name__)

# Key segments: slug directory, then "<hex><.ext>". No traversal, no separators.
_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")
_SAFE_EXT = re.compile(r"^\.[a-z0-9]{1,10}$")


def _sanitize_segment(segment: str) -> Optional[str]:
    """Return segment if safe, else None. Rejects empty, '..', '.', and invalid chars."""
    segment = segment.strip()
    if not segment or segment in (".", ".."):
        return None
    if not _SAFE_SEGMENT.match(segment):
        return None
    return segment


class LocalBlobStore:
    """
    Stores blobs under base_path/<pad slug>/<random id><ext>.
    Filesystem calls run in a worker thread so the event loop is never blocked.
    """

    def __init__(self, base_path: Optional[Path] = None) -> None:
        self._base = Path(base_path or get_settings().storage_base_path)

    @property
    def base_path(self) -> Path:
        return self._base

    def resolve(self, key: str) -> Path:
        """Resolve a key to a path under the base dir. Raises ValueError for unsafe keys."""
        parts = PurePosixPath(key.replace("\\", "/")).parts
        if len(parts) != 2:
            raise ValueError(f"Invalid blob key: {key!r}")
        resolved = self._base
        for part in parts:
            safe = _sanitize_segment(part)
            if not safe:
                raise ValueError(f"Unsafe blob key segment: {part!r}")
            resolved = resolved / safe
        return resolved

    def _new_key(self, metadata: Mapping[str, str]) -> str:
        prefix = _sanitize_segment(metadata.get("pad_slug", "")) or "misc"
        ext = PurePosixPath(metadata.get("filename", "")).suffix.lower()
        if not _SAFE_EXT.match(ext):
            ext = ""
        return f"{prefix}/{secrets.token_hex(16)}{ext}"

    async def put(self, data: bytes, metadata: Mapping[str, str]) -> str:
        """Store bytes and return the new key. Raises BlobStoreError on I/O failure."""
        key = self._new_key(metadata)
        target = self.resolve(key)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                target.write_bytes(data)
            except FileNotFoundError:
                # A concurrent delete removed the pad directory after it became empty
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            log.error("Blob write failed key=%s: %s", key, e)
            raise BlobStoreError(f"Could not store blob: {e}") from e
        log.debug("Stored blob key=%s size=%d", key, len(data))
        return key

    async def get(self, key: str) -> bytes:
        """Return blob bytes. Raises FileNotFound if absent, BlobStoreError on other I/O failure."""
        try:
            target = self.resolve(key)
        except ValueError as e:
            raise FileNotFound(key) from e
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as e:
            raise FileNotFound(key) from e
        except OSError as e:
            log.error("Blob read failed key=%s: %s", key, e)
            raise BlobStoreError(f"Could not read blob: {e}") from e

    async def delete(self, key: str) -> bool:
        """
        Delete a blob. Returns True if it was removed, False if it was already gone.
        Raises BlobStoreError if the blob may still exist.
        """
        try:
            target = self.resolve(key)
        except ValueError:
            log.warning("Refusing to delete unsafe blob key=%r", key)
            return False

        def _unlink() -> bool:
            try:
                target.unlink()
            except FileNotFoundError:
                return False
            # Remove the pad directory once it is empty
            parent = target.parent
            if parent != self._base:
                try:
                    if not any(parent.iterdir()):
                        parent.rmdir()
                except OSError:
                    pass
            return True

        try:
            removed = await asyncio.to_thread(_unlink)
        except OSError as e:
            log.error("Blob delete failed key=%s: %s", key, e)
            raise BlobStoreError(f"Could not delete blob: {e}") from e
        if not removed:
            log.info("Blob already gone key=%s", key)
        return removed
