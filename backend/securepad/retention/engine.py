"""Retention: purge expired attachments and wipe stale pad content on a timer."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncContextManager, Awaitable, Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from securepad.config import Settings, get_settings
from securepad.db.session import utcnow
from securepad.errors import BlobStoreError
from securepad.files.blobstore import LocalBlobStore
from securepad.files.models import FileAttachment
from securepad.pads.models import Pad

log = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


@dataclass
class RetentionReport:
    """What one tick did."""

    files_removed: int = 0
    files_deferred: int = 0
    pads_cleared: int = 0


async def purge_expired_files(
    session_factory: SessionFactory,
    blob_store: LocalBlobStore,
    now: datetime,
) -> RetentionReport:
    """
    Remove every attachment with expires_at < now: blob first, then its row.
    A blob that cannot be deleted keeps its row for the next tick.
    """
    report = RetentionReport()
    async with session_factory() as session:
        result = await session.execute(
            select(FileAttachment.id, FileAttachment.blob_key, FileAttachment.pad_slug).where(
                FileAttachment.expires_at < now
            )
        )
        expired = result.all()
    for file_id, blob_key, pad_slug in expired:
        try:
            await blob_store.delete(blob_key)
        except BlobStoreError as e:
            log.warning("Deferring expired file=%s pad=%s to next tick: %s", file_id, pad_slug, e)
            report.files_deferred += 1
            continue
        # One short transaction per file so a later failure never strands an earlier blob delete
        async with session_factory() as session:
            await session.execute(delete(FileAttachment).where(FileAttachment.id == file_id))
        report.files_removed += 1
        log.debug("Purged expired file=%s pad=%s", file_id, pad_slug)
    return report


async def clear_expired_content(
    session_factory: SessionFactory,
    settings: Settings,
    now: datetime,
) -> int:
    """Wipe content of pads not updated within their retention window. Pads and passwords stay."""
    cleared = 0
    async with session_factory() as session:
        result = await session.execute(select(Pad).where(Pad.content != ""))
        for pad in result.scalars().all():
            window = pad.retention_minutes or settings.content_ttl_minutes
            if pad.updated_at < now - timedelta(minutes=window):
                pad.content = ""
                cleared += 1
                log.debug("Cleared expired content pad=%s", pad.slug)
    return cleared


async def run_retention_tick(
    session_factory: SessionFactory,
    blob_store: LocalBlobStore,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> RetentionReport:
    """One retention pass. Running it again with nothing newly expired changes nothing."""
    settings = settings or get_settings()
    now = now or utcnow()
    report = await purge_expired_files(session_factory, blob_store, now)
    if settings.content_expiry_enabled:
        report.pads_cleared = await clear_expired_content(session_factory, settings, now)
    if report.files_removed or report.files_deferred or report.pads_cleared:
        log.info(
            "Retention: removed %d expired files, deferred %d, cleared %d pads",
            report.files_removed, report.files_deferred, report.pads_cleared,
        )
    else:
        log.debug("Retention: nothing expired")
    return report


class RetentionScheduler:
    """
    Background task owned by the app lifespan: runs tick once at start, then
    every interval_seconds. A failing tick is logged and the loop keeps going.
    """

    def __init__(self, tick: Callable[[], Awaitable[object]], interval_seconds: float) -> None:
        self._tick = tick
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        log.info("Retention scheduler started (every %.0fs)", self._interval)

    async def _run(self) -> None:
        while True:
            try:
                await self._tick()
            except Exception:
                log.exception("Retention tick failed")
            await asyncio.sleep(self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        log.info("Retention scheduler stopped")
