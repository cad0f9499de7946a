"""Attachment service: upload, list, read, delete. Blob store and metadata move together."""

import logging
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from securepad.alerts.dispatcher import AlertDetails, AlertDispatcher
from securepad.config import Settings, get_settings
from securepad.db.session import utcnow
from securepad.errors import BlobStoreError, FileExpired, FileNotFound
from securepad.files.blobstore import LocalBlobStore
from securepad.files.models import FileAttachment
from securepad.files.validation import clean_filename, validate_upload
from securepad.pads.models import Pad
from securepad.security.log import append_event
from securepad.security.models import EventType

log = logging.getLogger(__name__)


def file_ttl_minutes(pad: Pad, settings: Settings) -> int:
    """Retention for a pad's files: the pad's own window, else the server default."""
    return pad.retention_minutes or settings.file_ttl_minutes


def alert_file_event(
    pad: Pad,
    event_type: Union[EventType, str],
    file_name: str,
    ip: Optional[str],
    user_agent: Optional[str],
    dispatcher: Optional[AlertDispatcher],
) -> None:
    """Alert the owner about a committed file event if they opted in."""
    if dispatcher is not None and pad.alert_email:
        dispatcher.dispatch(
            pad.alert_email,
            pad.slug,
            event_type,
            AlertDetails(ip=ip, user_agent=user_agent, file_name=file_name),
        )


async def upload_attachment(
    session: AsyncSession,
    pad: Pad,
    filename: Optional[str],
    data: bytes,
    blob_store: LocalBlobStore,
    *,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    dispatcher: Optional[AlertDispatcher] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> FileAttachment:
    """
    Validate, store the bytes, then commit the metadata row and the file_uploaded event.
    A failed blob put writes nothing; a failed metadata commit removes the blob again.
    Raises ValidationFailed or BlobStoreError.
    """
    settings = settings or get_settings()
    name = clean_filename(filename)
    mime = validate_upload(name, data, settings)
    key = await blob_store.put(data, {"pad_slug": pad.slug, "filename": name})
    uploaded_at = now or utcnow()
    attachment = FileAttachment(
        id=secrets.token_hex(16),
        pad_slug=pad.slug,
        blob_key=key,
        original_name=name,
        size=len(data),
        mime_type=mime,
        uploaded_at=uploaded_at,
        expires_at=uploaded_at + timedelta(minutes=file_ttl_minutes(pad, settings)),
    )
    try:
        session.add(attachment)
        await append_event(
            session, pad.slug, EventType.FILE_UPLOADED, ip, user_agent, success=True, details=name
        )
        await session.commit()
    except Exception:
        log.exception("Metadata write failed for pad=%s; removing blob key=%s", pad.slug, key)
        await session.rollback()
        try:
            await blob_store.delete(key)
        except BlobStoreError as e:
            log.error("Could not remove blob key=%s after failed upload: %s", key, e)
        raise
    alert_file_event(pad, EventType.FILE_UPLOADED, name, ip, user_agent, dispatcher)
    log.info(
        "upload pad=%s file=%s name=%s size=%d expires=%s",
        pad.slug, attachment.id, name, len(data), attachment.expires_at.isoformat(),
    )
    return attachment


async def list_attachments(
    session: AsyncSession, slug: str, now: Optional[datetime] = None
) -> List[FileAttachment]:
    """Live (unexpired) attachments for a pad, newest first."""
    result = await session.execute(
        select(FileAttachment)
        .where(FileAttachment.pad_slug == slug, FileAttachment.expires_at >= (now or utcnow()))
        .order_by(FileAttachment.uploaded_at.desc())
    )
    return list(result.scalars().all())


async def get_attachment(session: AsyncSession, slug: str, file_id: str) -> FileAttachment:
    """Return the pad's attachment by id. Raises FileNotFound (also for another pad's file)."""
    attachment = await session.get(FileAttachment, file_id)
    if attachment is None or attachment.pad_slug != slug:
        raise FileNotFound(file_id)
    return attachment


async def read_attachment(
    session: AsyncSession,
    slug: str,
    file_id: str,
    blob_store: LocalBlobStore,
    now: Optional[datetime] = None,
) -> Tuple[FileAttachment, bytes]:
    """Return (metadata, bytes). Raises FileNotFound, FileExpired or BlobStoreError."""
    attachment = await get_attachment(session, slug, file_id)
    if attachment.expires_at < (now or utcnow()):
        raise FileExpired(file_id)
    data = await blob_store.get(attachment.blob_key)
    return attachment, data


async def delete_attachment(
    session: AsyncSession,
    pad: Pad,
    file_id: str,
    blob_store: LocalBlobStore,
    *,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    dispatcher: Optional[AlertDispatcher] = None,
) -> FileAttachment:
    """
    Delete the blob first, then the metadata row. If the blob delete fails the row
    stays so a later delete or retention tick can retry.
    """
    attachment = await get_attachment(session, pad.slug, file_id)
    await blob_store.delete(attachment.blob_key)
    await session.delete(attachment)
    await append_event(
        session,
        pad.slug,
        EventType.FILE_DELETED,
        ip,
        user_agent,
        success=True,
        details=attachment.original_name,
    )
    await session.commit()
    alert_file_event(pad, EventType.FILE_DELETED, attachment.original_name, ip, user_agent, dispatcher)
    log.info("delete pad=%s file=%s name=%s", pad.slug, file_id, attachment.original_name)
    return attachment


async def record_download(
    session: AsyncSession,
    pad: Pad,
    attachment: FileAttachment,
    *,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    dispatcher: Optional[AlertDispatcher] = None,
) -> None:
    """Log file_downloaded for a served file and alert the owner."""
    await append_event(
        session,
        pad.slug,
        EventType.FILE_DOWNLOADED,
        ip,
        user_agent,
        success=True,
        details=attachment.original_name,
    )
    await session.commit()
    alert_file_event(pad, EventType.FILE_DOWNLOADED, attachment.original_name, ip, user_agent, dispatcher)
    log.info("download pad=%s file=%s", pad.slug, attachment.id)
