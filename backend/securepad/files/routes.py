"""File API routes: upload, download, delete. Every route goes through the pad access gate."""

import logging
from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from securepad.alerts.dispatcher import AlertDispatcher
from securepad.auth.dependencies import (
    authorize,
    client_ip,
    client_user_agent,
    get_blob_store,
    get_dispatcher,
)
from securepad.config import get_settings
from securepad.db.session import get_db
from securepad.errors import BlobStoreError, FileExpired, FileNotFound, ValidationFailed
from securepad.files.blobstore import LocalBlobStore
from securepad.files.service import (
    delete_attachment,
    read_attachment,
    record_download,
    upload_attachment,
)
from securepad.files.validation import FileTooLarge
from securepad.pads.models import AttachmentResponse, FileRef, PadPassword

router = APIRouter(prefix="/api", tags=["files"])
log = logging.getLogger(__name__)


def _content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback and the UTF-8 name (RFC 6266)."""
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "") or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.post("/upload/{slug}", response_model=AttachmentResponse)
async def upload_file(
    slug: str,
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    dispatcher: Annotated[AlertDispatcher, Depends(get_dispatcher)],
    blob_store: Annotated[LocalBlobStore, Depends(get_blob_store)],
    file: Annotated[UploadFile, File()],
    password: Annotated[str, Form()] = "",
) -> AttachmentResponse:
    """Upload one file (multipart field 'file', plus 'password')."""
    pad = await authorize(request, session, slug, password, dispatcher)
    settings = get_settings()
    # Read one byte past the limit so oversize uploads are detected without buffering them whole
    data = await file.read(settings.max_file_size_bytes + 1)
    try:
        attachment = await upload_attachment(
            session,
            pad,
            file.filename,
            data,
            blob_store,
            ip=client_ip(request),
            user_agent=client_user_agent(request),
            dispatcher=dispatcher,
            settings=settings,
        )
    except FileTooLarge as e:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e))
    except ValidationFailed as e:
        log.warning("upload rejected pad=%s name=%r: %s", slug, file.filename, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except BlobStoreError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Upload failed: storage unavailable",
        )
    return AttachmentResponse.model_validate(attachment)


@router.post("/file/{slug}/{file_id}")
async def download_file(
    slug: str,
    file_id: str,
    request: Request,
    body: PadPassword,
    session: Annotated[AsyncSession, Depends(get_db)],
    dispatcher: Annotated[AlertDispatcher, Depends(get_dispatcher)],
    blob_store: Annotated[LocalBlobStore, Depends(get_blob_store)],
) -> Response:
    """Download a live attachment. 410 once it has expired."""
    pad = await authorize(request, session, slug, body.password, dispatcher)
    try:
        attachment, data = await read_attachment(session, slug, file_id, blob_store)
    except FileNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    except FileExpired:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="File expired")
    except BlobStoreError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Download failed: storage unavailable",
        )
    await record_download(
        session,
        pad,
        attachment,
        ip=client_ip(request),
        user_agent=client_user_agent(request),
        dispatcher=dispatcher,
    )
    return Response(
        content=data,
        media_type=attachment.mime_type or "application/octet-stream",
        headers={"Content-Disposition": _content_disposition(attachment.original_name)},
    )


@router.delete("/file/{file_id}")
async def delete_file(
    file_id: str,
    request: Request,
    body: FileRef,
    session: Annotated[AsyncSession, Depends(get_db)],
    dispatcher: Annotated[AlertDispatcher, Depends(get_dispatcher)],
    blob_store: Annotated[LocalBlobStore, Depends(get_blob_store)],
) -> dict:
    """Delete an attachment (body: padId, password)."""
    pad = await authorize(request, session, body.pad_id, body.password, dispatcher)
    try:
        await delete_attachment(
            session,
            pad,
            file_id,
            blob_store,
            ip=client_ip(request),
            user_agent=client_user_agent(request),
            dispatcher=dispatcher,
        )
    except FileNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    except BlobStoreError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Delete failed: storage unavailable",
        )
    return {"success": True, "id": file_id}
