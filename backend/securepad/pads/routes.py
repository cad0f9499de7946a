"""Pad routes: check/create, login, read, save, security log, summarize."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from securepad.alerts.dispatcher import AlertDispatcher
from securepad.auth.dependencies import authorize, get_dispatcher, get_summarizer
from securepad.config import get_settings
from securepad.db.session import as_utc, get_db
from securepad.errors import Conflict, SummarizerError, ValidationFailed
from securepad.files.service import list_attachments
from securepad.pads.models import (
    AttachmentResponse,
    PadContentResponse,
    PadCreate,
    PadLogin,
    PadPassword,
    PadSave,
    SecurityEventResponse,
    SummarizeRequest,
)
from securepad.pads.store import create_pad, fetch_pad, update_content, validate_slug
from securepad.security.log import recent_events
from securepad.summarize import Summarizer

router = APIRouter(prefix="/api", tags=["pads"])
log = logging.getLogger(__name__)

SECURITY_LOG_LIMIT = 50


@router.get("/check-url/{slug}")
async def check_url(
    slug: str,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Return whether a URL name is well-formed and still free."""
    try:
        validate_slug(slug)
    except ValidationFailed as e:
        return {"available": False, "error": str(e)}
    pad = await fetch_pad(session, slug)
    if pad is not None:
        return {"available": False, "error": "This URL name is already taken."}
    return {"available": True}


@router.post("/create-pad", status_code=status.HTTP_201_CREATED)
async def create(
    body: PadCreate,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Create a public or password-protected pad."""
    try:
        pad = await create_pad(
            session,
            body.url_name,
            body.password,
            body.is_public,
            alert_email=body.alert_email,
            retention_minutes=body.retention_minutes,
        )
        await session.commit()
    except ValidationFailed as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (Conflict, IntegrityError):
        log.info("Create rejected, slug taken: %s", body.url_name)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This URL name is already taken.",
        )
    return {"success": True, "urlName": pad.slug, "isPublic": pad.is_public}


@router.get("/pad/{slug}/exists")
async def check_exists(
    slug: str,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """Whether the pad exists and, if so, whether it needs a password."""
    pad = await fetch_pad(session, slug)
    if pad is None:
        return {"exists": False}
    return {"exists": True, "isPublic": pad.is_public}


@router.post("/login")
async def login(
    request: Request,
    body: PadLogin,
    session: Annotated[AsyncSession, Depends(get_db)],
    dispatcher: Annotated[AlertDispatcher, Depends(get_dispatcher)],
) -> dict:
    """Check a pad's password from the login form. Failures count toward brute-force detection."""
    pad = await authorize(request, session, body.url_name, body.password, dispatcher)
    return {"success": True, "urlName": pad.slug, "isPublic": pad.is_public}


@router.post("/pad/{slug}/verify")
async def verify(
    slug: str,
    request: Request,
    body: PadPassword,
    session: Annotated[AsyncSession, Depends(get_db)],
    dispatcher: Annotated[AlertDispatcher, Depends(get_dispatcher)],
) -> dict:
    """Check the password for an already-known pad (re-prompt in the editor)."""
    await authorize(request, session, slug, body.password, dispatcher)
    return {"success": True}


@router.post("/pad/{slug}/get", response_model=PadContentResponse)
async def get_content(
    slug: str,
    request: Request,
    body: PadPassword,
    session: Annotated[AsyncSession, Depends(get_db)],
    dispatcher: Annotated[AlertDispatcher, Depends(get_dispatcher)],
) -> PadContentResponse:
    """Open a pad: content plus live attachments."""
    pad = await authorize(request, session, slug, body.password, dispatcher, notify_access=True)
    files = await list_attachments(session, slug)
    return PadContentResponse(
        content=pad.content,
        is_public=pad.is_public,
        updated_at=pad.updated_at,
        files=[AttachmentResponse.model_validate(f) for f in files],
    )


@router.post("/pad/{slug}/save")
async def save_content(
    slug: str,
    request: Request,
    body: PadSave,
    session: Annotated[AsyncSession, Depends(get_db)],
    dispatcher: Annotated[AlertDispatcher, Depends(get_dispatcher)],
) -> dict:
    """Replace pad content. Concurrent saves are last-write-wins."""
    await authorize(request, session, slug, body.password, dispatcher)
    pad = await update_content(session, slug, body.content)
    await session.commit()
    return {"success": True, "updatedAt": as_utc(pad.updated_at).isoformat()}


@router.post("/pad/{slug}/security-logs", response_model=list[SecurityEventResponse])
async def security_logs(
    slug: str,
    request: Request,
    body: PadPassword,
    session: Annotated[AsyncSession, Depends(get_db)],
    dispatcher: Annotated[AlertDispatcher, Depends(get_dispatcher)],
) -> list[SecurityEventResponse]:
    """Newest security events for the pad (owner view)."""
    await authorize(request, session, slug, body.password, dispatcher)
    events = await recent_events(session, slug, limit=SECURITY_LOG_LIMIT)
    return [SecurityEventResponse.model_validate(e) for e in events]


@router.post("/summarize")
async def summarize(
    request: Request,
    body: SummarizeRequest,
    session: Annotated[AsyncSession, Depends(get_db)],
    dispatcher: Annotated[AlertDispatcher, Depends(get_dispatcher)],
    summarizer: Annotated[Summarizer, Depends(get_summarizer)],
) -> dict:
    """Summarize the editor text (or the stored content). Summarizer failures never touch the pad."""
    pad = await authorize(request, session, body.pad_id, body.password, dispatcher)
    text = (body.content or pad.content or "").strip()
    min_chars = get_settings().summary_min_chars
    if len(text) < min_chars:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Please write at least {min_chars} characters to summarize",
        )
    try:
        summary = await summarizer.summarize(text)
    except SummarizerError as e:
        log.warning("Summarize failed for pad=%s: %s", pad.slug, e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Summarization is currently unavailable",
        )
    return {"success": True, "summary": summary}
