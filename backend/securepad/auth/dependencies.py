"""FastAPI dependencies: collaborators from app state and the shared pad access gate."""

from typing import Optional

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from securepad.alerts.dispatcher import AlertDispatcher
from securepad.config import get_settings
from securepad.errors import PadNotFound, Unauthorized
from securepad.files.blobstore import LocalBlobStore
from securepad.pads.models import Pad
from securepad.security.verifier import verify_access
from securepad.summarize import Summarizer


NOT_FOUND_DETAIL = "Note not found"
UNAUTHORIZED_DETAIL = "Incorrect password"


def get_blob_store(request: Request) -> LocalBlobStore:
    """Blob store created at startup."""
    return request.app.state.blob_store


def get_dispatcher(request: Request) -> AlertDispatcher:
    """Alert dispatcher created at startup."""
    return request.app.state.dispatcher


def get_summarizer(request: Request) -> Summarizer:
    """Summarizer created at startup."""
    return request.app.state.summarizer


def client_ip(request: Request) -> Optional[str]:
    """Requester IP; first X-Forwarded-For hop only when proxy headers are trusted."""
    if get_settings().trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def client_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


async def authorize(
    request: Request,
    session: AsyncSession,
    slug: str,
    password: Optional[str],
    dispatcher: Optional[AlertDispatcher],
    notify_access: bool = False,
) -> Pad:
    """
    Run the access verifier for a route; return the pad or raise.
    404 for a missing pad, 401 with a generic message for a wrong password
    (brute-force classification never changes the response).
    """
    decision = await verify_access(
        session,
        slug,
        password,
        client_ip(request),
        client_user_agent(request),
        dispatcher=dispatcher,
        notify_access=notify_access,
    )
    try:
        return decision.require()
    except PadNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    except Unauthorized:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED_DETAIL)
