"""Pad store: create, fetch and update pads. Passwords are only ever stored hashed."""

import logging
import re
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from securepad.auth.passwords import hash_password
from securepad.config import get_settings
from securepad.db.session import utcnow
from securepad.errors import Conflict, PadNotFound, ValidationFailed
from securepad.pads.models import Pad

log = logging.getLogger(__name__)

_SLUG_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,50}$")


def validate_slug(slug: str) -> str:
    """Return slug if it is 3-50 chars of letters, digits, '-' or '_'; raise ValidationFailed otherwise."""
    if not slug or not _SLUG_PATTERN.match(slug):
        raise ValidationFailed(
            "URL name must be 3-50 characters: letters, numbers, hyphens and underscores"
        )
    return slug


async def pad_exists(session: AsyncSession, slug: str) -> bool:
    """Return True if a pad with this slug exists."""
    result = await session.execute(select(Pad.slug).where(Pad.slug == slug))
    return result.scalar_one_or_none() is not None


async def fetch_pad(session: AsyncSession, slug: str) -> Optional[Pad]:
    """Return pad by slug or None."""
    return await session.get(Pad, slug)


async def get_pad(session: AsyncSession, slug: str) -> Pad:
    """Return pad by slug; raise PadNotFound if absent."""
    pad = await fetch_pad(session, slug)
    if pad is None:
        raise PadNotFound(slug)
    return pad


async def create_pad(
    session: AsyncSession,
    slug: str,
    password: str,
    is_public: bool,
    alert_email: Optional[str] = None,
    retention_minutes: Optional[int] = None,
) -> Pad:
    """
    Create a new pad. Validation happens before any write.
    Public pads ignore the supplied password and store the hash of "" so every
    row has the same shape; that hash is never checked.
    Raises ValidationFailed or Conflict. Caller must commit session.
    """
    validate_slug(slug)
    if not is_public:
        min_len = get_settings().min_password_length
        if not password or len(password) < min_len:
            raise ValidationFailed(f"Password must be at least {min_len} characters")
    if retention_minutes is not None and retention_minutes <= 0:
        raise ValidationFailed("Retention must be a positive number of minutes")
    if await pad_exists(session, slug):
        raise Conflict(f"Pad already exists: {slug}")
    now = utcnow()
    pad = Pad(
        slug=slug,
        password_hash=hash_password("" if is_public else password),
        is_public=is_public,
        content="",
        alert_email=alert_email or None,
        retention_minutes=retention_minutes,
        created_at=now,
        updated_at=now,
    )
    session.add(pad)
    await session.flush()
    log.info("Created pad slug=%s public=%s alerts=%s", slug, is_public, bool(pad.alert_email))
    return pad


async def update_content(session: AsyncSession, slug: str, content: str) -> Pad:
    """Replace pad content (last write wins) and bump updated_at. Caller must commit."""
    pad = await get_pad(session, slug)
    pad.content = content
    pad.updated_at = utcnow()
    await session.flush()
    log.info("Saved pad slug=%s length=%d", slug, len(content))
    return pad
