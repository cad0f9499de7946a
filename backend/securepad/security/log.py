"""Security log storage: append events and query recent failures."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from securepad.db.session import utcnow
from securepad.security.models import EventType, SecurityLog

log = logging.getLogger(__name__)


async def append_event(
    session: AsyncSession,
    slug: str,
    event_type: Union[EventType, str],
    ip: Optional[str],
    user_agent: Optional[str],
    success: bool,
    details: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SecurityLog:
    """Append one security event. Flushes so later queries in the session see it; caller commits."""
    entry = SecurityLog(
        pad_slug=slug,
        event_type=EventType(event_type).value,
        ip_address=ip,
        user_agent=user_agent,
        success=success,
        details=details,
        created_at=now or utcnow(),
    )
    session.add(entry)
    await session.flush()
    log.debug("security event pad=%s type=%s ip=%s success=%s", slug, entry.event_type, ip, success)
    return entry


async def count_recent_failures(
    session: AsyncSession,
    slug: str,
    window_minutes: int,
    now: Optional[datetime] = None,
) -> List[Tuple[str, int]]:
    """
    Return [(ip, count)] of failed logins for the pad with created_at strictly
    after now - window. An attempt exactly window minutes old is not counted.
    """
    cutoff = (now or utcnow()) - timedelta(minutes=window_minutes)
    result = await session.execute(
        select(SecurityLog.ip_address, func.count(SecurityLog.id))
        .where(
            SecurityLog.pad_slug == slug,
            SecurityLog.event_type == EventType.LOGIN_FAILED.value,
            SecurityLog.success.is_(False),
            SecurityLog.created_at > cutoff,
        )
        .group_by(SecurityLog.ip_address)
    )
    return [(row[0], row[1]) for row in result.all()]


async def recent_events(session: AsyncSession, slug: str, limit: int = 50) -> List[SecurityLog]:
    """Return the newest events for a pad, newest first."""
    result = await session.execute(
        select(SecurityLog)
        .where(SecurityLog.pad_slug == slug)
        .order_by(SecurityLog.created_at.desc(), SecurityLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
