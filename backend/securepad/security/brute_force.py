"""Brute-force detection over the security log. Advisory only: nothing is ever blocked."""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Text, func, insert, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from securepad.alerts.dispatcher import AlertDetails, AlertDispatcher
from securepad.pads.models import Pad
from securepad.security.models import EventType, SecurityLog

log = logging.getLogger(__name__)


async def detect_brute_force(
    session: AsyncSession,
    pad: Pad,
    failure: SecurityLog,
    *,
    dispatcher: Optional[AlertDispatcher],
    window_minutes: int,
    threshold: int,
) -> Optional[int]:
    """
    Run after a failed login (failure) has been committed to the log.

    failure is a threshold crossing when the same IP had exactly threshold - 1
    earlier failures (lower id) inside the window ending at failure.created_at.
    Later failures of the same burst see more than that and never emit again;
    a new crossing needs the count to have dropped below threshold first.

    The check and the brute_force insert are one INSERT ... SELECT statement,
    so concurrent failures cannot both emit. Returns the attempt count when a
    row was written, else None.
    """
    window_start = failure.created_at - timedelta(minutes=window_minutes)
    earlier = (
        select(func.count(SecurityLog.id))
        .where(
            SecurityLog.pad_slug == pad.slug,
            SecurityLog.event_type == EventType.LOGIN_FAILED.value,
            SecurityLog.success.is_(False),
            SecurityLog.ip_address == failure.ip_address,
            SecurityLog.created_at > window_start,
            SecurityLog.id < failure.id,
        )
        .correlate(None)
        .scalar_subquery()
    )
    stmt = insert(SecurityLog).from_select(
        ["pad_slug", "event_type", "ip_address", "user_agent", "success", "details", "created_at"],
        select(
            literal(pad.slug, String),
            literal(EventType.BRUTE_FORCE.value, String),
            literal(failure.ip_address, String),
            literal(failure.user_agent, Text),
            literal(False, Boolean),
            literal(str(threshold), Text),
            literal(failure.created_at, DateTime),
        ).where(earlier == threshold - 1),
    )
    result = await session.execute(stmt)
    await session.commit()
    if result.rowcount != 1:
        return None
    log.warning(
        "Brute force detected pad=%s ip=%s attempts=%d", pad.slug, failure.ip_address, threshold
    )
    if dispatcher is not None and pad.alert_email:
        dispatcher.dispatch(
            pad.alert_email,
            pad.slug,
            EventType.BRUTE_FORCE,
            AlertDetails(ip=failure.ip_address, user_agent=failure.user_agent, attempt_count=threshold),
        )
    return threshold
