"""Access verification: the single gate in front of every pad read and write."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from securepad.alerts.dispatcher import AlertDetails, AlertDispatcher
from securepad.auth.passwords import verify_password
from securepad.config import Settings, get_settings
from securepad.errors import PadNotFound, Unauthorized
from securepad.pads.models import Pad
from securepad.pads.store import fetch_pad
from securepad.security.brute_force import detect_brute_force
from securepad.security.log import append_event
from securepad.security.models import EventType

log = logging.getLogger(__name__)


class AccessOutcome(str, Enum):
    ALLOWED_PUBLIC = "allowed_public"
    ALLOWED_PRIVATE = "allowed_private"
    NOT_FOUND = "not_found"
    BAD_CREDENTIALS = "bad_credentials"


@dataclass
class AccessDecision:
    """Result of verify_access. pad is set whenever the pad exists."""

    outcome: AccessOutcome
    pad: Optional[Pad] = None

    @property
    def allowed(self) -> bool:
        return self.outcome in (AccessOutcome.ALLOWED_PUBLIC, AccessOutcome.ALLOWED_PRIVATE)

    def require(self) -> Pad:
        """Return the pad if access was granted; raise PadNotFound or Unauthorized otherwise."""
        if self.outcome == AccessOutcome.NOT_FOUND:
            raise PadNotFound()
        if not self.allowed:
            raise Unauthorized(self.pad.slug)
        return self.pad


async def verify_access(
    session: AsyncSession,
    slug: str,
    password: Optional[str],
    ip: Optional[str],
    user_agent: Optional[str],
    *,
    dispatcher: Optional[AlertDispatcher] = None,
    settings: Optional[Settings] = None,
    notify_access: bool = False,
    now: Optional[datetime] = None,
) -> AccessDecision:
    """
    Decide ALLOW/DENY for one request and record the outcome.

    - Missing pad: DENY (not_found), nothing logged.
    - Public pad: ALLOW without looking at the password; logs note_accessed "public".
    - Private pad, password matches: ALLOW; logs note_accessed "private".
    - Private pad, mismatch: DENY; logs login_failed, commits, then runs brute-force detection.

    notify_access alerts the owner of a private pad that someone got in (used
    when a note is opened, not on every autosave).
    """
    settings = settings or get_settings()
    pad = await fetch_pad(session, slug)
    if pad is None:
        log.debug("Access to unknown pad=%s from ip=%s", slug, ip)
        return AccessDecision(AccessOutcome.NOT_FOUND)

    if pad.is_public:
        await append_event(
            session, slug, EventType.NOTE_ACCESSED, ip, user_agent, success=True, details="public", now=now
        )
        await session.commit()
        return AccessDecision(AccessOutcome.ALLOWED_PUBLIC, pad)

    if verify_password(password or "", pad.password_hash):
        await append_event(
            session, slug, EventType.NOTE_ACCESSED, ip, user_agent, success=True, details="private", now=now
        )
        await session.commit()
        if notify_access and dispatcher is not None and pad.alert_email:
            dispatcher.dispatch(
                pad.alert_email,
                slug,
                EventType.NOTE_ACCESSED,
                AlertDetails(ip=ip, user_agent=user_agent),
            )
        return AccessDecision(AccessOutcome.ALLOWED_PRIVATE, pad)

    failure = await append_event(
        session,
        slug,
        EventType.LOGIN_FAILED,
        ip,
        user_agent,
        success=False,
        details="incorrect password",
        now=now,
    )
    # The failure must be durable before detection reads the log, and before
    # the caller raises and the request session rolls back.
    await session.commit()
    log.warning("Incorrect password for pad=%s ip=%s", slug, ip)
    await detect_brute_force(
        session,
        pad,
        failure,
        dispatcher=dispatcher,
        window_minutes=settings.brute_force_window_minutes,
        threshold=settings.brute_force_threshold,
    )
    return AccessDecision(AccessOutcome.BAD_CREDENTIALS, pad)
