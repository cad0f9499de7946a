"""Security alert emails to pad owners. Delivery failures are logged, never raised."""

import asyncio
import html
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional, Set, Union

import aiosmtplib

from securepad.config import Settings, get_settings
from securepad.db.session import utcnow
from securepad.security.models import EventType

log = logging.getLogger(__name__)

_USER_AGENT_MAX_CHARS = 100


@dataclass
class AlertDetails:
    """What the owner is told about an event. All fields optional."""

    ip: Optional[str] = None
    user_agent: Optional[str] = None
    file_name: Optional[str] = None
    attempt_count: Optional[int] = None


@dataclass(frozen=True)
class _EventText:
    subject: str
    title: str
    message: str


_EVENT_TEXT = {
    EventType.NOTE_ACCESSED.value: _EventText(
        "Your SecureNote was accessed",
        "Note Access Alert",
        "Someone successfully accessed your note.",
    ),
    EventType.LOGIN_FAILED.value: _EventText(
        "Failed login attempt on your SecureNote",
        "Failed Login Attempt",
        "Someone tried to access your note with an incorrect password.",
    ),
    EventType.BRUTE_FORCE.value: _EventText(
        "SECURITY ALERT: Multiple failed login attempts",
        "Brute Force Attack Detected",
        "Multiple failed password attempts detected from the same IP address.",
    ),
    EventType.FILE_UPLOADED.value: _EventText(
        "File uploaded to your SecureNote",
        "File Upload",
        "A file was uploaded to your note.",
    ),
    EventType.FILE_DOWNLOADED.value: _EventText(
        "File downloaded from your SecureNote",
        "File Download",
        "A file was downloaded from your note.",
    ),
    EventType.FILE_DELETED.value: _EventText(
        "File deleted from your SecureNote",
        "File Deletion",
        "A file was deleted from your note.",
    ),
}
_DEFAULT_TEXT = _EventText(
    "SecureNote Activity Alert", "Activity Alert", "Activity detected on your note."
)


def _event_name(event_type: Union[EventType, str]) -> str:
    return event_type.value if isinstance(event_type, EventType) else str(event_type)


class AlertDispatcher:
    """
    Compose and send security alerts by SMTP.
    dispatch() is fire-and-forget relative to the request that triggered it;
    notify() can be awaited directly and reports whether delivery succeeded.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        """True when SMTP host and sender are configured."""
        return bool(self._settings.smtp_host and self._settings.smtp_from)

    def build_message(
        self,
        email: str,
        slug: str,
        event_type: Union[EventType, str],
        details: AlertDetails,
    ) -> EmailMessage:
        """Render the alert as a plain-text email with an HTML alternative."""
        kind = _event_name(event_type)
        text = _EVENT_TEXT.get(kind, _DEFAULT_TEXT)
        link = f"{self._settings.app_url.rstrip('/')}/pad/{slug}"
        lines = [("Time", utcnow().strftime("%Y-%m-%d %H:%M:%S UTC"))]
        if details.ip:
            lines.append(("IP Address", details.ip))
        if details.user_agent:
            ua = details.user_agent
            if len(ua) > _USER_AGENT_MAX_CHARS:
                ua = ua[:_USER_AGENT_MAX_CHARS] + "..."
            lines.append(("Browser", ua))
        if details.file_name:
            lines.append(("File", details.file_name))
        if details.attempt_count:
            lines.append(("Failed Attempts", str(details.attempt_count)))
        if kind == EventType.BRUTE_FORCE.value:
            advice = "Action recommended: if this wasn't you, consider moving your content to a new note with a stronger password."
        else:
            advice = "If this wasn't you, please verify your note's security."

        msg = EmailMessage()
        msg["From"] = self._settings.smtp_from
        msg["To"] = email
        msg["Subject"] = text.subject
        body_lines = "\n".join(f"  {label}: {value}" for label, value in lines)
        msg.set_content(f"""{text.title}

{text.message}

  Note ID: {slug}
{body_lines}

{advice}

View your note: {link}

This is an automated security alert from SecureNote.
You received this because you enabled alerts for note: {slug}
""")
        rows = "".join(
            f"<p><strong>{html.escape(label)}:</strong> {html.escape(value)}</p>"
            for label, value in lines
        )
        msg.add_alternative(
            f"""<!DOCTYPE html>
<html>
<body style="font-family: sans-serif; background-color: #f7fafc;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1>{html.escape(text.title)}</h1>
    <p>{html.escape(text.message)}</p>
    <div style="background: #fff3cd; border-left: 4px solid #ffc107; padding: 15px;">
      <strong>Note ID:</strong> {html.escape(slug)}
    </div>
    <div style="background: #f8f9fa; padding: 15px;">{rows}</div>
    <p>{html.escape(advice)}</p>
    <a href="{html.escape(link, quote=True)}">View Your Note</a>
    <p style="color: #6c757d; font-size: 12px;">
      This is an automated security alert from SecureNote.<br>
      You received this because you enabled alerts for note: {html.escape(slug)}
    </p>
  </div>
</body>
</html>
""",
            subtype="html",
        )
        return msg

    async def notify(
        self,
        email: str,
        slug: str,
        event_type: Union[EventType, str],
        details: Optional[AlertDetails] = None,
    ) -> bool:
        """Send one alert. Returns True if the SMTP server accepted it; False otherwise."""
        if not email:
            return False
        event_type = _event_name(event_type)
        if not self.enabled:
            log.debug("Alert for pad=%s type=%s skipped: SMTP not configured", slug, event_type)
            return False
        settings = self._settings
        try:
            msg = self.build_message(email, slug, event_type, details or AlertDetails())
            await aiosmtplib.send(
                msg,
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_user or None,
                password=settings.smtp_password or None,
                start_tls=settings.smtp_port == 587,
                use_tls=settings.smtp_port == 465,
            )
        except Exception as e:
            log.warning("Failed to send %s alert for pad=%s: %s", event_type, slug, e)
            return False
        log.info("Alert email sent for pad=%s type=%s", slug, event_type)
        return True

    def dispatch(
        self,
        email: Optional[str],
        slug: str,
        event_type: Union[EventType, str],
        details: Optional[AlertDetails] = None,
    ) -> None:
        """Schedule notify() in the background; the caller does not wait for delivery."""
        if not email:
            return
        task = asyncio.get_running_loop().create_task(
            self.notify(email, slug, event_type, details)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for all scheduled alerts to finish (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
