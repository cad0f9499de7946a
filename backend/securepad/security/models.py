"""Security log SQLAlchemy model and event types."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from securepad.db.session import Base, utcnow


class EventType(str, Enum):
    """Kinds of security event recorded per pad."""

    NOTE_ACCESSED = "note_accessed"
    LOGIN_FAILED = "login_failed"
    BRUTE_FORCE = "brute_force"
    FILE_UPLOADED = "file_uploaded"
    FILE_DOWNLOADED = "file_downloaded"
    FILE_DELETED = "file_deleted"


class SecurityLog(Base):
    """Append-only record of access-relevant events. Rows go only with their pad."""

    __tablename__ = "security_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pad_slug: Mapped[str] = mapped_column(
        String(50), ForeignKey("pads.slug", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )
