"""SQLAlchemy model for file attachments."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from securepad.db.session import Base, utcnow


class FileAttachment(Base):
    """Uploaded file metadata. Bytes live in the blob store under blob_key."""

    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    pad_slug: Mapped[str] = mapped_column(
        String(50), ForeignKey("pads.slug", ondelete="CASCADE"), nullable=False, index=True
    )
    blob_key: Mapped[str] = mapped_column(Text, nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    # Always later than uploaded_at; the retention engine purges rows past it
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
