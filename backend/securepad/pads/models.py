"""Pad SQLAlchemy model and Pydantic schemas."""

from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from securepad.db.session import Base, as_utc, utcnow

# Stored timestamps are naive UTC; responses carry the +00:00 offset
UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]


class Pad(Base):
    """Pad table: slug is primary key and URL name."""

    __tablename__ = "pads"

    slug: Mapped[str] = mapped_column(String(50), primary_key=True)
    # bcrypt hash; for public pads the hash of "" (never checked)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    content: Mapped[str] = mapped_column(Text, default="", nullable=False)
    alert_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Per-pad retention window for files and content. None = server defaults.
    retention_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class _CamelModel(BaseModel):
    """Accepts and emits camelCase (urlName, isPublic) as the browser client does."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PadCreate(_CamelModel):
    """Payload for creating a pad."""

    url_name: str
    password: str = ""
    is_public: bool = False
    alert_email: Optional[EmailStr] = None
    retention_minutes: Optional[int] = Field(default=None, gt=0)


class PadPassword(_CamelModel):
    """Body carrying only the pad password (may be empty for public pads)."""

    password: str = ""


class PadLogin(PadPassword):
    """Login form body: which pad to open and its password."""

    url_name: str


class PadSave(PadPassword):
    """Body for saving content."""

    content: str = ""


class FileRef(PadPassword):
    """Body for deleting a file: pad slug plus password."""

    pad_id: str


class SummarizeRequest(PadPassword):
    """Body for summarizing the current editor text."""

    pad_id: str
    content: str = ""


class AttachmentResponse(_CamelModel):
    """File attachment as returned by the API (no blob key)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = Field(validation_alias="original_name")
    size: int
    mime_type: Optional[str] = None
    uploaded_at: UtcDateTime
    expires_at: UtcDateTime


class PadContentResponse(_CamelModel):
    """Pad content and live files."""

    content: str
    is_public: bool
    updated_at: UtcDateTime
    files: List[AttachmentResponse] = []


class SecurityEventResponse(_CamelModel):
    """Security log row as shown to the pad owner."""

    model_config = ConfigDict(from_attributes=True)

    event_type: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    success: bool
    details: Optional[str] = None
    created_at: UtcDateTime
