"""Pytest configuration: set test env before any app imports so DB and blob store use test paths."""

import os
import tempfile

import pytest
import pytest_asyncio

# Set before securepad.db.session or securepad.config are used so engine and settings use test paths
_tmp = tempfile.mkdtemp(prefix="securepad_test_")
os.environ.setdefault("SECUREPAD_DB_PATH", os.path.join(_tmp, "test.db"))
os.environ.setdefault("SECUREPAD_STORAGE_BASE_PATH", os.path.join(_tmp, "blobs"))
# API tests drive retention ticks directly instead of waiting on the timer
os.environ.setdefault("SECUREPAD_RETENTION_ENABLED", "false")
os.environ.setdefault("SECUREPAD_SMTP_HOST", "")

from securepad.auth.passwords import pwd_context  # noqa: E402

# Cheap bcrypt rounds for tests; hashes stay real bcrypt
pwd_context.update(bcrypt__default_rounds=4)


class RecordingDispatcher:
    """Stands in for AlertDispatcher: records dispatch() calls instead of sending mail."""

    def __init__(self) -> None:
        self.calls = []

    def dispatch(self, email, slug, event_type, details=None) -> None:
        if not email:
            return
        kind = getattr(event_type, "value", event_type)
        self.calls.append((email, slug, kind, details))

    async def drain(self) -> None:
        return None

    def of_type(self, event_type: str) -> list:
        return [c for c in self.calls if c[2] == event_type]


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def session_factory():
    """Create tables and empty them; yield get_session for async with session_factory() as session."""
    from sqlalchemy import delete

    from securepad.db.session import get_session, init_db
    from securepad.files.models import FileAttachment
    from securepad.pads.models import Pad
    from securepad.security.models import SecurityLog

    await init_db()
    async with get_session() as session:
        await session.execute(delete(SecurityLog))
        await session.execute(delete(FileAttachment))
        await session.execute(delete(Pad))
    return get_session
