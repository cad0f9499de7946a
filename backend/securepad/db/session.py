"""SQLite session and engine."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from securepad.config import get_settings

Base = declarative_base()

_settings = get_settings()
# SQLAlchemy async needs sqlite+aiosqlite and path as URL.
# NullPool: each session opens its own connection on the running loop, so the
# request loop, the retention task and test loops never share a connection.
_db_url = f"sqlite+aiosqlite:///{_settings.db_path}"
_engine = create_async_engine(_db_url, echo=False, poolclass=NullPool)
_async_session = async_sessionmaker(
    _engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


@event.listens_for(_engine.sync_engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def utcnow() -> datetime:
    """Current time as naive UTC; all stored timestamps use this convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a stored (naive UTC) timestamp so it serializes with an offset."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _add_column_if_missing(conn, table: str, column: str, ddl: str) -> None:
    """Add a column if it does not exist yet (migration for older databases)."""
    cursor = conn.execute(text(f"PRAGMA table_info({table})"))
    rows = cursor.fetchall()
    # SQLite returns (cid, name, type, notnull, dflt_value, pk)
    if any(row[1] == column for row in rows):
        return
    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))


def _run_migrations(conn) -> None:
    _add_column_if_missing(conn, "pads", "alert_email", "VARCHAR(255)")
    _add_column_if_missing(conn, "pads", "retention_minutes", "INTEGER")


async def init_db() -> None:
    """Create tables if they do not exist, then run migrations."""
    # Register models with Base before create_all
    from securepad.files import models as _files_models  # noqa: F401
    from securepad.pads import models as _pads_models  # noqa: F401
    from securepad.security import models as _security_models  # noqa: F401

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(_run_migrations)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session (context manager)."""
    async with _async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async session."""
    async with get_session() as session:
        yield session
