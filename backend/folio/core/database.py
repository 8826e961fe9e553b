"""
Database engine and session management.

The engine is created lazily on first use and shared process-wide. Services
take a session factory explicitly so tests and scripts can supply their own.
"""

from typing import Any, AsyncIterator, Optional, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from folio.core.config import settings

Base = declarative_base()

engine: Optional[AsyncEngine] = None
session_factory: Optional[async_sessionmaker[AsyncSession]] = None

# Substrings of driver errors raised when the database has run out of space
STORAGE_QUOTA_MARKERS = (
    "space quota",
    "quota exceeded",
    "disk full",
    "could not extend file",
    "no space left on device",
)


def get_engine() -> AsyncEngine:
    """Get the async engine, creating it on first use."""
    global engine
    if engine is None:
        options: dict[str, Any] = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
        if not settings.DATABASE_URL.startswith("sqlite"):
            options["pool_size"] = settings.DB_POOL_SIZE
            options["max_overflow"] = settings.DB_MAX_OVERFLOW
        engine = create_async_engine(settings.DATABASE_URL, **options)
    return engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the process-wide session factory."""
    global session_factory
    if session_factory is None:
        session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return session_factory


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""
    async with get_session_factory()() as session:
        yield session


async def close_db() -> None:
    """Dispose the engine and drop the cached factory."""
    global engine, session_factory

    if engine is not None:
        await engine.dispose()
        engine = None
    session_factory = None


def upsert(
    session: AsyncSession,
    model: Any,
    rows: Sequence[dict[str, Any]],
    index_elements: Sequence[str],
    update_columns: Optional[Sequence[str]] = None,
):
    """
    Build an INSERT ... ON CONFLICT DO UPDATE for the session's dialect.

    Only ``update_columns`` are overwritten on conflict (default: every
    column present in the first row that is not part of the key). An empty
    column list turns the statement into ON CONFLICT DO NOTHING.
    """
    dialect = session.bind.dialect.name
    insert = sqlite.insert if dialect == "sqlite" else postgresql.insert

    stmt = insert(model).values(list(rows))
    if update_columns is None:
        update_columns = [key for key in rows[0] if key not in index_elements]
    if not update_columns:
        return stmt.on_conflict_do_nothing(index_elements=list(index_elements))
    return stmt.on_conflict_do_update(
        index_elements=list(index_elements),
        set_={column: getattr(stmt.excluded, column) for column in update_columns},
    )


def is_storage_quota_error(exc: BaseException) -> bool:
    """True when a storage error reports that the database is out of space."""
    message = str(getattr(exc, "orig", None) or exc).lower()
    return any(marker in message for marker in STORAGE_QUOTA_MARKERS)
