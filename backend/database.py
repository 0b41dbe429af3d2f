"""
Database engine and session management for the Bugsymart backend.

Uses SQLAlchemy async engine with aiosqlite for non-blocking DB operations
inside FastAPI. Tables are auto-created on server startup via init_db().

Two writers share the database: request handlers and the background
dispatcher (outbox drain + event sweep). On SQLite each connection waits
up to SQLITE_BUSY_TIMEOUT_SECONDS for the write lock instead of failing
immediately with "database is locked".
"""
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS = 15


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


# ── Engine ──────────────────────────────────────────────────────────

def _async_url(raw_url: str) -> str:
    """sqlite:///... -> sqlite+aiosqlite:///... for the async driver."""
    if raw_url.startswith("sqlite:///"):
        return raw_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return raw_url


_url = _async_url(settings.database_url)
_is_sqlite = _url.startswith("sqlite")

engine = create_async_engine(
    _url,
    echo=False,
    connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS} if _is_sqlite else {},
)

if _is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_connection, connection_record):
        # order_items.order_id is only enforced with foreign_keys on
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

# Rows stay readable after commit; routes serialise them post-commit.
async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# ── Helpers ─────────────────────────────────────────────────────────

async def init_db() -> None:
    """Create all tables. Called once on server startup."""
    # Import models so Base.metadata knows about them
    import db_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Database tables ready ({engine.url.get_backend_name()})")


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields an async session per request."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
