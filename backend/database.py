"""
Database engine and session management for the order store.

SQLAlchemy async engine; aiosqlite is the default driver, any async URL
(e.g. postgresql+asyncpg) works unchanged. Tables are created on startup via
init_db().

Sessions never commit on their own: services flush, routes commit once per
request, and get_db() rolls back whatever was left uncommitted. Connectivity
errors are not caught here so the surrounding service can restart/back off.
"""
import logging

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def to_async_url(raw_url: str) -> str:
    """sqlite:///... → sqlite+aiosqlite:///... ; other URLs pass through."""
    if raw_url.startswith("sqlite:///"):
        return raw_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return raw_url


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """SQLite ships with FK enforcement off; turn it on per connection."""
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ── Engine ──────────────────────────────────────────────────────────

engine = create_async_engine(
    to_async_url(settings.database_url),
    echo=False,
    future=True,
)
enable_sqlite_foreign_keys(engine)

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

    logger.info("Order store tables created (or already exist)")


async def ping_db(session: AsyncSession) -> None:
    """Round-trip to the store; raises on connectivity loss."""
    await session.execute(text("SELECT 1"))


async def get_db() -> AsyncSession:
    """FastAPI dependency: yields an async session, rolled back if left dirty."""
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
