from __future__ import annotations
from datetime import datetime, timezone
from typing import AsyncGenerator
from sqlalchemy import event, pool
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from stac.config import settings

class Base(DeclarativeBase):
    pass

_is_sqlite = settings.database_url.startswith("sqlite")

# SQLite connections are cheap and must not outlive the event loop that opened them;
# writers queue on the database lock for up to `timeout` seconds
engine = create_async_engine(
    settings.database_url,
    future=True,
    echo=False,
    **({"poolclass": pool.NullPool, "connect_args": {"timeout": 30}} if _is_sqlite else {}),
)

if _is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session

async def create_all() -> None:
    """Create every table known to the metadata. Used for SQLite dev setups and tests."""
    import stac.models.user  # noqa: F401
    import stac.models.room  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def drop_all() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

def utcnow() -> datetime:
    return datetime.now(timezone.utc)
