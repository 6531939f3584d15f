"""
Async SQLite engine, session factory, and ORM base.

Rules enforced:
  • One local database file, shared by every gateway process on the host.
  • WAL journal so a writer never blocks concurrent readers; writers are
    serialized by SQLite's own lock (busy timeout below).
  • The declarative Base is shared across all models so the schema can be
    created from a single metadata object.
"""

import os
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

# Seconds a writer waits for another process's write lock before failing.
BUSY_TIMEOUT_SECONDS = 30


# ── ORM Base ────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Shared declarative base for all SQLAlchemy models."""


def expand_db_path(db_path: str | os.PathLike[str]) -> Path:
    """Resolve ``~`` and relative segments into an absolute path."""
    return Path(db_path).expanduser().resolve()


def _configure_sqlite(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ── Engine ──────────────────────────────────────────────────
def create_engine(db_path: str | os.PathLike[str], echo: bool = False) -> AsyncEngine:
    """
    Create an aiosqlite engine for the given file.

    The parent directory is created if missing. Pragmas are applied on
    every new DBAPI connection, not once per engine.
    """
    path = expand_db_path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        echo=echo,
        connect_args={"timeout": BUSY_TIMEOUT_SECONDS},
    )
    event.listen(engine.sync_engine, "connect", _configure_sqlite)
    return engine


# ── Session factory ─────────────────────────────────────────
def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # rows are read after the transaction closes
    )
