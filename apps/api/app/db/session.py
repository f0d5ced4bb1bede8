"""Database engine and session management."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from apps.api.app.core.config import get_settings


def _prepare_sqlite_path(database_url: str) -> dict[str, object]:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return {}
    if url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    # Request handlers run in the threadpool, not the thread that opened the connection.
    return {"check_same_thread": False}


def get_engine(database_url: str | None = None) -> Engine:
    """Create SQLAlchemy engine from explicit settings."""
    url = database_url or get_settings().database_url
    return create_engine(url, pool_pre_ping=True, connect_args=_prepare_sqlite_path(url))


def get_session_factory(database_url: str | None = None) -> sessionmaker[Session]:
    """Return session factory bound to configured engine."""
    return sessionmaker(bind=get_engine(database_url), autoflush=False, autocommit=False)


def get_db_session() -> Generator[Session, None, None]:
    """Yield database session for request-scoped usage."""
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()
