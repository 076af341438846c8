"""Lazily-built database engine for cases, progress and curriculum recipes.

The schema is small and append-only, so tables are created on first use
instead of through migrations.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings
from . import models  # noqa: F401  (registers tables on Base.metadata)
from .base import Base

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Database:
    engine: Engine
    sessions: sessionmaker[Session]


_database: Optional[_Database] = None


def _engine_options(database_url: str, settings: Settings) -> Dict[str, Any]:
    url = make_url(database_url)
    options: Dict[str, Any] = {"echo": settings.database_echo, "pool_pre_ping": True}
    if url.get_backend_name() != "sqlite":
        options.update(pool_size=settings.database_pool_size, max_overflow=settings.database_max_overflow)
        return options

    options["connect_args"] = {"check_same_thread": False}
    if url.database in (None, "", ":memory:"):
        # Every checkout must see the same in-memory database.
        options["poolclass"] = StaticPool
    return options


def _open_database(settings: Settings) -> _Database:
    if not settings.database_url:
        raise RuntimeError("AUDIT_COACH_DATABASE_URL must be configured before using the database.")

    engine = create_engine(settings.database_url, **_engine_options(settings.database_url, settings))
    Base.metadata.create_all(engine)
    logger.info("Database ready (%s backend)", engine.dialect.name)
    return _Database(
        engine=engine,
        sessions=sessionmaker(bind=engine, autoflush=False, expire_on_commit=False),
    )


def _current() -> _Database:
    global _database
    if _database is None:
        _database = _open_database(get_settings())
    return _database


def get_engine() -> Engine:
    return _current().engine


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on error."""
    with _current().sessions.begin() as session:
        yield session


def get_session_dependency() -> Generator[Session, None, None]:
    with session_scope() as session:
        yield session


def dispose_engine() -> None:
    global _database
    if _database is not None:
        _database.engine.dispose()
    _database = None


__all__ = [
    "dispose_engine",
    "get_engine",
    "get_session_dependency",
    "session_scope",
]
