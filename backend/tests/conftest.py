from __future__ import annotations

import os
from collections.abc import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("AUDIT_COACH_DATABASE_URL", "sqlite://")

from audit_coach.db import models  # noqa: E402,F401
from audit_coach.db.base import Base  # noqa: E402
from audit_coach.telemetry import clear_listeners  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_telemetry() -> Iterator[None]:
    yield
    clear_listeners()


@pytest.fixture
def db_session() -> Iterator[Session]:
    """Session on a private in-memory database, independent of app settings."""
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False, future=True)
    session = factory()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
