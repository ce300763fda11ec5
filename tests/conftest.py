"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import os

# ---------------------------------------------------------------------------
# Secrets must exist before fellowship.api.deps is imported, because it
# validates JWT_SECRET at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)
os.environ.setdefault("CRON_SECRET", "test-cron-secret")

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from fellowship.database.models import Badge, Base  # noqa: E402


def run_async(coro):
    """Run an async coroutine in a fresh event loop (no pytest-asyncio)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class RecordingNotifier:
    """Stand-in for NotificationDispatcher that records every notify()."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str, str]] = []

    def notify(self, user_id: str, title: str, body: str, link_path: str = "/") -> None:
        self.sent.append((user_id, title, body, link_path))

    def titles_for(self, user_id: str) -> list[str]:
        return [title for uid, title, _, _ in self.sent if uid == user_id]


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every Fellowship table.

    StaticPool lets worker threads (``run_db`` → ``asyncio.to_thread``)
    share the same in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


def add_badge(
    engine: Engine,
    name: str,
    criteria_type: str,
    criteria_value: int,
    description: str = "",
) -> int:
    """Insert a catalog badge and return its ID."""
    with Session(engine) as session:
        badge = Badge(
            name=name,
            description=description or f"{name} badge",
            criteria_type=criteria_type,
            criteria_value=criteria_value,
        )
        session.add(badge)
        session.commit()
        return badge.id


def make_user_token(sub: str = "user-1") -> str:
    """Create a user JWT signed with the test secret."""
    import jwt

    from fellowship.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub}, JWT_SECRET, algorithm=JWT_ALGORITHM)


@pytest.fixture
def client(db_engine: Engine):
    """FastAPI TestClient wired to the in-memory engine.

    The lifespan is not run, so no push dispatcher is attached.
    """
    from fastapi.testclient import TestClient

    from fellowship.api import main

    main.app.dependency_overrides[main.get_engine] = lambda: db_engine
    try:
        yield TestClient(main.app, raise_server_exceptions=False)
    finally:
        main.app.dependency_overrides.clear()
