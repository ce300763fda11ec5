"""
fellowship.database.engine — Engine, Sessions & the run_db Bridge
==================================================================

Service functions are plain synchronous SQLAlchemy code; each one opens and
closes its own session.  Async callers (the FastAPI lifespan, the cron route,
the push dispatcher) hand them to a worker thread with :func:`run_db` so the
event loop never waits on the database::

    engine = create_db_engine()                  # DATABASE_URL from .env
    init_db(engine)                              # dev/test schema + badges
    snap = await run_db(get_streak, engine, "user-1")
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from fellowship.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Pool sizing for the API process plus the sweep's concurrent workers
_POOL_OPTIONS = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_timeout": 10,
    "pool_recycle": 3600,
}


def create_db_engine(url: str | None = None) -> Engine:
    """Build the process-wide :class:`Engine`.

    *url* defaults to ``DATABASE_URL``.  SQLite URLs (local experiments)
    skip the connection-pool options, which SQLite's pool rejects.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is unset.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at PostgreSQL."
        )

    options = {} if url.startswith("sqlite") else _POOL_OPTIONS
    engine = create_engine(url, echo=False, **options)
    logger.info("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def init_db(engine: Engine) -> None:
    """Create missing tables, then seed the default badge catalog.

    Alembic owns the production schema; this exists so a fresh dev database
    or a test run works without running migrations first.
    """
    from fellowship.database.seed import seed_badge_catalog

    Base.metadata.create_all(engine)
    seeded = seed_badge_catalog(engine)
    logger.info("Schema ready (%d default badges added)", seeded)


@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Session that commits when the block exits cleanly, else rolls back."""
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous DB function on the default thread pool."""
    return await asyncio.to_thread(func, *args, **kwargs)
