"""
fellowship.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn fellowship.api.main:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from fellowship.api.deps import get_config, get_engine  # noqa: E402
from fellowship.api.routes.channels import router as channels_router  # noqa: E402
from fellowship.api.routes.cron import router as cron_router  # noqa: E402
from fellowship.api.routes.streaks import router as streaks_router  # noqa: E402
from fellowship.config import FellowshipConfig  # noqa: E402
from fellowship.database.engine import init_db, run_db  # noqa: E402
from fellowship.services.notification_service import (  # noqa: E402
    NotificationDispatcher,
    PushTransport,
    RelayPushTransport,
    WebPushTransport,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_push_transport(cfg: FellowshipConfig) -> PushTransport | None:
    """Direct Web Push when VAPID_PRIVATE_KEY and VAPID_EMAIL are set, else the relay."""
    vapid_key = os.getenv("VAPID_PRIVATE_KEY", "").strip()
    vapid_email = os.getenv("VAPID_EMAIL", "").strip()
    if vapid_key and vapid_email:
        return WebPushTransport(vapid_key, vapid_email, timeout=cfg.push_timeout_seconds)
    if cfg.push_relay_url:
        return RelayPushTransport(cfg.push_relay_url, timeout=cfg.push_timeout_seconds)
    logger.warning("No VAPID keys or push_relay_url configured — push notifications disabled")
    return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — schema + badge catalog, then push delivery."""
    cfg = get_config()
    engine = get_engine()
    await run_db(init_db, engine)

    transport = build_push_transport(cfg)
    dispatcher = NotificationDispatcher(engine, transport)
    dispatcher.start(asyncio.get_running_loop())
    app.state.dispatcher = dispatcher
    logger.info("%s API started — engine ready (%s)", cfg.app_name, engine.url.database)
    yield
    dispatcher.stop()
    app.state.dispatcher = None
    if transport is not None:
        await transport.aclose()
    logger.info("%s API shutting down", cfg.app_name)


app = FastAPI(
    title="Fellowship Engagement API",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(streaks_router, prefix="/api")
app.include_router(channels_router, prefix="/api")
app.include_router(cron_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
