"""
fellowship.api.routes.cron — Scheduler-triggered jobs
=======================================================

Called by an external scheduler with ``Authorization: Bearer $CRON_SECRET``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import Engine

from fellowship.api.deps import get_config, get_dispatcher, get_engine, require_cron_secret
from fellowship.config import FellowshipConfig
from fellowship.engine.streaks import reference_today
from fellowship.services.engagement_service import run_engagement_sweep
from fellowship.services.notification_service import NotificationDispatcher

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])
logger = logging.getLogger(__name__)


@router.post("/engagement")
async def engagement_sweep(
    engine: Engine = Depends(get_engine),
    cfg: FellowshipConfig = Depends(get_config),
    dispatcher: NotificationDispatcher | None = Depends(get_dispatcher),
):
    if dispatcher is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Push dispatcher not running")
    summary = await run_engagement_sweep(
        engine,
        dispatcher,
        today=reference_today(cfg.reference_timezone),
        batch_size=cfg.engagement_batch_size,
    )
    return {"ok": True, **summary}
