"""
fellowship.api.routes.streaks — Streaks, points & badges
==========================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from fellowship.api.deps import get_config, get_current_user_id, get_dispatcher, get_engine
from fellowship.config import FellowshipConfig
from fellowship.engine.events import StreakEventType
from fellowship.services import streak_service
from fellowship.services.notification_service import NotificationDispatcher

router = APIRouter(tags=["streaks"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class StreakEventIn(BaseModel):
    event_type: StreakEventType


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------
@router.get("/streaks/me")
def get_my_streak(
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    return streak_service.get_streak(engine, user_id).to_dict()


@router.post("/streaks/events")
def log_streak_event(
    body: StreakEventIn,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
    cfg: FellowshipConfig = Depends(get_config),
    dispatcher: NotificationDispatcher | None = Depends(get_dispatcher),
):
    """Record a point-earning action.

    Persistence failures come back as ``{"error": ...}`` with a 200 so the
    client can show a toast without breaking the surrounding flow.
    """
    result = streak_service.log_event(
        engine,
        user_id,
        body.event_type,
        tz_name=cfg.reference_timezone,
        notifier=dispatcher,
    )
    if not result.ok:
        return {"points": 0, "streak": None, "error": result.error}
    return {
        "points": result.points,
        "streak": result.streak.to_dict(),
        "badges_awarded": result.badges_awarded,
    }


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------
@router.get("/badges")
def list_badges(engine: Engine = Depends(get_engine)):
    """Full badge catalog (public)."""
    return [b.to_dict() for b in streak_service.get_all_badges(engine)]


@router.get("/badges/me")
def list_my_badges(
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    return streak_service.get_user_badges(engine, user_id)
