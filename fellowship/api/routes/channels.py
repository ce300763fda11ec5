"""
fellowship.api.routes.channels — Channel engagement scores & read markers
===========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from fellowship.api.deps import get_current_user_id, get_engine
from fellowship.services import engagement_service

router = APIRouter(tags=["channels"])


@router.get("/cells/{cell_id}/channels/scores")
def get_channel_scores(
    cell_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    """Baseline engagement scores for a cell's channel list."""
    return {
        "cell_id": cell_id,
        "channels": engagement_service.build_channel_scores(engine, user_id, cell_id),
    }


@router.post("/channels/{channel_id}/read")
def mark_read(
    channel_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    engagement_service.mark_channel_read(engine, user_id, channel_id)
    return {"ok": True}
