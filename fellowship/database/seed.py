"""
fellowship.database.seed — Default Badge Catalog Seeder
========================================================

Baseline badges inserted on first startup so profiles have something to
unlock.  Idempotent — only inserts badges whose name doesn't exist yet.
Badges edited later by hand are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from fellowship.database.models import Badge
from fellowship.engine.badges import CriteriaType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default catalog: name → (description, icon_code, criteria_type, criteria_value)
# ---------------------------------------------------------------------------
DEFAULT_BADGES: dict[str, tuple[str, str, CriteriaType, int]] = {
    "First Step": (
        "Took your first step in the community", "footprints",
        CriteriaType.FIRST_ACTION, 1,
    ),
    "Word Keeper": ("Saved your first verse", "bookmark", CriteriaType.VERSE_SAVE, 1),
    "Treasure Hunter": ("Saved 25 verses", "gem", CriteriaType.VERSE_SAVE, 25),
    "Storyteller": ("Shared 5 perspectives", "feather", CriteriaType.POST_COUNT, 5),
    "In Fellowship": ("Joined your first cell", "users", CriteriaType.CELL_JOIN, 1),
    "Disciple": ("Completed your first course", "graduation-cap", CriteriaType.COURSE_COMPLETE, 1),
    "Faithful Week": ("Kept a 7-day streak", "flame", CriteriaType.STREAK_DAYS, 7),
    "Steadfast": ("Kept a 30-day streak", "mountain", CriteriaType.STREAK_DAYS, 30),
    "Friend of Many": ("Made 10 friends", "heart-handshake", CriteriaType.FRIEND_COUNT, 10),
    "Century": ("Earned 100 points", "star", CriteriaType.TOTAL_POINTS, 100),
    "Thousandfold": ("Earned 1,000 points", "sparkles", CriteriaType.TOTAL_POINTS, 1000),
}


def seed_badge_catalog(engine: Engine) -> int:
    """Insert any missing default badges.  Returns the number inserted."""
    with Session(engine) as session:
        existing = set(session.scalars(select(Badge.name)).all())
        inserted = 0
        for name, (description, icon, criteria, value) in DEFAULT_BADGES.items():
            if name in existing:
                continue
            session.add(Badge(
                name=name,
                description=description,
                icon_code=icon,
                criteria_type=criteria.value,
                criteria_value=value,
            ))
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d default badges", inserted)
    return inserted
