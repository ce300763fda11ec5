"""
fellowship.engine.badges — Badge Threshold Evaluation
======================================================

Pure calculation — no database I/O.  The badge service fetches the catalog,
the user's earned badge IDs and one count per criteria type, then asks this
module which badges newly qualify.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

__all__ = [
    "BadgeDefinition",
    "CriteriaType",
    "criteria_types_needed",
    "qualifying_badges",
    "unearned_badges",
]


class CriteriaType(enum.StrEnum):
    """Countable metric a badge threshold is compared against."""
    VERSE_SAVE = "verse_save"
    POST_COUNT = "post_count"
    CELL_JOIN = "cell_join"
    COURSE_COMPLETE = "course_complete"
    STREAK_DAYS = "streak_days"
    FRIEND_COUNT = "friend_count"
    FIRST_ACTION = "first_action"
    TOTAL_POINTS = "total_points"


@dataclass(frozen=True, slots=True)
class BadgeDefinition:
    """Typed view of a ``badges`` catalog row."""

    id: int
    name: str
    criteria_type: str
    criteria_value: int
    description: str = ""
    icon_code: str | None = None

    @classmethod
    def from_row(cls, row) -> BadgeDefinition:
        return cls(
            id=row.id,
            name=row.name,
            criteria_type=row.criteria_type,
            criteria_value=int(row.criteria_value),
            description=row.description or "",
            icon_code=row.icon_code,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon_code": self.icon_code,
            "criteria_type": self.criteria_type,
            "criteria_value": self.criteria_value,
        }


def unearned_badges(
    catalog: Iterable[BadgeDefinition], earned_ids: set[int]
) -> list[BadgeDefinition]:
    return [b for b in catalog if b.id not in earned_ids]


def criteria_types_needed(badges: Iterable[BadgeDefinition]) -> list[str]:
    """Distinct criteria types, in first-seen order."""
    return list(dict.fromkeys(b.criteria_type for b in badges))


def qualifying_badges(
    badges: Iterable[BadgeDefinition], counts: Mapping[str, int]
) -> list[BadgeDefinition]:
    """Badges whose metric count has reached the threshold (``>=``).

    A criteria type missing from *counts* counts as 0.
    """
    qualified: list[BadgeDefinition] = []
    for badge in badges:
        count = counts.get(badge.criteria_type, 0)
        if count >= badge.criteria_value:
            qualified.append(badge)
            logger.debug(
                "Badge qualifies: %s (%s %d >= %d)",
                badge.name, badge.criteria_type, count, badge.criteria_value,
            )
    return qualified
