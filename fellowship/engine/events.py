"""
fellowship.engine.events — StreakEventType and the point table
===============================================================

Every point-earning action in the app is tagged with one of these event
types before it reaches the streak engine.  Point values are fixed and
not user-configurable.
"""

from __future__ import annotations

import enum

__all__ = ["POINT_VALUES", "StreakEventType", "points_for"]


class StreakEventType(enum.StrEnum):
    """Actions that count toward a streak and earn points."""
    VERSE_SAVE = "verse_save"
    VERSE_SAVE_WITH_NOTE = "verse_save_with_note"
    POST_CONTENT = "post_content"
    CELL_MESSAGE = "cell_message"
    COURSE_COMPLETE = "course_complete"


POINT_VALUES: dict[StreakEventType, int] = {
    StreakEventType.VERSE_SAVE: 10,
    StreakEventType.VERSE_SAVE_WITH_NOTE: 20,
    StreakEventType.POST_CONTENT: 15,
    StreakEventType.CELL_MESSAGE: 5,
    StreakEventType.COURSE_COMPLETE: 50,
}


def points_for(event_type: str) -> int:
    """Fixed point value for *event_type*; unknown types earn nothing."""
    try:
        return POINT_VALUES[StreakEventType(event_type)]
    except ValueError:
        return 0
