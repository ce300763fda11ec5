"""
fellowship.engine.streaks — Consecutive-Day Streak Transition
==============================================================

Pure calculation — no database I/O.  The service layer loads a
:class:`StreakSnapshot`, calls :func:`advance_streak`, and persists the
result in a single upsert.

"Today" always comes from one global reference timezone.  A user whose
local midnight differs from it may see their streak roll over at an odd
hour; per-user timezones are not supported.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

__all__ = [
    "StreakSnapshot",
    "advance_streak",
    "is_streak_at_risk",
    "reference_today",
]


@dataclass(frozen=True, slots=True)
class StreakSnapshot:
    """Typed view of a ``user_streaks`` row."""

    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    total_points: int = 0
    last_active_date: date | None = None

    @classmethod
    def empty(cls, user_id: str) -> StreakSnapshot:
        """Default record for a user who has never logged an event."""
        return cls(user_id=user_id)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "total_points": self.total_points,
            "last_active_date": (
                self.last_active_date.isoformat() if self.last_active_date else None
            ),
        }


def reference_today(tz_name: str = "UTC", now: datetime | None = None) -> date:
    """Current calendar date in the reference timezone *tz_name*."""
    if now is None:
        now = datetime.now(UTC)
    return now.astimezone(ZoneInfo(tz_name)).date()


def advance_streak(snapshot: StreakSnapshot, today: date, points: int) -> StreakSnapshot:
    """Apply one qualifying event on *today* to *snapshot*.

    - Same day: streak unchanged (repeat events don't multiply it).
    - Exactly one day later: streak + 1.
    - Any larger gap, or no prior activity: streak resets to 1.

    Points always accrue, and ``last_active_date`` becomes *today* in every
    branch.
    """
    last = snapshot.last_active_date
    if last == today:
        current = snapshot.current_streak
    elif last is not None and last == today - timedelta(days=1):
        current = snapshot.current_streak + 1
    else:
        current = 1

    return replace(
        snapshot,
        current_streak=current,
        longest_streak=max(snapshot.longest_streak, current),
        total_points=snapshot.total_points + max(points, 0),
        last_active_date=today,
    )


def is_streak_at_risk(snapshot: StreakSnapshot, today: date) -> bool:
    """True when a multi-day streak breaks unless the user acts today."""
    if snapshot.last_active_date is None:
        return False
    return (
        snapshot.last_active_date == today - timedelta(days=1)
        and snapshot.current_streak > 1
    )
