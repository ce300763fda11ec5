"""
fellowship.services.streak_service — Streak & Points Accrual
=============================================================

Shared service callable from request handlers (saving a verse, sending a
cell message, completing a course...).  ``log_event`` appends the audit
row, advances the user's streak and points, and then checks the
streak- and points-based badges.

Concurrent ``log_event`` calls for the same user are last-write-wins on the
streak row: there is no version check, so a true same-instant double
submission can lose one update.  The audit log still records both events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fellowship.database.models import Badge, StreakEvent, UserBadge, UserStreak
from fellowship.engine.badges import BadgeDefinition, CriteriaType
from fellowship.engine.events import points_for
from fellowship.engine.streaks import StreakSnapshot, advance_streak, reference_today
from fellowship.services.badge_service import award_badge_if_earned, load_catalog

if TYPE_CHECKING:
    from fellowship.services.notification_service import Notifier

logger = logging.getLogger(__name__)

UNAUTHENTICATED = "Unauthenticated"
TRY_AGAIN = "Something went wrong, please try again"


@dataclass
class LogEventResult:
    """Outcome of :func:`log_event`.  ``error`` is set instead of raising."""

    points: int
    streak: StreakSnapshot
    error: str | None = None
    badges_awarded: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


def _snapshot(row: UserStreak | None, user_id: str) -> StreakSnapshot:
    if row is None:
        return StreakSnapshot.empty(user_id)
    return StreakSnapshot(
        user_id=row.user_id,
        current_streak=row.current_streak or 0,
        longest_streak=row.longest_streak or 0,
        total_points=row.total_points or 0,
        last_active_date=row.last_active_date,
    )


def _upsert_streak(
    session: Session, row: UserStreak | None, new: StreakSnapshot, points: int
) -> StreakSnapshot:
    """Write *new* as the user's streak row and return what was stored.

    If another first event created the row between our read and our insert,
    the event is re-applied on top of that row instead of replacing it.
    """
    if row is None:
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(UserStreak(
                    user_id=new.user_id,
                    current_streak=new.current_streak,
                    longest_streak=new.longest_streak,
                    total_points=new.total_points,
                    last_active_date=new.last_active_date,
                ))
                session.flush()
            return new
        except IntegrityError:
            row = session.get(UserStreak, new.user_id, populate_existing=True)
            if row is None:
                raise
            new = advance_streak(_snapshot(row, new.user_id), new.last_active_date, points)

    row.current_streak = new.current_streak
    row.longest_streak = new.longest_streak
    row.total_points = new.total_points
    row.last_active_date = new.last_active_date
    return new


def log_event(
    engine: Engine,
    user_id: str | None,
    event_type: str,
    *,
    today: date | None = None,
    tz_name: str = "UTC",
    notifier: Notifier | None = None,
) -> LogEventResult:
    """Record one point-earning action for *user_id*.

    Steps run strictly in order: audit insert → read streak → compute →
    single upsert → commit → badge checks.  The audit row and the streak
    upsert commit together, so a failure leaves neither behind.

    Badge checks run after the commit and can never fail this call.
    """
    if not user_id:
        return LogEventResult(points=0, streak=StreakSnapshot.empty(""), error=UNAUTHENTICATED)

    points = points_for(event_type)
    if today is None:
        today = reference_today(tz_name)

    try:
        with Session(engine) as session:
            session.add(StreakEvent(user_id=user_id, event_type=str(event_type), points=points))

            row = session.get(UserStreak, user_id)
            updated = advance_streak(_snapshot(row, user_id), today, points)

            updated = _upsert_streak(session, row, updated, points)
            session.commit()
    except SQLAlchemyError:
        logger.exception("log_event failed for user %s (%s)", user_id, event_type)
        return LogEventResult(points=0, streak=StreakSnapshot.empty(user_id), error=TRY_AGAIN)

    logger.debug(
        "Streak event %s for %s: +%d pts, streak=%d",
        event_type, user_id, points, updated.current_streak,
    )

    awarded: list[int] = []
    for criteria, count in (
        (CriteriaType.STREAK_DAYS, updated.current_streak),
        (CriteriaType.TOTAL_POINTS, updated.total_points),
    ):
        try:
            awarded += award_badge_if_earned(engine, user_id, criteria, count, notifier)
        except SQLAlchemyError:
            logger.exception("Badge check %s failed for user %s", criteria, user_id)

    return LogEventResult(points=points, streak=updated, badges_awarded=awarded)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_streak(engine: Engine, user_id: str) -> StreakSnapshot:
    """The user's streak record, or the all-zero default if none exists."""
    with Session(engine) as session:
        return _snapshot(session.get(UserStreak, user_id), user_id)


def get_user_badges(engine: Engine, user_id: str) -> list[dict]:
    """Badges awarded to *user_id*, newest first."""
    with Session(engine) as session:
        rows = session.execute(
            select(UserBadge, Badge)
            .join(Badge, Badge.id == UserBadge.badge_id)
            .where(UserBadge.user_id == user_id)
            .order_by(UserBadge.awarded_at.desc(), UserBadge.badge_id.desc())
        ).all()
        return [
            {
                "user_id": ub.user_id,
                "badge_id": ub.badge_id,
                "awarded_at": ub.awarded_at.isoformat() if ub.awarded_at else None,
                "badge": BadgeDefinition.from_row(badge).to_dict(),
            }
            for ub, badge in rows
        ]


def get_all_badges(engine: Engine) -> list[BadgeDefinition]:
    """Full badge catalog, lowest threshold first."""
    with Session(engine) as session:
        return load_catalog(session)
