"""
fellowship.services.badge_service — Badge Metrics & Idempotent Awards
======================================================================

Shared service callable from request handlers and the scheduled sweep.
Counts the metric behind each badge criteria type, asks
:mod:`fellowship.engine.badges` which badges newly qualify, and awards them.

Awards may race: a user's own action and the scheduled sweep can evaluate
the same user at nearly the same moment.  Each award is inserted inside a
SAVEPOINT and an ``IntegrityError`` on (user_id, badge_id) is treated as
"already awarded", never as a failure.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from sqlalchemy import Engine, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fellowship.database.engine import run_db
from fellowship.database.models import (
    Badge,
    CellMember,
    CourseProgress,
    Friendship,
    FriendshipStatus,
    NotificationType,
    Post,
    SavedVerse,
    StreakEvent,
    UserBadge,
    UserStreak,
    Video,
)
from fellowship.engine.badges import (
    BadgeDefinition,
    CriteriaType,
    criteria_types_needed,
    qualifying_badges,
    unearned_badges,
)
from fellowship.services.notification_service import create_notification

if TYPE_CHECKING:
    from fellowship.services.notification_service import Notifier

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Metric counters: one per criteria type
# ---------------------------------------------------------------------------
def _count(session: Session, stmt) -> int:
    return int(session.scalar(stmt) or 0)


def _count_saved_verses(session: Session, user_id: str) -> int:
    return _count(session, select(func.count()).select_from(SavedVerse).where(
        SavedVerse.user_id == user_id
    ))


def _count_posts_and_videos(session: Session, user_id: str) -> int:
    posts = _count(session, select(func.count()).select_from(Post).where(Post.user_id == user_id))
    videos = _count(session, select(func.count()).select_from(Video).where(Video.user_id == user_id))
    return posts + videos


def _count_cell_memberships(session: Session, user_id: str) -> int:
    return _count(session, select(func.count()).select_from(CellMember).where(
        CellMember.user_id == user_id
    ))


def _count_completed_courses(session: Session, user_id: str) -> int:
    return _count(session, select(func.count()).select_from(CourseProgress).where(
        CourseProgress.user_id == user_id,
        CourseProgress.completed.is_(True),
    ))


def _current_streak(session: Session, user_id: str) -> int:
    row = session.get(UserStreak, user_id)
    return row.current_streak if row else 0


def _count_accepted_friends(session: Session, user_id: str) -> int:
    return _count(session, select(func.count()).select_from(Friendship).where(
        Friendship.status == FriendshipStatus.ACCEPTED.value,
        or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
    ))


def _has_any_event(session: Session, user_id: str) -> int:
    first = session.scalar(
        select(StreakEvent.id).where(StreakEvent.user_id == user_id).limit(1)
    )
    return 1 if first is not None else 0


def _total_points(session: Session, user_id: str) -> int:
    row = session.get(UserStreak, user_id)
    return row.total_points if row else 0


CRITERIA_COUNTERS: dict[str, Callable[[Session, str], int]] = {
    CriteriaType.VERSE_SAVE: _count_saved_verses,
    CriteriaType.POST_COUNT: _count_posts_and_videos,
    CriteriaType.CELL_JOIN: _count_cell_memberships,
    CriteriaType.COURSE_COMPLETE: _count_completed_courses,
    CriteriaType.STREAK_DAYS: _current_streak,
    CriteriaType.FRIEND_COUNT: _count_accepted_friends,
    CriteriaType.FIRST_ACTION: _has_any_event,
    CriteriaType.TOTAL_POINTS: _total_points,
}


def get_criteria_counts(
    session: Session, user_id: str, criteria_types: Iterable[str]
) -> dict[str, int]:
    """Current metric value for each requested criteria type.

    Unknown criteria types are skipped (their badges can never qualify).
    """
    counts: dict[str, int] = {}
    for criteria in criteria_types:
        counter = CRITERIA_COUNTERS.get(criteria)
        if counter is None:
            logger.warning("No metric counter for badge criteria %r", criteria)
            continue
        counts[criteria] = counter(session, user_id)
    return counts


# ---------------------------------------------------------------------------
# Catalog reads
# ---------------------------------------------------------------------------
def load_catalog(session: Session, criteria_type: str | None = None) -> list[BadgeDefinition]:
    stmt = select(Badge).order_by(Badge.criteria_value, Badge.id)
    if criteria_type is not None:
        stmt = stmt.where(Badge.criteria_type == criteria_type)
    return [BadgeDefinition.from_row(row) for row in session.scalars(stmt).all()]


def get_earned_badge_ids(session: Session, user_id: str) -> set[int]:
    rows = session.scalars(
        select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    ).all()
    return set(rows)


# ---------------------------------------------------------------------------
# Awarding
# ---------------------------------------------------------------------------
def _award(session: Session, user_id: str, badges: list[BadgeDefinition]) -> list[BadgeDefinition]:
    """Insert one UserBadge per badge, skipping pairs that already exist.

    Returns only the badges this call actually awarded.
    """
    awarded: list[BadgeDefinition] = []
    for badge in badges:
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(UserBadge(user_id=user_id, badge_id=badge.id))
                session.flush()
        except IntegrityError:
            # Another evaluation awarded it first; that's success.
            logger.debug("Badge %d already awarded to %s", badge.id, user_id)
            continue

        create_notification(
            session,
            user_id,
            NotificationType.BADGE_EARNED.value,
            {"badge_id": badge.id, "badge_name": badge.name},
        )
        awarded.append(badge)
    return awarded


def _push_awards(notifier: Notifier | None, user_id: str, awarded: list[BadgeDefinition]) -> None:
    if notifier is None:
        return
    for badge in awarded:
        try:
            notifier.notify(
                user_id,
                f"You earned the {badge.name} badge!",
                badge.description,
                "/profile",
            )
        except Exception:
            logger.exception("Badge push dispatch failed for user %s", user_id)


def evaluate_badges(
    engine: Engine,
    user_id: str,
    notifier: Notifier | None = None,
) -> list[int]:
    """Check every unearned badge for *user_id* and award those that qualify.

    1. Load the catalog and the user's earned badge IDs.
    2. Count the metric for each criteria type among the unearned badges.
    3. Award every badge with ``count >= criteria_value`` in one transaction.
    4. After commit, dispatch one push per newly awarded badge.

    Returns the IDs of badges awarded by this call.  Persistence errors
    propagate; callers that must not fail wrap this call.
    """
    with Session(engine) as session:
        catalog = load_catalog(session)
        if not catalog:
            return []

        earned = get_earned_badge_ids(session, user_id)
        candidates = unearned_badges(catalog, earned)
        if not candidates:
            return []

        counts = get_criteria_counts(session, user_id, criteria_types_needed(candidates))
        qualified = qualifying_badges(candidates, counts)
        if not qualified:
            return []

        awarded = _award(session, user_id, qualified)
        session.commit()

    if awarded:
        logger.info(
            "Awarded %d badge(s) to %s: %s",
            len(awarded), user_id, ", ".join(b.name for b in awarded),
        )
    _push_awards(notifier, user_id, awarded)
    return [b.id for b in awarded]


def award_badge_if_earned(
    engine: Engine,
    user_id: str,
    criteria_type: str,
    count: int,
    notifier: Notifier | None = None,
) -> list[int]:
    """Award badges of one *criteria_type* using a caller-supplied *count*.

    Used right after a streak update, where the fresh values are already in
    hand and recounting would be wasted work.
    """
    with Session(engine) as session:
        eligible = [
            b for b in load_catalog(session, criteria_type)
            if b.criteria_value <= count
        ]
        if not eligible:
            return []

        candidates = unearned_badges(eligible, get_earned_badge_ids(session, user_id))
        if not candidates:
            return []

        awarded = _award(session, user_id, candidates)
        session.commit()

    _push_awards(notifier, user_id, awarded)
    return [b.id for b in awarded]


async def evaluate_badges_for_users(
    engine: Engine,
    user_ids: Iterable[str],
    notifier: Notifier | None = None,
) -> dict[str, int]:
    """Evaluate many users concurrently; one failure never blocks the rest.

    Returns ``{"checked": N, "awarded": badges_awarded, "failed": M}``.
    """
    ids = list(dict.fromkeys(user_ids))
    results = await asyncio.gather(
        *(run_db(evaluate_badges, engine, uid, notifier) for uid in ids),
        return_exceptions=True,
    )

    awarded = 0
    failed = 0
    for uid, result in zip(ids, results):
        if isinstance(result, BaseException):
            failed += 1
            logger.error("Badge evaluation failed for user %s: %r", uid, result)
        else:
            awarded += len(result)

    return {"checked": len(ids), "awarded": awarded, "failed": failed}
