"""
fellowship.services.engagement_service — Unread Counts & Engagement Sweep
==========================================================================

Two jobs:

- Feed the channel list: unread counts per channel become the baseline of
  an :class:`~fellowship.engine.engagement.EngagementScoreStore`.
- The scheduled **engagement sweep**: for a bounded batch of users with
  push subscriptions, send an unread-messages reminder, a new-post-from-a-
  friend reminder and a streak-at-risk reminder, then run badge evaluation.
  Users are processed concurrently and each user's failure is isolated
  from the others.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import Engine, func, or_, select
from sqlalchemy.orm import Session

from fellowship.database.engine import get_session, run_db
from fellowship.database.models import (
    Cell,
    CellMember,
    Channel,
    ChannelReadState,
    ChatMessage,
    Friendship,
    FriendshipStatus,
    Post,
    Profile,
    PushSubscription,
)
from fellowship.engine.engagement import EngagementScoreStore
from fellowship.engine.streaks import is_streak_at_risk
from fellowship.services.badge_service import evaluate_badges
from fellowship.services.streak_service import get_streak

if TYPE_CHECKING:
    from fellowship.services.notification_service import Notifier

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
FRIEND_POST_WINDOW = timedelta(hours=1)
FRIEND_SCAN_LIMIT = 50


# ---------------------------------------------------------------------------
# Unread counts
# ---------------------------------------------------------------------------
def _unread_counts(session: Session, user_id: str, channel_ids: list[str]) -> dict[str, int]:
    if not channel_ids:
        return {}

    read_map = dict(session.execute(
        select(ChannelReadState.channel_id, ChannelReadState.last_read_at).where(
            ChannelReadState.user_id == user_id,
            ChannelReadState.channel_id.in_(channel_ids),
        )
    ).all())

    counts: dict[str, int] = {}
    for channel_id in channel_ids:
        stmt = select(func.count()).select_from(ChatMessage).where(
            ChatMessage.channel_id == channel_id,
            ChatMessage.user_id != user_id,
        )
        last_read = read_map.get(channel_id)
        if last_read is not None:
            stmt = stmt.where(ChatMessage.created_at > last_read)
        counts[channel_id] = int(session.scalar(stmt) or 0)
    return counts


def get_unread_counts(engine: Engine, user_id: str, channel_ids: list[str]) -> dict[str, int]:
    """Messages from other members newer than the user's read marker."""
    with Session(engine) as session:
        return _unread_counts(session, user_id, list(channel_ids))


def mark_channel_read(
    engine: Engine, user_id: str, channel_id: str, *, at: datetime | None = None
) -> None:
    """Move the user's read marker for *channel_id* to *at* (default now)."""
    at = at or datetime.now(UTC)
    with get_session(engine) as session:
        state = session.get(ChannelReadState, (user_id, channel_id))
        if state is None:
            session.add(ChannelReadState(user_id=user_id, channel_id=channel_id, last_read_at=at))
        else:
            state.last_read_at = at


def build_channel_scores(engine: Engine, user_id: str, cell_id: str) -> list[dict]:
    """Baseline engagement for every channel in *cell_id*, highest first."""
    with Session(engine) as session:
        channels = session.scalars(
            select(Channel).where(Channel.cell_id == cell_id).order_by(Channel.position, Channel.id)
        ).all()
        names = {ch.id: ch.name for ch in channels}
        unread = _unread_counts(session, user_id, list(names))

    store = EngagementScoreStore(unread)
    return [
        {
            "channel_id": ch_id,
            "name": names[ch_id],
            "unread": unread.get(ch_id, 0),
            "score": store.score(ch_id),
            "priority": store.priority(ch_id).value,
            "highlighted": store.is_highlighted(ch_id),
        }
        for ch_id in store.sort_channels(names)
    ]


# ---------------------------------------------------------------------------
# Scheduled sweep
# ---------------------------------------------------------------------------
def _subscribed_user_ids(engine: Engine, limit: int) -> list[str]:
    with Session(engine) as session:
        rows = session.scalars(
            select(PushSubscription.user_id).distinct().order_by(PushSubscription.user_id).limit(limit)
        ).all()
        return list(rows)


def _unread_summary(engine: Engine, user_id: str) -> tuple[int, str | None]:
    """Total unread messages across the user's cells, and the name of the
    first cell (by cell, then channel position) that has any unread."""
    with Session(engine) as session:
        rows = session.execute(
            select(Channel.id, Cell.name)
            .join(CellMember, CellMember.cell_id == Channel.cell_id)
            .outerjoin(Cell, Cell.id == Channel.cell_id)
            .where(CellMember.user_id == user_id)
            .order_by(Channel.cell_id, Channel.position, Channel.id)
        ).all()
        counts = _unread_counts(session, user_id, [channel_id for channel_id, _ in rows])

    top_cell = next((name for channel_id, name in rows if counts.get(channel_id)), None)
    return sum(counts.values()), top_cell


def _recent_friend_poster(engine: Engine, user_id: str, since: datetime) -> str | None:
    """Username of an accepted friend who posted after *since*, if any.

    Friends without a profile row are reported as ``"A friend"``.
    """
    with Session(engine) as session:
        pairs = session.execute(
            select(Friendship.requester_id, Friendship.addressee_id).where(
                Friendship.status == FriendshipStatus.ACCEPTED.value,
                or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
            ).limit(FRIEND_SCAN_LIMIT)
        ).all()
        friend_ids = {a if r == user_id else r for r, a in pairs}
        if not friend_ids:
            return None

        post = session.execute(
            select(Post.user_id, Profile.username)
            .outerjoin(Profile, Profile.user_id == Post.user_id)
            .where(Post.user_id.in_(friend_ids), Post.created_at > since)
            .order_by(Post.created_at.desc())
            .limit(1)
        ).first()

    if post is None:
        return None
    return post.username or "A friend"


async def _sweep_user(
    engine: Engine, notifier: Notifier, user_id: str, today: date, now: datetime
) -> None:
    unread, top_cell = await run_db(_unread_summary, engine, user_id)
    if unread > 0:
        plural = "s" if unread > 1 else ""
        notifier.notify(
            user_id,
            "Unread messages",
            f"You have {unread} unread message{plural} in {top_cell or 'your cells'}",
            "/engage",
        )

    poster = await run_db(_recent_friend_poster, engine, user_id, now - FRIEND_POST_WINDOW)
    if poster is not None:
        notifier.notify(
            user_id,
            "New perspective",
            f"{poster} shared a new perspective",
            "/explore",
        )

    streak = await run_db(get_streak, engine, user_id)
    if is_streak_at_risk(streak, today):
        notifier.notify(
            user_id,
            "Don't break your streak!",
            f"Keep your {streak.current_streak}-day streak alive — open the app now",
            "/",
        )

    await run_db(evaluate_badges, engine, user_id, notifier)


async def run_engagement_sweep(
    engine: Engine,
    notifier: Notifier,
    *,
    today: date,
    now: datetime | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, int]:
    """Run reminders and badge evaluation for up to *batch_size* users.

    *now* anchors the one-hour friend-post window (default: current UTC
    time).  Returns ``{"users": N, "failed": M}``.
    """
    now = now or datetime.now(UTC)
    user_ids = await run_db(_subscribed_user_ids, engine, batch_size)
    if not user_ids:
        return {"users": 0, "failed": 0}

    results = await asyncio.gather(
        *(_sweep_user(engine, notifier, uid, today, now) for uid in user_ids),
        return_exceptions=True,
    )

    failed = 0
    for uid, result in zip(user_ids, results):
        if isinstance(result, BaseException):
            failed += 1
            logger.error("Engagement sweep failed for user %s: %r", uid, result)

    logger.info(
        "Engagement sweep complete — %d users, %d failed", len(user_ids), failed,
    )
    return {"users": len(user_ids), "failed": failed}
