"""
tests/test_engagement_service.py — Unread Counts & Engagement Sweep
====================================================================

Uses an in-memory SQLite database via the shared conftest fixtures.
Timestamps are written explicitly so read-marker comparisons are exact.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from unittest.mock import patch

from sqlalchemy.orm import Session

from fellowship.database.models import (
    Cell,
    CellMember,
    Channel,
    ChannelReadState,
    ChatMessage,
    Friendship,
    Post,
    Profile,
    PushSubscription,
    UserStreak,
)
from fellowship.services import engagement_service
from fellowship.services.engagement_service import (
    build_channel_scores,
    get_unread_counts,
    mark_channel_read,
    run_engagement_sweep,
)
from conftest import add_badge, run_async

T0 = datetime(2026, 4, 1, 9, 0, 0)
TODAY = date(2026, 4, 2)


def _seed_cell(engine, *, cell_name: str | None = "Morning Prayer") -> None:
    """Cell c1 with two channels; u1 is a member and u2 has been chatting."""
    with Session(engine) as session:
        if cell_name is not None:
            session.add(Cell(id="c1", name=cell_name))
        session.add_all([
            Channel(id="ch-general", cell_id="c1", name="general", position=0),
            Channel(id="ch-prayer", cell_id="c1", name="prayer", position=1),
            Channel(id="ch-elsewhere", cell_id="c2", name="general", position=0),
            CellMember(cell_id="c1", user_id="u1"),
        ])
        session.flush()
        for minute in range(3):
            session.add(ChatMessage(
                channel_id="ch-general", user_id="u2", content="amen",
                created_at=T0 + timedelta(minutes=minute),
            ))
        session.add(ChatMessage(
            channel_id="ch-general", user_id="u1", content="my own", created_at=T0,
        ))
        session.add(ChatMessage(
            channel_id="ch-prayer", user_id="u2", content="pray for me", created_at=T0,
        ))
        session.add(ChatMessage(
            channel_id="ch-elsewhere", user_id="u2", content="hi", created_at=T0,
        ))
        session.commit()


def _subscribe(engine, *user_ids: str) -> None:
    with Session(engine) as session:
        for uid in user_ids:
            session.add(PushSubscription(
                user_id=uid, endpoint=f"https://push.example/{uid}", p256dh="pk", auth_key="ak",
            ))
        session.commit()


# ---------------------------------------------------------------------------
# Unread counts & channel scores
# ---------------------------------------------------------------------------
class TestUnreadCounts:
    def test_counts_exclude_own_messages(self, db_engine):
        _seed_cell(db_engine)
        counts = get_unread_counts(db_engine, "u1", ["ch-general", "ch-prayer"])
        assert counts == {"ch-general": 3, "ch-prayer": 1}

    def test_read_marker_hides_older_messages(self, db_engine):
        _seed_cell(db_engine)
        mark_channel_read(db_engine, "u1", "ch-general", at=T0 + timedelta(minutes=1))
        counts = get_unread_counts(db_engine, "u1", ["ch-general"])
        assert counts == {"ch-general": 1}

    def test_mark_read_moves_existing_marker(self, db_engine):
        _seed_cell(db_engine)
        mark_channel_read(db_engine, "u1", "ch-general", at=T0 - timedelta(hours=1))
        mark_channel_read(db_engine, "u1", "ch-general", at=T0 + timedelta(hours=1))
        with Session(db_engine) as session:
            state = session.get(ChannelReadState, ("u1", "ch-general"))
            assert state.last_read_at.replace(tzinfo=None) == T0 + timedelta(hours=1)
        assert get_unread_counts(db_engine, "u1", ["ch-general"]) == {"ch-general": 0}

    def test_no_channels(self, db_engine):
        assert get_unread_counts(db_engine, "u1", []) == {}


class TestBuildChannelScores:
    def test_scores_and_order(self, db_engine):
        _seed_cell(db_engine)
        rows = build_channel_scores(db_engine, "u1", "c1")
        assert rows == [
            {
                "channel_id": "ch-general", "name": "general", "unread": 3,
                "score": 15, "priority": "high", "highlighted": True,
            },
            {
                "channel_id": "ch-prayer", "name": "prayer", "unread": 1,
                "score": 5, "priority": "normal", "highlighted": False,
            },
        ]

    def test_busier_channel_sorts_first(self, db_engine):
        _seed_cell(db_engine)
        mark_channel_read(db_engine, "u1", "ch-general", at=T0 + timedelta(hours=1))
        rows = build_channel_scores(db_engine, "u1", "c1")
        assert [r["channel_id"] for r in rows] == ["ch-prayer", "ch-general"]

    def test_unknown_cell(self, db_engine):
        assert build_channel_scores(db_engine, "u1", "nowhere") == []


# ---------------------------------------------------------------------------
# Engagement sweep
# ---------------------------------------------------------------------------
class TestEngagementSweep:
    def test_no_subscribed_users(self, db_engine, notifier):
        summary = run_async(run_engagement_sweep(db_engine, notifier, today=TODAY))
        assert summary == {"users": 0, "failed": 0}
        assert notifier.sent == []

    def test_full_sweep_for_one_user(self, db_engine, notifier):
        _seed_cell(db_engine)
        _subscribe(db_engine, "u1")
        add_badge(db_engine, "Three Days", "streak_days", 3, "Kept a 3-day streak")
        with Session(db_engine) as session:
            session.add(UserStreak(
                user_id="u1", current_streak=3, longest_streak=3, total_points=30,
                last_active_date=TODAY - timedelta(days=1),
            ))
            session.commit()

        summary = run_async(run_engagement_sweep(db_engine, notifier, today=TODAY))

        assert summary == {"users": 1, "failed": 0}
        assert notifier.sent[0] == (
            "u1", "Unread messages", "You have 4 unread messages in Morning Prayer", "/engage",
        )
        assert notifier.titles_for("u1") == [
            "Unread messages",
            "Don't break your streak!",
            "You earned the Three Days badge!",
        ]

    def test_quiet_user_gets_no_reminders(self, db_engine, notifier):
        _subscribe(db_engine, "u9")
        with Session(db_engine) as session:
            session.add(UserStreak(
                user_id="u9", current_streak=1, longest_streak=4, total_points=10,
                last_active_date=TODAY - timedelta(days=1),
            ))
            session.commit()

        summary = run_async(run_engagement_sweep(db_engine, notifier, today=TODAY))
        assert summary == {"users": 1, "failed": 0}
        assert notifier.sent == []

    def test_single_unread_message_wording(self, db_engine, notifier):
        _seed_cell(db_engine)
        _subscribe(db_engine, "u1")
        mark_channel_read(db_engine, "u1", "ch-general", at=T0 + timedelta(hours=1))
        run_async(run_engagement_sweep(db_engine, notifier, today=TODAY))
        assert notifier.sent[0][2] == "You have 1 unread message in Morning Prayer"

    def test_one_failure_does_not_stop_others(self, db_engine, notifier):
        _subscribe(db_engine, "u1", "u2", "u3")
        swept: list[str] = []

        async def fake_sweep(engine, notifier, user_id, today, now):
            if user_id == "u2":
                raise RuntimeError("boom")
            swept.append(user_id)

        with patch.object(engagement_service, "_sweep_user", side_effect=fake_sweep):
            summary = run_async(run_engagement_sweep(db_engine, notifier, today=TODAY))

        assert summary == {"users": 3, "failed": 1}
        assert sorted(swept) == ["u1", "u3"]

    def test_batch_size_bounds_users(self, db_engine, notifier):
        _subscribe(db_engine, "u1", "u2", "u3")

        async def fake_sweep(engine, notifier, user_id, today, now):
            return None

        with patch.object(engagement_service, "_sweep_user", side_effect=fake_sweep):
            summary = run_async(
                run_engagement_sweep(db_engine, notifier, today=TODAY, batch_size=2)
            )
        assert summary == {"users": 2, "failed": 0}

    def test_unread_names_first_cell_with_unread(self, db_engine, notifier):
        _seed_cell(db_engine)
        _subscribe(db_engine, "u1")
        with Session(db_engine) as session:
            session.add_all([
                Cell(id="c2", name="Youth Group"),
                CellMember(cell_id="c2", user_id="u1"),
            ])
            session.commit()
        mark_channel_read(db_engine, "u1", "ch-general", at=T0 + timedelta(hours=1))
        mark_channel_read(db_engine, "u1", "ch-prayer", at=T0 + timedelta(hours=1))

        run_async(run_engagement_sweep(db_engine, notifier, today=TODAY))
        assert notifier.sent[0][2] == "You have 1 unread message in Youth Group"

    def test_unread_without_cell_row_falls_back(self, db_engine, notifier):
        _seed_cell(db_engine, cell_name=None)
        _subscribe(db_engine, "u1")
        run_async(run_engagement_sweep(db_engine, notifier, today=TODAY))
        assert notifier.sent[0][2] == "You have 4 unread messages in your cells"


# ---------------------------------------------------------------------------
# New post from a friend
# ---------------------------------------------------------------------------
NOW = datetime(2026, 4, 2, 12, 0, 0)


def _seed_friends(engine, *, status: str = "accepted", username: str | None = "grace") -> None:
    """u1 and u5 are friends (u5 sent the request); u6 is a stranger."""
    with Session(engine) as session:
        session.add(Friendship(requester_id="u5", addressee_id="u1", status=status))
        if username is not None:
            session.add(Profile(user_id="u5", username=username))
        session.commit()


def _add_post(engine, user_id: str, created_at: datetime) -> None:
    with Session(engine) as session:
        session.add(Post(user_id=user_id, created_at=created_at))
        session.commit()


class TestFriendPostReminder:
    def test_recent_friend_post(self, db_engine, notifier):
        _subscribe(db_engine, "u1")
        _seed_friends(db_engine)
        _add_post(db_engine, "u5", NOW - timedelta(minutes=20))

        run_async(run_engagement_sweep(db_engine, notifier, today=TODAY, now=NOW))
        assert notifier.sent == [
            ("u1", "New perspective", "grace shared a new perspective", "/explore"),
        ]

    def test_friendship_counts_from_either_side(self, db_engine, notifier):
        _subscribe(db_engine, "u5")
        _seed_friends(db_engine)
        with Session(db_engine) as session:
            session.add(Profile(user_id="u1", username="peter"))
            session.commit()
        _add_post(db_engine, "u1", NOW - timedelta(minutes=5))

        run_async(run_engagement_sweep(db_engine, notifier, today=TODAY, now=NOW))
        assert notifier.titles_for("u5") == ["New perspective"]
        assert notifier.sent[0][2] == "peter shared a new perspective"

    def test_post_older_than_an_hour_ignored(self, db_engine, notifier):
        _subscribe(db_engine, "u1")
        _seed_friends(db_engine)
        _add_post(db_engine, "u5", NOW - timedelta(hours=1, minutes=1))

        run_async(run_engagement_sweep(db_engine, notifier, today=TODAY, now=NOW))
        assert notifier.sent == []

    def test_pending_friend_and_stranger_ignored(self, db_engine, notifier):
        _subscribe(db_engine, "u1")
        _seed_friends(db_engine, status="pending")
        _add_post(db_engine, "u5", NOW - timedelta(minutes=10))
        _add_post(db_engine, "u6", NOW - timedelta(minutes=10))

        run_async(run_engagement_sweep(db_engine, notifier, today=TODAY, now=NOW))
        assert notifier.sent == []

    def test_friend_without_profile(self, db_engine, notifier):
        _subscribe(db_engine, "u1")
        _seed_friends(db_engine, username=None)
        _add_post(db_engine, "u5", NOW - timedelta(minutes=30))

        run_async(run_engagement_sweep(db_engine, notifier, today=TODAY, now=NOW))
        assert notifier.sent[0][2] == "A friend shared a new perspective"
