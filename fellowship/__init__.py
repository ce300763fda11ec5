"""
Fellowship — Engagement Core for a Christian Community App
============================================================
Turns everyday community actions (saving a verse, posting, chatting in a
cell, finishing a course) into daily streaks, points and badges, and scores
cell channels so the ones that need attention stand out.

Package layout::

    fellowship/
    ├── config.py          # YAML → typed Python config
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default badge catalog seeder
    ├── engine/
    │   ├── events.py      # StreakEventType + fixed point table
    │   ├── streaks.py     # Consecutive-day streak transition
    │   ├── badges.py      # Badge threshold evaluation
    │   └── engagement.py  # Per-session channel engagement scores
    ├── services/
    │   ├── streak_service.py        # log_event + streak/badge reads
    │   ├── badge_service.py         # Metric counters + idempotent awards
    │   ├── notification_service.py  # In-app inbox + fire-and-forget push
    │   └── engagement_service.py    # Unread counts + scheduled sweep
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT user auth, cron secret, shared engine
        └── routes/        # Streak, badge, channel and cron endpoints
"""

__version__ = "0.1.0"
