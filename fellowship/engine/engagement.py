"""
fellowship.engine.engagement — Per-session Channel Engagement Scores
=====================================================================

Decides which channels in a cell's channel list deserve visual emphasis.
A channel starts at ``unread_count * 5`` and gains (or loses) points from
local interaction signals; once its score reaches 15 it is highlighted.

Scores live in an :class:`EngagementScoreStore` owned by one view session.
Nothing is persisted and nothing is shared between sessions — a remount
builds a fresh store.  No I/O, and no method ever raises for an unknown
channel.
"""

from __future__ import annotations

import enum
import logging
import time
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from threading import Lock

logger = logging.getLogger(__name__)

__all__ = [
    "HIGHLIGHT_THRESHOLD",
    "MEDIUM_THRESHOLD",
    "SIGNAL_WEIGHTS",
    "UNREAD_WEIGHT",
    "EngagementScoreStore",
    "EngagementSignal",
    "PriorityClass",
    "priority_class",
]


class EngagementSignal(enum.StrEnum):
    """Local interactions that move a channel's score."""
    NOTIFICATION_CLICK = "NOTIFICATION_CLICK"
    VIEW_AFTER_NOTIFICATION = "VIEW_AFTER_NOTIFICATION"
    MESSAGE_SENT = "MESSAGE_SENT"
    VIEW_WITHOUT_NOTIFICATION = "VIEW_WITHOUT_NOTIFICATION"
    IGNORED_NOTIFICATION = "IGNORED_NOTIFICATION"


SIGNAL_WEIGHTS: dict[EngagementSignal, int] = {
    EngagementSignal.NOTIFICATION_CLICK: 7,
    EngagementSignal.VIEW_AFTER_NOTIFICATION: 3,
    EngagementSignal.MESSAGE_SENT: 5,
    EngagementSignal.VIEW_WITHOUT_NOTIFICATION: 1,
    EngagementSignal.IGNORED_NOTIFICATION: -2,
}

UNREAD_WEIGHT = 5
HIGHLIGHT_THRESHOLD = 15
MEDIUM_THRESHOLD = 7


class PriorityClass(enum.StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    NORMAL = "normal"


def priority_class(score: int) -> PriorityClass:
    """high ≥ 15, medium ≥ 7, otherwise normal."""
    if score >= HIGHLIGHT_THRESHOLD:
        return PriorityClass.HIGH
    if score >= MEDIUM_THRESHOLD:
        return PriorityClass.MEDIUM
    return PriorityClass.NORMAL


class EngagementScoreStore:
    """Additive engagement scores for the channels of one view session.

    Parameters
    ----------
    unread_counts : Initial unread message count per channel ID.
    arrival_window : Seconds during which a view of a channel still counts
        as "after notification" once the user arrived there from a
        notification.
    clock : Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        unread_counts: Mapping[str, int] | None = None,
        *,
        arrival_window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = Lock()
        self._unread: dict[str, int] = {
            ch: max(int(n), 0) for ch, n in (unread_counts or {}).items()
        }
        self._deltas: dict[str, int] = defaultdict(int)
        # channel_id → time the user arrived there from a notification
        self._arrivals: dict[str, float] = {}
        self._arrival_window = arrival_window
        self._clock = clock

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def apply_score(self, channel_id: str, signal: EngagementSignal | str) -> None:
        """Add the weight of *signal* to *channel_id*.

        Unknown signals are ignored.
        """
        try:
            weight = SIGNAL_WEIGHTS[EngagementSignal(signal)]
        except ValueError:
            logger.debug("Ignoring unknown engagement signal %r", signal)
            return
        with self._lock:
            self._deltas[channel_id] += weight

    def record_notification_click(self, channel_id: str) -> None:
        """The user confirmed-navigated into *channel_id* from a notification."""
        self.apply_score(channel_id, EngagementSignal.NOTIFICATION_CLICK)
        with self._lock:
            self._arrivals[channel_id] = self._clock()

    def record_notification_ignored(self, channel_id: str) -> None:
        self.apply_score(channel_id, EngagementSignal.IGNORED_NOTIFICATION)

    def record_view(self, channel_id: str) -> EngagementSignal:
        """Score a channel view and return the signal that was applied.

        A view shortly after arriving from a notification for the same
        channel is scored as ``VIEW_AFTER_NOTIFICATION`` (once); any other
        view is a cold ``VIEW_WITHOUT_NOTIFICATION``.
        """
        now = self._clock()
        with self._lock:
            arrived = self._arrivals.pop(channel_id, None)
        if arrived is not None and now - arrived <= self._arrival_window:
            signal = EngagementSignal.VIEW_AFTER_NOTIFICATION
        else:
            signal = EngagementSignal.VIEW_WITHOUT_NOTIFICATION
        self.apply_score(channel_id, signal)
        return signal

    def record_message_sent(self, channel_id: str) -> None:
        self.apply_score(channel_id, EngagementSignal.MESSAGE_SENT)

    def set_unread(self, channel_id: str, count: int) -> None:
        with self._lock:
            self._unread[channel_id] = max(int(count), 0)

    def mark_read(self, channel_id: str) -> None:
        """Optimistically clear the unread baseline for *channel_id*."""
        self.set_unread(channel_id, 0)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def score(self, channel_id: str) -> int:
        with self._lock:
            return self._unread.get(channel_id, 0) * UNREAD_WEIGHT + self._deltas.get(channel_id, 0)

    def scores(self) -> dict[str, int]:
        with self._lock:
            channel_ids = set(self._unread) | set(self._deltas)
        return {ch: self.score(ch) for ch in channel_ids}

    def is_highlighted(self, channel_id: str) -> bool:
        return self.score(channel_id) >= HIGHLIGHT_THRESHOLD

    def priority(self, channel_id: str) -> PriorityClass:
        return priority_class(self.score(channel_id))

    def sort_channels(self, channel_ids: Iterable[str]) -> list[str]:
        """Higher scores first; ties keep their original order."""
        return sorted(channel_ids, key=lambda ch: -self.score(ch))
