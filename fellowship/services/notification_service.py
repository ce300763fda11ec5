"""
fellowship.services.notification_service — In-app Inbox & Push Delivery
========================================================================

Two channels for telling a user something happened:

- **In-app** — a ``notifications`` row written in the caller's transaction
  (:func:`create_notification`).
- **Push** — best-effort Web Push to every device the user subscribed.
  Callers never await delivery: :meth:`NotificationDispatcher.notify` puts
  the message on a queue and returns immediately.  A background drain task
  delivers it, and every failure is logged and swallowed.

Delivery goes through a :class:`PushTransport`.  :class:`WebPushTransport`
signs and encrypts each push itself with pywebpush (VAPID keys from the
environment); :class:`RelayPushTransport` hands subscription + payload to an
external HTTP relay with httpx instead.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx
from pywebpush import WebPushException, webpush
from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from fellowship.database.engine import get_session, run_db
from fellowship.database.models import Notification, PushSubscription

logger = logging.getLogger(__name__)

# Push services answer with these when the browser subscription no longer exists
STALE_SUBSCRIPTION_STATUSES = frozenset({404, 410})


class PushDeliveryError(Exception):
    """A single push delivery was rejected by the push service or relay."""

    def __init__(self, status_code: int, message: str = "") -> None:
        super().__init__(message or f"Push delivery failed with HTTP {status_code}")
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class PushTarget:
    id: int
    endpoint: str
    p256dh: str
    auth_key: str


@dataclass(frozen=True, slots=True)
class PushMessage:
    user_id: str
    title: str
    body: str
    url: str = "/"


class PushTransport(Protocol):
    async def send(self, target: PushTarget, payload: dict) -> None: ...

    async def aclose(self) -> None: ...

class Notifier(Protocol):
    def notify(self, user_id: str, title: str, body: str, link_path: str = "/") -> None: ...


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------
class WebPushTransport:
    """Send VAPID-signed Web Push messages straight to the browser's push service.

    pywebpush is synchronous, so each send runs on a worker thread.
    """

    def __init__(self, vapid_private_key: str, vapid_email: str, *, timeout: float = 10.0) -> None:
        self.vapid_private_key = vapid_private_key
        self.vapid_claims = {"sub": f"mailto:{vapid_email}"}
        self.timeout = timeout

    def _send_sync(self, target: PushTarget, payload: dict) -> None:
        try:
            webpush(
                subscription_info={
                    "endpoint": target.endpoint,
                    "keys": {"p256dh": target.p256dh, "auth": target.auth_key},
                },
                data=json.dumps(payload),
                vapid_private_key=self.vapid_private_key,
                # pywebpush adds "aud" and "exp" to the dict it is given
                vapid_claims=dict(self.vapid_claims),
                timeout=self.timeout,
            )
        except WebPushException as exc:
            status_code = exc.response.status_code if exc.response is not None else 0
            raise PushDeliveryError(status_code, str(exc)[:200]) from exc

    async def send(self, target: PushTarget, payload: dict) -> None:
        await asyncio.to_thread(self._send_sync, target, payload)

    async def aclose(self) -> None:
        return None


class RelayPushTransport:
    """Deliver pushes through an HTTP Web Push relay."""

    def __init__(
        self,
        relay_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.relay_url = relay_url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, target: PushTarget, payload: dict) -> None:
        resp = await self._client.post(
            self.relay_url,
            json={
                "subscription": {
                    "endpoint": target.endpoint,
                    "keys": {"p256dh": target.p256dh, "auth": target.auth_key},
                },
                "payload": payload,
            },
        )
        if resp.status_code >= 400:
            raise PushDeliveryError(resp.status_code, resp.text[:200])

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# In-app notifications
# ---------------------------------------------------------------------------
def create_notification(
    session: Session, user_id: str, type_: str, payload: dict | None = None
) -> Notification:
    """Add an in-app notification row to *session* (caller commits)."""
    row = Notification(user_id=user_id, type=type_, payload=payload or {})
    session.add(row)
    return row


# ---------------------------------------------------------------------------
# Push delivery (sync helpers run via run_db)
# ---------------------------------------------------------------------------
def _load_push_targets(engine: Engine, user_id: str) -> list[PushTarget]:
    with get_session(engine) as session:
        rows = session.scalars(
            select(PushSubscription).where(PushSubscription.user_id == user_id)
        ).all()
        return [PushTarget(r.id, r.endpoint, r.p256dh, r.auth_key) for r in rows]


def _delete_push_target(engine: Engine, subscription_id: int) -> None:
    with get_session(engine) as session:
        session.execute(
            delete(PushSubscription).where(PushSubscription.id == subscription_id)
        )


async def send_push_to_user(
    engine: Engine,
    transport: PushTransport,
    user_id: str,
    title: str,
    body: str,
    url: str = "/",
) -> int:
    """Push to every subscription of *user_id*.  Never raises.

    Deliveries run concurrently and fail independently.  Subscriptions the
    push service reports as gone (404/410) are deleted.  Returns the number of
    successful deliveries.
    """
    try:
        targets = await run_db(_load_push_targets, engine, user_id)
        if not targets:
            return 0

        payload = {"title": title, "body": body, "url": url}

        async def _deliver(target: PushTarget) -> bool:
            try:
                await transport.send(target, payload)
                return True
            except PushDeliveryError as exc:
                if exc.status_code in STALE_SUBSCRIPTION_STATUSES:
                    logger.info(
                        "Removing stale push subscription %d for user %s",
                        target.id, user_id,
                    )
                    await run_db(_delete_push_target, engine, target.id)
                else:
                    logger.warning(
                        "Push to subscription %d rejected (HTTP %d)",
                        target.id, exc.status_code,
                    )
                return False

        results = await asyncio.gather(
            *(_deliver(t) for t in targets), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.warning("Push delivery error for user %s: %r", user_id, result)
        return sum(1 for r in results if r is True)
    except Exception:
        logger.exception("Push delivery to user %s failed", user_id)
        return 0


# ---------------------------------------------------------------------------
# Fire-and-forget dispatcher
# ---------------------------------------------------------------------------
class NotificationDispatcher:
    """Queue of pending pushes drained by one background task.

    ``notify()`` is safe to call from any thread (service functions run in
    worker threads via ``run_db``) and never raises.  Messages are dropped
    with a warning if the dispatcher isn't running or the queue is full.
    """

    def __init__(
        self,
        engine: Engine,
        transport: PushTransport | None,
        *,
        max_pending: int = 1000,
    ) -> None:
        self.engine = engine
        self.transport = transport
        self.max_pending = max_pending
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[PushMessage] | None = None
        self._drain_task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the background drain task on *loop*."""
        if self._drain_task is not None:
            return
        self._loop = loop
        self._queue = asyncio.Queue(maxsize=self.max_pending)
        self._drain_task = loop.create_task(self._drain_loop(), name="push-drain")

    def stop(self) -> None:
        """Cancel the drain task.  Undelivered messages are discarded."""
        if self._drain_task:
            self._drain_task.cancel()
            self._drain_task = None
        self._loop = None

    def notify(self, user_id: str, title: str, body: str, link_path: str = "/") -> None:
        message = PushMessage(user_id=user_id, title=title, body=body, url=link_path)
        loop = self._loop
        if loop is None or loop.is_closed() or self.transport is None:
            logger.warning(
                "Push dispatcher not running — dropping %r for user %s", title, user_id
            )
            return
        try:
            loop.call_soon_threadsafe(self._enqueue, message)
        except RuntimeError:
            logger.warning("Push dispatcher loop closed — dropping %r", title)

    def _enqueue(self, message: PushMessage) -> None:
        if self._queue is None:
            return
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(
                "Push queue full (%d) — dropping %r for user %s",
                self.max_pending, message.title, message.user_id,
            )

    async def join(self) -> None:
        """Wait until everything queued so far has been delivered."""
        await asyncio.sleep(0)
        if self._queue is not None:
            await self._queue.join()

    async def _drain_loop(self) -> None:
        assert self._queue is not None
        while True:
            message = await self._queue.get()
            try:
                await send_push_to_user(
                    self.engine,
                    self.transport,
                    message.user_id,
                    message.title,
                    message.body,
                    message.url,
                )
            except Exception:
                logger.exception("Push drain error")
            finally:
                self._queue.task_done()
