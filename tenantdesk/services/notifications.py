# tenantdesk/services/notifications.py
"""
Notification sink.

The ticket core only sees the ``NotificationSink`` protocol and never waits
on delivery. ``OutboxNotificationSink`` stores each notification as a row in
the same transaction as the ticket change; after the commit the caller
pushes the stored rows to the RQ queue, where the worker delivers them.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

import redis
from rq import Queue, Retry
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.config import settings
from tenantdesk.db.models import Notification
from tenantdesk.utils.time import utc_now

log = logging.getLogger(__name__)

_queue: Queue | None = None


class NotificationSink(Protocol):
    def notify(
        self,
        target_user_id: int,
        type: str,
        title: str,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        ...


class OutboxNotificationSink:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.pending: list[Notification] = []

    def notify(
        self,
        target_user_id: int,
        type: str,
        title: str,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if target_user_id is None:
            return
        n = Notification(
            user_id=target_user_id,
            type=type,
            title=title,
            message=message,
            context=dict(context or {}),
            is_read=False,
            created_at=utc_now(),
        )
        self.db.add(n)
        self.pending.append(n)

    def publish(self) -> None:
        """Hands committed rows to the delivery queue. Call after commit."""
        for n in self.pending:
            enqueue("notification.created", serialize_notification(n))
        self.pending.clear()


def serialize_notification(n: Notification) -> dict[str, Any]:
    return {
        "id": n.id,
        "user_id": n.user_id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "context": n.context or {},
        "is_read": n.is_read,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


def _get_queue() -> Queue:
    global _queue
    if _queue is None:
        _queue = Queue(settings.notifications_queue, connection=redis.from_url(settings.redis_url))
    return _queue


def enqueue(event_type: str, payload: Mapping[str, Any]) -> str | None:
    """
    Puts an event on the queue; the worker runs handle_event for it.
    Returns the job id, or None when queueing is off or failed
    (delivery problems must never fail the HTTP request).
    """
    if not settings.notifications_enqueue:
        return None

    try:
        job = _get_queue().enqueue(
            "tenantdesk.workers.rq_worker.handle_event",
            event_type,
            dict(payload),
            job_timeout=60,
            retry=Retry(max=3, interval=[5, 15, 30]),
        )
        return getattr(job, "id", None)
    except redis.RedisError as e:
        log.exception("Failed to enqueue event '%s': %s", event_type, e)
        return None
