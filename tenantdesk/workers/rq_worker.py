# tenantdesk/workers/rq_worker.py
import hashlib
import hmac
import json
import logging
import os
from typing import Any, Callable, Mapping

import redis
import requests
from rq import Queue, Worker

from tenantdesk.core.config import settings
from tenantdesk.core.logging import setup_logging

logger = logging.getLogger("worker.notifications")


def _sign(payload: Mapping[str, Any]) -> str | None:
    if not settings.webhook_secret:
        return None
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return hmac.new(settings.webhook_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _post(url: str | None, event_type: str, payload: Mapping[str, Any]) -> None:
    if not url:
        logger.debug("webhook_url_missing", extra={"event_type": event_type})
        return
    headers = {"Content-Type": "application/json", "X-TenantDesk-Event": event_type}
    sig = _sign(payload)
    if sig:
        headers["X-TenantDesk-Signature"] = f"sha256={sig}"
    # raising lets RQ retry the job
    r = requests.post(url, json=payload, headers=headers, timeout=10)
    r.raise_for_status()
    logger.info("webhook_sent", extra={"event_type": event_type, "status": r.status_code})


def send_mail_mock(to: str, subject: str, body: str) -> None:
    logger.info("SEND_MAIL", extra={"to": to, "subject": subject, "body_len": len(body)})


def on_notification_created(payload: Mapping[str, Any]) -> None:
    user_id = payload.get("user_id")
    logger.info(
        "notification_created",
        extra={"notification_id": payload.get("id"), "user_id": user_id, "type": payload.get("type")},
    )
    send_mail_mock(f"user:{user_id}", payload.get("title") or "", payload.get("message") or "")
    _post(settings.webhook_url, "notification.created", payload)


EVENT_HANDLERS: dict[str, Callable[[Mapping[str, Any]], None]] = {
    "notification.created": on_notification_created,
}


def handle_event(event_type: str, payload: Mapping[str, Any] | None = None) -> None:
    handler = EVENT_HANDLERS.get(event_type)
    if not handler:
        logger.warning("unknown_event", extra={"event_type": event_type})
        return
    handler(payload or {})


def main() -> None:
    setup_logging(settings.log_level)
    queue_name = settings.notifications_queue
    logger.info("worker_starting", extra={"queue": queue_name, "redis": settings.redis_url})
    conn = redis.from_url(settings.redis_url)
    queue = Queue(queue_name, connection=conn)
    worker = Worker([queue], connection=conn, name=os.getenv("WORKER_NAME", "notifications-worker"))
    worker.work(logging_level=logging.INFO)


if __name__ == "__main__":
    main()
