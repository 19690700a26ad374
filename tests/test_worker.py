import hashlib
import hmac
import json

from tenantdesk.core.config import settings
from tenantdesk.services.notifications import OutboxNotificationSink, enqueue
from tenantdesk.workers import rq_worker


class FakeResponse:
    status_code = 200

    def raise_for_status(self):
        pass


def test_notification_event_posts_signed_webhook(monkeypatch):
    sent = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        sent.update(url=url, json=json, headers=headers)
        return FakeResponse()

    monkeypatch.setattr(settings, "webhook_url", "https://hooks.acme.io/desk")
    monkeypatch.setattr(settings, "webhook_secret", "s3cret")
    monkeypatch.setattr(rq_worker.requests, "post", fake_post)

    payload = {"id": 1, "user_id": 2, "type": "ticket_assigned", "title": "t", "message": "m"}
    rq_worker.handle_event("notification.created", payload)

    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    digest = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
    assert sent["url"] == "https://hooks.acme.io/desk"
    assert sent["headers"]["X-TenantDesk-Event"] == "notification.created"
    assert sent["headers"]["X-TenantDesk-Signature"] == f"sha256={digest}"


def test_without_webhook_url_nothing_is_posted(monkeypatch):
    monkeypatch.setattr(settings, "webhook_url", None)
    monkeypatch.setattr(rq_worker.requests, "post", lambda *a, **kw: (_ for _ in ()).throw(AssertionError))
    rq_worker.handle_event("notification.created", {"id": 1})


def test_unknown_event_is_ignored():
    rq_worker.handle_event("ticket.exploded", {})


def test_enqueue_disabled_in_tests():
    assert settings.notifications_enqueue is False
    assert enqueue("notification.created", {"id": 1}) is None


class FakeSession:
    def __init__(self):
        self.added = []

    def add(self, obj):
        self.added.append(obj)


def test_outbox_sink_stores_rows_until_published():
    db = FakeSession()
    sink = OutboxNotificationSink(db)
    sink.notify(5, "ticket_assigned", "Assigned", "You have a ticket", {"ticket_id": 9})
    sink.notify(None, "ticket_assigned", "Nobody", "dropped")
    assert len(db.added) == 1
    assert db.added[0].context == {"ticket_id": 9}
    sink.publish()
    assert sink.pending == []
