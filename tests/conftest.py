import os
import tempfile
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="tenantdesk-tests-"))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP / 'test.db'}")
os.environ.setdefault("NOTIFICATIONS_ENQUEUE", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("UPLOAD_DIR", str(_TMP / "uploads"))
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone  # noqa: E402
from itertools import count  # noqa: E402

import pytest  # noqa: E402

from tenantdesk.db.models import RoleEnum, TicketStatusEnum, User  # noqa: E402
from tenantdesk.services.tickets import build_ticket  # noqa: E402

_ids = count(100)


class RecordingSink:
    """Collects notifications instead of storing them."""

    def __init__(self):
        self.sent = []

    def notify(self, target_user_id, type, title, message, context=None):
        self.sent.append({"user_id": target_user_id, "type": type, "title": title, "context": dict(context or {})})

    def to(self, user_id):
        return [n for n in self.sent if n["user_id"] == user_id]


def make_user(role=RoleEnum.user, *, company_id=1, **kw) -> User:
    uid = kw.pop("id", None) or next(_ids)
    return User(
        id=uid,
        email=kw.pop("email", f"{role.value}{uid}@example.com"),
        first_name=kw.pop("first_name", role.value.title()),
        last_name=kw.pop("last_name", str(uid)),
        role=role,
        company_id=company_id,
        permissions=[],
        is_active=True,
        **kw,
    )


def make_ticket(reporter: User, *, status=TicketStatusEnum.open, assignee: User | None = None, now=None):
    t = build_ticket(
        ticket_number="TICKET-000001",
        title="Printer on fire",
        description="It is actually on fire",
        reporter_id=reporter.id,
        company_id=reporter.company_id or 1,
        assignee_id=assignee.id if assignee else None,
        now=now,
    )
    t.id = next(_ids)
    t.status = status
    return t


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def now():
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def hours_ago(now):
    return lambda h: now - timedelta(hours=h)
