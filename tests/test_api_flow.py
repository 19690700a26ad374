import asyncio
import re
import sqlite3
from contextlib import closing

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm.exc import StaleDataError

from tenantdesk.db import models  # noqa: F401
from tenantdesk.db.base import Base
from tenantdesk.core.config import settings
from tenantdesk.db.models import RoleEnum, SubscriptionTier, Ticket
from tenantdesk.db.session import AsyncSessionLocal, engine
from tenantdesk.main import app
from tenantdesk.services.auth import create_user
from tenantdesk.services.companies import create_company
from tenantdesk.services import numbering
from tenantdesk.services import tickets as ticket_service

PASSWORD = "Secret123!"
PEOPLE = {
    "admin": RoleEnum.admin,
    "manager": RoleEnum.manager,
    "agent": RoleEnum.agent,
    "alice": RoleEnum.user,
    "bob": RoleEnum.user,
}


async def _reset_and_seed() -> dict:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    ids = {}
    async with AsyncSessionLocal() as db:
        company = await create_company(db, name="Acme Corp", plan=SubscriptionTier.premium)
        ids["company"] = company.id
        for name, role in PEOPLE.items():
            u = await create_user(
                db,
                email=f"{name}@acme.io",
                password=PASSWORD,
                first_name=name.title(),
                last_name="Tester",
                role=role,
                company_id=None if role is RoleEnum.admin else company.id,
            )
            ids[name] = u.id
        await db.commit()
    return ids


@pytest.fixture
def api():
    ids = asyncio.run(_reset_and_seed())
    with TestClient(app) as client:
        yield client, ids


def _auth(client, name):
    r = client.post("/api/auth/login", json={"username": f"{name}@acme.io", "password": PASSWORD})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def _create(client, headers, company_id, title="VPN is down"):
    r = client.post(
        "/api/tickets",
        json={"title": title, "description": "Cannot connect since this morning", "company_id": company_id},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_login_rejects_bad_password(api):
    client, _ = api
    r = client.post("/api/auth/login", json={"username": "alice@acme.io", "password": "nope"})
    assert r.status_code == 401


def test_ticket_lifecycle_scenario(api):
    client, ids = api
    alice, bob = _auth(client, "alice"), _auth(client, "bob")
    agent, manager, admin = _auth(client, "agent"), _auth(client, "manager"), _auth(client, "admin")

    # customer files a ticket
    t = _create(client, alice, ids["company"])
    assert t["status"] == "open"
    assert t["ticket_number"] == "TICKET-000001"
    assert t["reporter_id"] == ids["alice"]
    assert t["sla"]["is_breached"] is False

    # manager assigns it, assigned agent replies
    r = client.patch(f"/api/tickets/{t['id']}", json={"assignee_id": ids["agent"]}, headers=manager)
    assert r.status_code == 200, r.text
    assert r.json()["assignee_id"] == ids["agent"]

    r = client.post(f"/api/tickets/{t['id']}/comments", json={"content": "Looking into it"}, headers=agent)
    assert r.status_code == 201, r.text

    r = client.get(f"/api/tickets/{t['id']}", headers=alice)
    assert r.json()["status"] == "in_progress"

    comments = client.get(f"/api/tickets/{t['id']}/comments", headers=alice).json()
    system = [c["content"] for c in comments if c["is_system"]]
    assert "**System Update:** Status changed from open to in_progress" in system

    # bob's closed ticket is not alice's to reopen
    sibling = _create(client, bob, ids["company"], title="Laptop battery")
    assert sibling["ticket_number"] == "TICKET-000002"
    r = client.patch(f"/api/tickets/{sibling['id']}", json={"status": "closed"}, headers=bob)
    assert r.status_code == 200, r.text
    r = client.post(
        f"/api/tickets/{sibling['id']}/reopen-request",
        json={"reason": "This happens to me as well"},
        headers=alice,
    )
    assert r.status_code == 403

    # alice's own ticket: closed by the agent, reopen requested, admin approves
    r = client.patch(f"/api/tickets/{t['id']}", json={"status": "closed"}, headers=agent)
    assert r.status_code == 200, r.text
    r = client.post(
        f"/api/tickets/{t['id']}/reopen-request",
        json={"reason": "The VPN dropped again after an hour"},
        headers=alice,
    )
    assert r.status_code == 201, r.text
    request_id = r.json()["id"]

    before = client.get(f"/api/tickets/{t['id']}", headers=admin).json()
    r = client.put(
        f"/api/tickets/reopen-request/{request_id}/approve",
        json={"review_note": "Reopening"},
        headers=admin,
    )
    assert r.status_code == 200, r.text
    after = r.json()
    assert after["status"] == "open"
    assert len(after["activity_log"]) == len(before["activity_log"]) + 1
    assert after["activity_log"][-1]["action"] == "reopened"
    assert after["reopen_requests"][0]["status"] == "approved"

    notes = client.get("/api/notifications", headers=alice).json()
    assert "ticket_reopened" in [n["type"] for n in notes["items"]]

    # a decided request stays decided
    r = client.put(f"/api/tickets/reopen-request/{request_id}/reject", json={}, headers=admin)
    assert r.status_code == 400


def test_customers_only_see_their_tickets(api):
    client, ids = api
    alice, bob = _auth(client, "alice"), _auth(client, "bob")
    t = _create(client, alice, ids["company"])

    assert client.get(f"/api/tickets/{t['id']}", headers=bob).status_code == 403
    assert client.get("/api/tickets", headers=bob).json()["total"] == 0
    assert client.get("/api/tickets", headers=alice).json()["total"] == 1


def test_internal_comments_are_masked_for_customers(api):
    client, ids = api
    alice, agent = _auth(client, "alice"), _auth(client, "agent")
    t = _create(client, alice, ids["company"])

    r = client.post(
        f"/api/tickets/{t['id']}/comments",
        json={"content": "Known issue with the firewall", "is_internal": True},
        headers=agent,
    )
    assert r.status_code == 201, r.text

    seen_by_alice = [c for c in client.get(f"/api/comments/ticket/{t['id']}", headers=alice).json() if c["is_internal"]]
    assert seen_by_alice[0]["content"] == "[Internal comment - not visible to customers]"
    assert seen_by_alice[0]["author"]["name"] == "System"

    seen_by_agent = [c for c in client.get(f"/api/comments/ticket/{t['id']}", headers=agent).json() if c["is_internal"]]
    assert seen_by_agent[0]["content"] == "Known issue with the firewall"

    r = client.post(
        f"/api/tickets/{t['id']}/comments",
        json={"content": "let me in", "is_internal": True},
        headers=alice,
    )
    assert r.status_code == 403


def test_time_tracking_needs_premium_and_edit_rights(api):
    client, ids = api
    alice, agent = _auth(client, "alice"), _auth(client, "agent")
    t = _create(client, alice, ids["company"])

    # alice inherits premium from Acme but customers never edit
    assert client.post(f"/api/tickets/{t['id']}/start-tracking", headers=alice).status_code == 403

    r = client.post(f"/api/tickets/{t['id']}/start-tracking", json={"description": "remote session"}, headers=agent)
    assert r.status_code == 200, r.text
    assert r.json()["is_active"] is True

    r = client.post(f"/api/tickets/{t['id']}/stop-tracking", headers=agent)
    assert r.status_code == 200
    assert r.json()["is_active"] is False

    body = client.get(f"/api/tickets/{t['id']}", headers=agent).json()
    assert body["actual_time"] == sum(e["duration"] for e in body["time_entries"])
    assert not any(e["is_active"] for e in body["time_entries"])


def test_internal_notes_are_hidden_from_customers(api):
    client, ids = api
    alice, agent = _auth(client, "alice"), _auth(client, "agent")
    t = _create(client, alice, ids["company"])

    r = client.post(f"/api/tickets/{t['id']}/internal-notes", json={"content": "Customer is on the old client"}, headers=agent)
    assert r.status_code == 201, r.text

    assert client.get(f"/api/tickets/{t['id']}", headers=alice).json()["internal_notes"] == []
    listed = client.get("/api/tickets", headers=alice).json()["items"]
    assert listed[0]["internal_notes"] == []

    notes = client.get(f"/api/tickets/{t['id']}", headers=agent).json()["internal_notes"]
    assert [n["content"] for n in notes] == ["Customer is on the old client"]


def test_customer_cannot_reassign_even_to_a_bad_assignee(api):
    client, ids = api
    alice = _auth(client, "alice")
    t = _create(client, alice, ids["company"])

    r = client.patch(f"/api/tickets/{t['id']}", json={"assignee_id": ids["bob"]}, headers=alice)
    assert r.status_code == 403

    manager = _auth(client, "manager")
    r = client.patch(f"/api/tickets/{t['id']}", json={"assignee_id": ids["bob"]}, headers=manager)
    assert r.status_code == 400


def test_stale_ticket_write_is_rejected(api):
    client, ids = api
    tid = _create(client, _auth(client, "alice"), ids["company"])["id"]

    async def race():
        async with AsyncSessionLocal() as first, AsyncSessionLocal() as second:
            mine = await first.get(Ticket, tid)
            theirs = await second.get(Ticket, tid)
            await second.commit()

            mine.title = "VPN is down for the whole floor"
            await first.commit()

            theirs.title = "VPN is fine again"
            with pytest.raises(StaleDataError):
                await second.commit()

    asyncio.run(race())

    async def stored_title():
        async with AsyncSessionLocal() as db:
            return (await db.get(Ticket, tid)).title

    assert asyncio.run(stored_title()) == "VPN is down for the whole floor"


def test_concurrent_patch_answers_conflict(api, monkeypatch):
    client, ids = api
    manager = _auth(client, "manager")
    tid = _create(client, _auth(client, "alice"), ids["company"])["id"]
    db_path = settings.database_url.split("///", 1)[1]
    apply_update = ticket_service.apply_update

    def update_while_someone_else_saves(ticket, *args, **kwargs):
        changes = apply_update(ticket, *args, **kwargs)
        with closing(sqlite3.connect(db_path)) as other:
            other.execute("UPDATE tickets SET version = version + 1 WHERE id = ?", (ticket.id,))
            other.commit()
        return changes

    monkeypatch.setattr(ticket_service, "apply_update", update_while_someone_else_saves)
    r = client.patch(f"/api/tickets/{tid}", json={"priority": "high"}, headers=manager)
    assert r.status_code == 409
    assert "modified concurrently" in r.json()["detail"]


def test_ticket_number_collision_falls_back_to_timestamp(api, monkeypatch):
    client, ids = api
    alice = _auth(client, "alice")
    first = _create(client, alice, ids["company"])
    assert first["ticket_number"] == "TICKET-000001"

    async def stale_next_number(db):
        return "TICKET-000001"

    monkeypatch.setattr(numbering, "next_ticket_number", stale_next_number)
    second = _create(client, alice, ids["company"], title="Printer jammed")
    assert re.fullmatch(r"TICKET-\d{13,}", second["ticket_number"])
    assert client.get("/api/tickets", headers=alice).json()["total"] == 2


def test_upload_over_the_size_cap_is_rejected(api, monkeypatch):
    client, ids = api
    alice = _auth(client, "alice")
    t = _create(client, alice, ids["company"])
    monkeypatch.setattr(settings, "attachment_max_bytes", 16)

    r = client.post(
        f"/api/tickets/{t['id']}/attachments",
        files={"file": ("trace.log", b"x" * 64, "text/plain")},
        headers=alice,
    )
    assert r.status_code == 400

    r = client.post(
        f"/api/tickets/{t['id']}/attachments",
        files={"file": ("ok.txt", b"fits", "text/plain")},
        headers=alice,
    )
    assert r.status_code == 201, r.text
    assert r.json()["size"] == 4


def test_comment_with_attached_file(api):
    client, ids = api
    alice, agent = _auth(client, "alice"), _auth(client, "agent")
    t = _create(client, alice, ids["company"])

    r = client.post(
        f"/api/tickets/{t['id']}/comments/upload",
        data={"content": "Screenshot of the error"},
        files={"file": ("error.png", b"\x89PNG fake", "image/png")},
        headers=alice,
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["content"] == "Screenshot of the error"
    assert [a["original_name"] for a in body["attachments"]] == ["error.png"]
    assert body["attachments"][0]["mime_type"] == "image/png"

    r = client.post(
        f"/api/tickets/{t['id']}/comments/upload",
        data={"content": "Firewall logs", "is_internal": "true"},
        files={"file": ("fw.log", b"deny all", "text/plain")},
        headers=agent,
    )
    assert r.status_code == 201, r.text

    seen_by_alice = client.get(f"/api/comments/ticket/{t['id']}", headers=alice).json()
    internal = [c for c in seen_by_alice if c["is_internal"]]
    assert internal[0]["attachments"] == []

    r = client.post(
        f"/api/tickets/{t['id']}/comments/upload",
        data={"content": "no file this time"},
        headers=alice,
    )
    assert r.status_code == 201, r.text
    assert r.json()["attachments"] == []
