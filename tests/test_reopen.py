import pytest
from conftest import make_ticket, make_user

from tenantdesk.core.errors import Forbidden, InvalidState, NotFound
from tenantdesk.db.models import ActivityActionEnum as A, ReopenStatusEnum, RoleEnum, TicketStatusEnum as S
from tenantdesk.services.tickets import apply_update
from tenantdesk.services.reopen import (
    approve_reopen,
    find_reopen_request,
    pending_requests,
    reject_reopen,
    request_reopen,
)


def _requested(now, status=S.closed):
    reporter = make_user()
    t = make_ticket(reporter, status=status)
    req = request_reopen(t, reporter.id, reporter.role, "  Still broken after the fix  ", now)
    req.id = 1
    return t, reporter, req


def test_request_appends_pending_entry(now):
    t, reporter, req = _requested(now)
    assert req.status == ReopenStatusEnum.pending
    assert req.reason == "Still broken after the fix"
    assert req.requested_by_id == reporter.id
    assert pending_requests(t) == [req]
    assert t.activity_log[-1].action == A.reopen_requested


@pytest.mark.parametrize("status", [S.open, S.in_progress, S.resolved])
def test_request_needs_closed_ticket(now, status):
    with pytest.raises(Forbidden):
        _requested(now, status=status)


def test_request_on_someone_elses_ticket(now):
    t = make_ticket(make_user(), status=S.closed)
    stranger = make_user()
    with pytest.raises(Forbidden):
        request_reopen(t, stranger.id, stranger.role, "Same thing happens to me", now)


def test_staff_cannot_request(now):
    t = make_ticket(make_user(), status=S.closed)
    manager = make_user(RoleEnum.manager)
    with pytest.raises(Forbidden):
        request_reopen(t, manager.id, manager.role, "Reopening for the customer", now)


def test_approve_reopens_and_notifies(now, sink):
    t, reporter, req = _requested(now)
    admin = make_user(RoleEnum.admin)
    entries_before = len(t.activity_log)

    approve_reopen(t, admin.id, req.id, "Looking again", sink, now)

    assert req.status == ReopenStatusEnum.approved
    assert req.reviewed_by_id == admin.id
    assert req.review_note == "Looking again"
    assert req.reviewed_at == now
    assert t.status == S.open
    assert t.sla_end_time is None
    assert len(t.activity_log) == entries_before + 1
    assert t.activity_log[-1].action == A.reopened
    assert [n["type"] for n in sink.to(reporter.id)] == ["ticket_reopened"]


def test_reject_leaves_ticket_closed(now, sink):
    t, reporter, req = _requested(now)
    reject_reopen(t, make_user(RoleEnum.admin).id, req.id, None, sink, now)
    assert req.status == ReopenStatusEnum.rejected
    assert req.review_note is None
    assert t.status == S.closed
    assert [n["type"] for n in sink.to(reporter.id)] == ["reopen_rejected"]


@pytest.mark.parametrize("first,second", [
    (approve_reopen, approve_reopen),
    (approve_reopen, reject_reopen),
    (reject_reopen, approve_reopen),
    (reject_reopen, reject_reopen),
])
def test_decided_request_cannot_be_decided_again(now, sink, first, second):
    t, _, req = _requested(now)
    admin = make_user(RoleEnum.admin)
    first(t, admin.id, req.id, None, sink, now)
    decided = req.status
    with pytest.raises(InvalidState):
        second(t, admin.id, req.id, None, sink, now)
    assert req.status == decided


def test_unknown_request_id(now, sink):
    t, _, _ = _requested(now)
    with pytest.raises(NotFound):
        find_reopen_request(t, 999)
    with pytest.raises(NotFound):
        approve_reopen(t, make_user(RoleEnum.admin).id, 999, None, sink, now)


def test_approve_after_ticket_moved_on(now, sink):
    t, _, req = _requested(now)
    admin = make_user(RoleEnum.admin)
    apply_update(t, admin, sink, status=S.open, now=now)
    apply_update(t, admin, sink, status=S.resolved, now=now)

    with pytest.raises(InvalidState):
        approve_reopen(t, admin.id, req.id, "Late approval", sink, now)
    assert t.status == S.resolved
    assert req.status == ReopenStatusEnum.pending


def test_only_one_pending_request_per_ticket(now):
    t, reporter, _ = _requested(now)
    with pytest.raises(InvalidState):
        request_reopen(t, reporter.id, reporter.role, "Asking again", now)
    assert len(pending_requests(t)) == 1
