from datetime import timedelta

from conftest import make_ticket, make_user

from tenantdesk.db.models import RoleEnum
from tenantdesk.services.time_tracking import (
    active_time_entry,
    add_time_entry,
    start_time_tracking,
    stop_time_tracking,
)


def _assert_invariants(ticket):
    assert ticket.actual_time == sum(e.duration for e in ticket.time_entries)
    assert sum(1 for e in ticket.time_entries if e.is_active) <= 1


def test_start_closes_previous_entry(now):
    agent = make_user(RoleEnum.agent)
    t = make_ticket(make_user(), assignee=agent)

    first = start_time_tracking(t, agent.id, "triage", now=now)
    _assert_invariants(t)
    assert first.is_active and t.actual_time == 0

    second = start_time_tracking(t, agent.id, "fix", now=now + timedelta(minutes=30))
    _assert_invariants(t)
    assert not first.is_active
    assert first.duration == 30
    assert first.end_time == now + timedelta(minutes=30)
    assert active_time_entry(t) is second
    assert t.actual_time == 30

    stopped = stop_time_tracking(t, now=now + timedelta(minutes=45))
    _assert_invariants(t)
    assert stopped is second
    assert second.duration == 15
    assert t.actual_time == 45
    assert active_time_entry(t) is None


def test_stop_without_active_entry_is_noop(now):
    t = make_ticket(make_user())
    assert stop_time_tracking(t, now=now) is None
    assert t.time_entries == []
    assert t.actual_time == 0


def test_duration_rounds_half_minutes_up(now):
    agent = make_user(RoleEnum.agent)
    t = make_ticket(make_user())
    start_time_tracking(t, agent.id, "call", now=now)
    entry = stop_time_tracking(t, now=now + timedelta(seconds=90))
    assert entry.duration == 2
    _assert_invariants(t)


def test_manual_entries(now):
    agent = make_user(RoleEnum.agent)
    t = make_ticket(make_user())

    computed = add_time_entry(t, agent.id, "onsite", now, now + timedelta(hours=2))
    assert computed.duration == 120
    assert not computed.is_active

    explicit = add_time_entry(t, agent.id, "review", now, now + timedelta(hours=1), duration=20)
    assert explicit.duration == 20

    open_ended = add_time_entry(t, agent.id, "estimate", now)
    assert open_ended.duration == 0 and open_ended.end_time is None

    _assert_invariants(t)
    assert t.actual_time == 140


def test_manual_entry_does_not_touch_running_entry(now):
    agent = make_user(RoleEnum.agent)
    t = make_ticket(make_user())
    running = start_time_tracking(t, agent.id, "live", now=now)
    add_time_entry(t, agent.id, "earlier", now - timedelta(hours=1), now - timedelta(minutes=30))
    assert running.is_active
    _assert_invariants(t)
    assert t.actual_time == 30
