from datetime import timedelta

from conftest import make_ticket, make_user

from tenantdesk.db.models import RoleEnum, TicketStatusEnum as S
from tenantdesk.services.sla import freeze_sla, refresh_sla, restart_sla
from tenantdesk.services.tickets import apply_update


def test_breach_is_derived_on_read(now, hours_ago):
    t = make_ticket(make_user(), now=hours_ago(25))
    assert t.sla_target_hours == 24
    assert t.sla_is_breached is False
    assert refresh_sla(t, now) is True
    assert t.sla_is_breached is True


def test_within_target_is_not_breached(now, hours_ago):
    t = make_ticket(make_user(), now=hours_ago(23))
    assert refresh_sla(t, now) is False


def test_resolving_freezes_and_forgives(now, hours_ago, sink):
    admin = make_user(RoleEnum.admin)
    t = make_ticket(make_user(), now=hours_ago(25))
    refresh_sla(t, now)

    apply_update(t, admin, sink, status=S.resolved, now=now)
    assert t.sla_is_breached is False
    assert t.sla_end_time == now

    # stays frozen no matter how much later it is read
    assert refresh_sla(t, now + timedelta(days=30)) is False
    assert t.sla_is_breached is False


def test_freeze_without_forgiveness_keeps_breach(now, hours_ago):
    t = make_ticket(make_user(), now=hours_ago(25))
    freeze_sla(t, now, forgive=False)
    assert t.sla_is_breached is True
    t.status = S.closed
    assert refresh_sla(t, now + timedelta(days=1)) is True


def test_reopen_resumes_tracking_from_original_start(now, hours_ago, sink):
    admin = make_user(RoleEnum.admin)
    t = make_ticket(make_user(), now=hours_ago(25))
    apply_update(t, admin, sink, status=S.closed, now=hours_ago(20))
    assert t.sla_is_breached is False

    apply_update(t, admin, sink, status=S.open, now=now)
    assert t.sla_end_time is None
    assert t.sla_is_breached is True


def test_restart_sla_clears_end_time(now, hours_ago):
    t = make_ticket(make_user(), now=hours_ago(1))
    freeze_sla(t, now)
    t.status = S.open
    restart_sla(t, now)
    assert t.sla_end_time is None
    assert t.sla_is_breached is False
