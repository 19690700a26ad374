from itertools import product
from types import SimpleNamespace

import pytest

from tenantdesk.core.errors import UnknownRoleError
from tenantdesk.db.models import RoleEnum, TicketStatusEnum as S
from tenantdesk.policy import (
    can_close,
    can_comment,
    can_edit,
    can_post_internal,
    can_request_reopen,
    can_see_internal,
    can_view,
    is_staff,
)

ACTOR = 7
OTHER = 8
ACTIVE = {S.open, S.in_progress}


def expected(action, role, assigned, reporter, status):
    active = status in ACTIVE
    if action == "reopen":
        return role is RoleEnum.user and reporter and status is S.closed
    if role in (RoleEnum.admin, RoleEnum.manager):
        return True
    if role is RoleEnum.agent:
        if action == "close":
            return assigned
        return assigned or active
    # plain user
    if action == "view":
        return reporter
    if action == "edit":
        return False
    if action == "close":
        return reporter and active
    if action == "comment":
        return reporter and status is not S.resolved
    raise AssertionError(action)


PREDICATES = {
    "view": can_view,
    "edit": can_edit,
    "close": can_close,
    "comment": can_comment,
    "reopen": can_request_reopen,
}

CASES = list(product(PREDICATES, RoleEnum, [True, False], [True, False], S))


@pytest.mark.parametrize("action,role,assigned,reporter,status", CASES)
def test_access_table(action, role, assigned, reporter, status):
    ticket = SimpleNamespace(
        reporter_id=ACTOR if reporter else OTHER,
        assignee_id=ACTOR if assigned else None,
        status=status,
    )
    assert PREDICATES[action](ACTOR, role, ticket) is expected(action, role, assigned, reporter, status)


def test_role_strings_are_accepted():
    ticket = SimpleNamespace(reporter_id=ACTOR, assignee_id=None, status=S.closed)
    assert can_request_reopen(ACTOR, "user", ticket)
    assert not can_request_reopen(ACTOR, "agent", ticket)


@pytest.mark.parametrize("predicate", list(PREDICATES.values()))
def test_unknown_role_is_rejected(predicate):
    ticket = SimpleNamespace(reporter_id=ACTOR, assignee_id=ACTOR, status=S.open)
    with pytest.raises(UnknownRoleError):
        predicate(ACTOR, "superuser", ticket)


def test_unassigned_ticket_never_matches_assignee():
    ticket = SimpleNamespace(reporter_id=OTHER, assignee_id=None, status=S.resolved)
    assert not can_close(ACTOR, RoleEnum.agent, ticket)
    assert not can_view(ACTOR, RoleEnum.agent, ticket)


def test_internal_visibility_is_staff_only():
    for role in RoleEnum:
        staff = role is not RoleEnum.user
        assert is_staff(role) is staff
        assert can_post_internal(role) is staff
        assert can_see_internal(role) is staff
