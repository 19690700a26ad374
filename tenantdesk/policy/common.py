"""Shared helpers for the ticket access predicates."""
from __future__ import annotations

from typing import Any, Protocol

from tenantdesk.core.errors import UnknownRoleError
from tenantdesk.db.models import ACTIVE_STATUSES, STAFF_ROLES, RoleEnum, TicketStatusEnum


class TicketLike(Protocol):
    reporter_id: int
    assignee_id: int | None
    status: TicketStatusEnum


def coerce_role(role: Any) -> RoleEnum:
    """Turns a role string/enum into RoleEnum; anything else is rejected loudly."""
    if isinstance(role, RoleEnum):
        return role
    try:
        return RoleEnum(getattr(role, "value", role))
    except ValueError:
        raise UnknownRoleError(f"Unknown role: {role!r}") from None


def unhandled_role(role: RoleEnum) -> UnknownRoleError:
    return UnknownRoleError(f"No policy branch for role: {role!r}")


def is_staff(role: Any) -> bool:
    return coerce_role(role) in STAFF_ROLES


def is_active(ticket: TicketLike) -> bool:
    return ticket.status in ACTIVE_STATUSES


def is_reporter(actor_id: int, ticket: TicketLike) -> bool:
    return ticket.reporter_id is not None and ticket.reporter_id == actor_id


def is_assignee(actor_id: int, ticket: TicketLike) -> bool:
    return ticket.assignee_id is not None and ticket.assignee_id == actor_id
