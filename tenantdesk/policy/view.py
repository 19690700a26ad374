from __future__ import annotations

from sqlalchemy import or_, true

from tenantdesk.db.models import ACTIVE_STATUSES, RoleEnum, Ticket
from tenantdesk.policy.common import (
    TicketLike,
    coerce_role,
    is_active,
    is_assignee,
    is_reporter,
    unhandled_role,
)


def can_view(actor_id: int, role, ticket: TicketLike) -> bool:
    """
    admin/manager: always;
    agent: assigned to the ticket or the ticket is open/in_progress;
    user: own tickets, whatever the status.
    """
    role = coerce_role(role)
    if role is RoleEnum.admin or role is RoleEnum.manager:
        return True
    if role is RoleEnum.agent:
        return is_assignee(actor_id, ticket) or is_active(ticket)
    if role is RoleEnum.user:
        return is_reporter(actor_id, ticket)
    raise unhandled_role(role)


def visible_tickets_condition(actor_id: int, role):
    """can_view expressed as a WHERE clause for list queries."""
    role = coerce_role(role)
    if role is RoleEnum.admin or role is RoleEnum.manager:
        return true()
    if role is RoleEnum.agent:
        return or_(
            Ticket.assignee_id == actor_id,
            Ticket.status.in_(list(ACTIVE_STATUSES)),
        )
    if role is RoleEnum.user:
        return Ticket.reporter_id == actor_id
    raise unhandled_role(role)
