from __future__ import annotations

from tenantdesk.db.models import ACTIVE_STATUSES, RoleEnum
from tenantdesk.policy.common import (
    TicketLike,
    coerce_role,
    is_assignee,
    is_reporter,
    unhandled_role,
)


def can_close(actor_id: int, role, ticket: TicketLike) -> bool:
    """
    Governs every status change, not just closing:
    agents need to be the assignee, reporters may only act on open/in_progress tickets.
    """
    role = coerce_role(role)
    if role is RoleEnum.admin or role is RoleEnum.manager:
        return True
    if role is RoleEnum.agent:
        return is_assignee(actor_id, ticket)
    if role is RoleEnum.user:
        return is_reporter(actor_id, ticket) and ticket.status in ACTIVE_STATUSES
    raise unhandled_role(role)
