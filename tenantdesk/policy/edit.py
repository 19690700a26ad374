from __future__ import annotations

from tenantdesk.db.models import RoleEnum
from tenantdesk.policy.common import (
    TicketLike,
    coerce_role,
    is_active,
    is_assignee,
    unhandled_role,
)


def can_edit(actor_id: int, role, ticket: TicketLike) -> bool:
    """Priority / category / assignee changes. Customers never edit, they can only close."""
    role = coerce_role(role)
    if role is RoleEnum.admin or role is RoleEnum.manager:
        return True
    if role is RoleEnum.agent:
        return is_assignee(actor_id, ticket) or is_active(ticket)
    if role is RoleEnum.user:
        return False
    raise unhandled_role(role)
