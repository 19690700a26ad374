from __future__ import annotations

from tenantdesk.db.models import RoleEnum, TicketStatusEnum
from tenantdesk.policy.common import (
    TicketLike,
    coerce_role,
    is_active,
    is_assignee,
    is_reporter,
    is_staff,
    unhandled_role,
)


def can_comment(actor_id: int, role, ticket: TicketLike) -> bool:
    role = coerce_role(role)
    if role is RoleEnum.admin or role is RoleEnum.manager:
        return True
    if role is RoleEnum.agent:
        return is_assignee(actor_id, ticket) or is_active(ticket)
    if role is RoleEnum.user:
        # closed tickets still accept customer replies, resolved ones don't
        return is_reporter(actor_id, ticket) and ticket.status != TicketStatusEnum.resolved
    raise unhandled_role(role)


def can_post_internal(role) -> bool:
    return is_staff(role)


def can_see_internal(role) -> bool:
    return is_staff(role)
