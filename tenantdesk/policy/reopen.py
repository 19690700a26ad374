from __future__ import annotations

from tenantdesk.db.models import RoleEnum, TicketStatusEnum
from tenantdesk.policy.common import TicketLike, coerce_role, is_reporter, unhandled_role


def can_request_reopen(actor_id: int, role, ticket: TicketLike) -> bool:
    """Only the reporting customer asks for a reopen; staff review requests instead."""
    role = coerce_role(role)
    if role is RoleEnum.admin or role is RoleEnum.manager or role is RoleEnum.agent:
        return False
    if role is RoleEnum.user:
        return is_reporter(actor_id, ticket) and ticket.status == TicketStatusEnum.closed
    raise unhandled_role(role)
