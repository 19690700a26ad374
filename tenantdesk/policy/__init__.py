"""
Ticket access control.

Five independent predicates, one module each. Every predicate takes
(actor_id, role, ticket) and branches over all RoleEnum members.
"""
from tenantdesk.policy.close import can_close
from tenantdesk.policy.comment import can_comment, can_post_internal, can_see_internal
from tenantdesk.policy.common import coerce_role, is_staff
from tenantdesk.policy.edit import can_edit
from tenantdesk.policy.reopen import can_request_reopen
from tenantdesk.policy.view import can_view, visible_tickets_condition

__all__ = [
    "can_close",
    "can_comment",
    "can_edit",
    "can_post_internal",
    "can_request_reopen",
    "can_see_internal",
    "can_view",
    "coerce_role",
    "is_staff",
    "visible_tickets_condition",
]
