"""
Reopen requests: a customer asks to unlock a closed ticket, staff decide.

Each request goes pending -> approved | rejected exactly once; deciding an
already decided request is an error, never a silent no-op.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from tenantdesk.core.errors import Forbidden, InvalidState, NotFound
from tenantdesk.db.models import (
    ActivityActionEnum,
    ReopenRequest,
    ReopenStatusEnum,
    Ticket,
    TicketStatusEnum,
)
from tenantdesk.policy import can_request_reopen
from tenantdesk.services.notifications import NotificationSink
from tenantdesk.services.sla import restart_sla
from tenantdesk.services.tickets import log_activity
from tenantdesk.utils.time import utc_now

log = logging.getLogger(__name__)


def find_reopen_request(ticket: Ticket, request_id: int) -> ReopenRequest:
    for r in ticket.reopen_requests:
        if r.id == request_id:
            return r
    raise NotFound("Reopen request not found")


def pending_requests(ticket: Ticket) -> list[ReopenRequest]:
    return [r for r in ticket.reopen_requests if r.status == ReopenStatusEnum.pending]


def request_reopen(
    ticket: Ticket,
    actor_id: int,
    role,
    reason: str,
    now: Optional[datetime] = None,
) -> ReopenRequest:
    if not can_request_reopen(actor_id, role, ticket):
        raise Forbidden("You cannot request reopen for this ticket")
    if pending_requests(ticket):
        raise InvalidState("A reopen request is already pending for this ticket")

    now = now or utc_now()
    req = ReopenRequest(
        requested_by_id=actor_id,
        reason=reason.strip(),
        status=ReopenStatusEnum.pending,
        requested_at=now,
    )
    ticket.reopen_requests.append(req)
    log_activity(ticket, ActivityActionEnum.reopen_requested, actor_id, f"Reopen requested: {req.reason}", now)
    ticket.updated_at = now
    return req


def _decide(
    ticket: Ticket,
    reviewer_id: int,
    request_id: int,
    note: Optional[str],
    outcome: ReopenStatusEnum,
    now: datetime,
) -> ReopenRequest:
    req = find_reopen_request(ticket, request_id)
    if req.status != ReopenStatusEnum.pending:
        raise InvalidState("Request already processed")
    req.status = outcome
    req.reviewed_by_id = reviewer_id
    req.review_note = note or None
    req.reviewed_at = now
    ticket.updated_at = now
    return req


def approve_reopen(
    ticket: Ticket,
    reviewer_id: int,
    request_id: int,
    note: Optional[str],
    sink: NotificationSink,
    now: Optional[datetime] = None,
) -> ReopenRequest:
    now = now or utc_now()
    pending = find_reopen_request(ticket, request_id)
    if pending.status == ReopenStatusEnum.pending and ticket.status != TicketStatusEnum.closed:
        raise InvalidState("Only closed tickets can be reopened")
    req = _decide(ticket, reviewer_id, request_id, note, ReopenStatusEnum.approved, now)

    ticket.status = TicketStatusEnum.open
    restart_sla(ticket, now)
    log_activity(ticket, ActivityActionEnum.reopened, reviewer_id, f"Ticket reopened by admin: {note or ''}", now)

    sink.notify(
        req.requested_by_id,
        "ticket_reopened",
        "Reopen Request Approved",
        f"Your request to reopen ticket #{ticket.ticket_number} has been approved."
        + (f" Note: {note}" if note else ""),
        {"ticket_id": ticket.id, "reopen_request_id": req.id},
    )
    log.info("reopen_approved", extra={"ticket_id": ticket.id, "reopen_request_id": req.id})
    return req


def reject_reopen(
    ticket: Ticket,
    reviewer_id: int,
    request_id: int,
    note: Optional[str],
    sink: NotificationSink,
    now: Optional[datetime] = None,
) -> ReopenRequest:
    now = now or utc_now()
    req = _decide(ticket, reviewer_id, request_id, note, ReopenStatusEnum.rejected, now)

    log_activity(ticket, ActivityActionEnum.status_changed, reviewer_id, f"Reopen request rejected: {note or ''}", now)

    sink.notify(
        req.requested_by_id,
        "reopen_rejected",
        "Reopen Request Rejected",
        f"Your request to reopen ticket #{ticket.ticket_number} has been rejected."
        + (f" Reason: {note}" if note else ""),
        {"ticket_id": ticket.id, "reopen_request_id": req.id},
    )
    log.info("reopen_rejected", extra={"ticket_id": ticket.id, "reopen_request_id": req.id})
    return req
