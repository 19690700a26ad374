"""
Tickets service (ticket lifecycle rules).

The state machine and the bookkeeping of every transition live here:
activity log, synthetic "System Update" comments, SLA freeze/restart,
escalation, watchers and internal notes. Routers load the aggregate, call
these functions, then commit; authorization is checked through
``tenantdesk.policy`` before anything is mutated.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Set

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.config import settings
from tenantdesk.core.errors import Forbidden, InvalidState, NotFound, ValidationFailure
from tenantdesk.db.models import (
    ACTIVE_STATUSES,
    FINAL_STATUSES,
    STAFF_ROLES,
    ActivityActionEnum,
    ActivityLogEntry,
    CategoryEnum,
    Comment,
    Company,
    EscalationRecord,
    InternalNote,
    PriorityEnum,
    RoleEnum,
    SlaTypeEnum,
    Ticket,
    TicketStatusEnum as Status,
    TicketWatcher,
    User,
)
from tenantdesk.policy import can_close, can_edit, is_staff
from tenantdesk.services import numbering
from tenantdesk.services.notifications import NotificationSink
from tenantdesk.services.sla import freeze_sla, restart_sla
from tenantdesk.utils.time import utc_now

log = logging.getLogger(__name__)

# Allowed transitions (state machine)
ALLOWED_TRANSITIONS: dict[Status, Set[Status]] = {
    Status.open: {Status.in_progress, Status.resolved, Status.closed},
    Status.in_progress: {Status.open, Status.resolved, Status.closed},
    Status.resolved: {Status.in_progress, Status.closed},
    Status.closed: {Status.open},  # admin override; customers go through reopen requests
}

SYSTEM_PREFIX = "**System Update:** "


def can_transition(src: Status, dst: Status) -> bool:
    return dst in ALLOWED_TRANSITIONS.get(src, set())


def can_delete(role) -> bool:
    return role in {RoleEnum.admin, RoleEnum.manager}


def log_activity(
    ticket: Ticket,
    action: ActivityActionEnum,
    user_id: Optional[int],
    details: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    ticket.activity_log.append(
        ActivityLogEntry(action=action, user_id=user_id, details=details, created_at=now or utc_now())
    )


def system_comment(ticket: Ticket, author_id: Optional[int], changes: Iterable[str]) -> Comment:
    """Synthetic, public comment describing what just changed."""
    now = utc_now()
    return Comment(
        ticket_id=ticket.id,
        author_id=author_id,
        content=SYSTEM_PREFIX + ", ".join(changes),
        is_internal=False,
        is_system=True,
        attachments=[],
        created_at=now,
        updated_at=now,
    )


def _display(user: Optional[User]) -> str:
    if user is None:
        return "Unknown"
    return user.full_name or user.email


def _value(v) -> str:
    return getattr(v, "value", str(v))


# ---------- creation ----------


def build_ticket(
    *,
    ticket_number: str,
    title: str,
    description: str,
    reporter_id: int,
    company_id: int,
    priority: PriorityEnum = PriorityEnum.medium,
    category: CategoryEnum = CategoryEnum.general,
    assignee_id: Optional[int] = None,
    estimated_time: int = 0,
    due_date: Optional[datetime] = None,
    tags: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> Ticket:
    """A fully initialised, not yet persisted ticket in its initial state."""
    now = now or utc_now()
    t = Ticket(
        ticket_number=ticket_number,
        title=title.strip(),
        description=description.strip(),
        status=Status.open,
        priority=priority,
        category=category,
        reporter_id=reporter_id,
        assignee_id=assignee_id,
        company_id=company_id,
        estimated_time=estimated_time,
        actual_time=0,
        sla_type=SlaTypeEnum.resolution,
        sla_target_hours=settings.sla_default_target_hours,
        sla_start_time=now,
        sla_end_time=None,
        sla_is_breached=False,
        escalation_level=0,
        due_date=due_date,
        tags=list(tags or []),
        custom_fields=[],
        related_ticket_ids=[],
        attachments=[],
        time_entries=[],
        escalation_history=[],
        reopen_requests=[],
        internal_notes=[],
        watchers=[],
        activity_log=[],
        created_at=now,
        updated_at=now,
    )
    log_activity(t, ActivityActionEnum.created, reporter_id, "Ticket created", now)
    return t


def check_create_allowed(
    actor: User,
    company: Optional[Company],
    assignee: Optional[User],
    assignee_requested: bool,
) -> None:
    if company is None:
        raise NotFound("Company not found")
    if assignee_requested:
        if actor.role not in {RoleEnum.admin, RoleEnum.manager}:
            raise Forbidden("Only admins and managers can assign tickets to others")
        if assignee is None or assignee.role not in STAFF_ROLES:
            raise ValidationFailure("Invalid assignee")
    if actor.role != RoleEnum.admin:
        if actor.company_id is None:
            raise Forbidden("You must be associated with a company to create tickets")
        if actor.company_id != company.id:
            raise Forbidden("You can only create tickets for your own company")


@dataclass
class NewTicket:
    title: str
    description: str
    company_id: int
    priority: PriorityEnum = PriorityEnum.medium
    category: CategoryEnum = CategoryEnum.general
    assignee_id: Optional[int] = None
    estimated_time: int = 0
    due_date: Optional[datetime] = None
    tags: list[str] = field(default_factory=list)


async def create_ticket(
    db: AsyncSession,
    actor: User,
    data: NewTicket,
    sink: NotificationSink,
) -> Ticket:
    company = await db.get(Company, data.company_id)
    assignee = await db.get(User, data.assignee_id) if data.assignee_id is not None else None
    check_create_allowed(actor, company, assignee, data.assignee_id is not None)

    number = await numbering.next_ticket_number(db)
    t: Optional[Ticket] = None
    for attempt in range(2):
        t = build_ticket(
            ticket_number=number,
            title=data.title,
            description=data.description,
            reporter_id=actor.id,
            company_id=company.id,
            priority=data.priority,
            category=data.category,
            assignee_id=data.assignee_id,
            estimated_time=data.estimated_time,
            due_date=data.due_date,
            tags=data.tags,
        )
        try:
            async with db.begin_nested():
                db.add(t)
                await db.flush()
            break
        except IntegrityError:
            if attempt:
                raise
            number = numbering.fallback_ticket_number()
            log.warning("ticket_number_collision", extra={"ticket_number": number})

    db.add(Comment(
        ticket_id=t.id,
        author_id=actor.id,
        content=f"**Ticket Created:** Ticket created by {_display(actor)}",
        is_internal=False,
        is_system=True,
        attachments=[],
    ))

    if assignee is not None:
        sink.notify(
            assignee.id,
            "ticket_assigned",
            "New ticket assigned",
            f"You have been assigned to ticket {t.ticket_number}",
            {"ticket_id": t.id},
        )

    log.info("ticket_created", extra={"ticket_id": t.id, "ticket_number": t.ticket_number})
    return t


# ---------- updates ----------


_UNSET = object()


def apply_update(
    ticket: Ticket,
    actor: User,
    sink: NotificationSink,
    *,
    status: Optional[Status] = None,
    priority: Optional[PriorityEnum] = None,
    category: Optional[CategoryEnum] = None,
    assignee: object = _UNSET,
    now: Optional[datetime] = None,
) -> list[str]:
    """
    Applies a partial update and returns the human-readable change list.

    A status change is policed by the close rule, any other field by the edit
    rule. ``assignee`` is a staff User, None to unassign, or left unset.
    Assignee validation (must exist, must be staff) is the caller's job.
    """
    now = now or utc_now()
    assignee_given = assignee is not _UNSET
    other_given = priority is not None or category is not None or assignee_given

    if status is not None and not can_close(actor.id, actor.role, ticket):
        raise Forbidden("Not authorized to change ticket status")
    if other_given and not can_edit(actor.id, actor.role, ticket):
        raise Forbidden("Not authorized to edit this ticket")

    changes: list[str] = []

    if status is not None and status != ticket.status:
        _change_status(ticket, actor, status, sink, now, changes)

    if priority is not None and priority != ticket.priority:
        changes.append(f"Priority changed from {_value(ticket.priority)} to {_value(priority)}")
        ticket.priority = priority
        log_activity(ticket, ActivityActionEnum.updated, actor.id, changes[-1], now)

    if category is not None and category != ticket.category:
        changes.append(f"Category changed from {_value(ticket.category)} to {_value(category)}")
        ticket.category = category
        log_activity(ticket, ActivityActionEnum.updated, actor.id, changes[-1], now)

    if assignee_given:
        new_id = assignee.id if assignee is not None else None
        if new_id != ticket.assignee_id:
            ticket.assignee_id = new_id
            if assignee is not None:
                changes.append(f"Ticket assigned to {_display(assignee)}")
                sink.notify(
                    assignee.id,
                    "ticket_assigned",
                    "Ticket assigned to you",
                    f"You have been assigned to ticket {ticket.ticket_number}",
                    {"ticket_id": ticket.id},
                )
            else:
                changes.append("Ticket unassigned")
            log_activity(ticket, ActivityActionEnum.assigned, actor.id, changes[-1], now)

    if changes:
        ticket.updated_at = now
    return changes


def _change_status(
    ticket: Ticket,
    actor: User,
    new_status: Status,
    sink: NotificationSink,
    now: datetime,
    changes: list[str],
) -> None:
    old = ticket.status
    if not can_transition(old, new_status):
        raise InvalidState(f"Illegal status transition: {_value(old)} -> {_value(new_status)}")
    if old == Status.closed and actor.role != RoleEnum.admin:
        raise Forbidden("Closed tickets are reopened through a reopen request")

    ticket.status = new_status
    changes.append(f"Status changed from {_value(old)} to {_value(new_status)}")

    if new_status in FINAL_STATUSES:
        changes.append(f"Ticket {_value(new_status)} by {_display(actor)}")
        if old in ACTIVE_STATUSES:
            freeze_sla(ticket, now)
        if new_status == Status.resolved:
            ticket.resolved_by_id = actor.id
            ticket.resolved_at = now
    elif old in FINAL_STATUSES:
        restart_sla(ticket, now)

    if new_status == Status.closed:
        action = ActivityActionEnum.closed
    elif old == Status.closed:
        action = ActivityActionEnum.reopened
    else:
        action = ActivityActionEnum.status_changed
    log_activity(ticket, action, actor.id, changes[0], now)

    for watcher_id in ticket.watcher_ids:
        if watcher_id == actor.id:
            continue
        sink.notify(
            watcher_id,
            "ticket_status_changed",
            "Watched ticket updated",
            f"Ticket {ticket.ticket_number} changed from {_value(old)} to {_value(new_status)}",
            {"ticket_id": ticket.id},
        )


def auto_progress_on_staff_reply(ticket: Ticket, actor: User, now: Optional[datetime] = None) -> Optional[Comment]:
    """
    The first staff reply on an open ticket moves it to in_progress.
    Returns the synthetic status comment to persist, or None.
    """
    if ticket.status != Status.open or not is_staff(actor.role):
        return None
    now = now or utc_now()
    ticket.status = Status.in_progress
    ticket.updated_at = now
    log_activity(ticket, ActivityActionEnum.status_changed, actor.id, "Status changed from open to in_progress", now)
    return system_comment(ticket, actor.id, ["Status changed from open to in_progress"])


# ---------- escalation / watchers / notes ----------


def escalate(
    ticket: Ticket,
    actor: User,
    target: Optional[User],
    reason: str,
    sink: NotificationSink,
    now: Optional[datetime] = None,
) -> EscalationRecord:
    if not is_staff(actor.role):
        raise Forbidden("Only staff can escalate tickets")
    if target is None or target.role not in STAFF_ROLES:
        raise ValidationFailure("Invalid user for escalation")

    now = now or utc_now()
    ticket.escalation_level = (ticket.escalation_level or 0) + 1
    ticket.escalated_to_id = target.id
    record = EscalationRecord(
        level=ticket.escalation_level,
        escalated_to_id=target.id,
        reason=reason,
        created_at=now,
    )
    ticket.escalation_history.append(record)
    ticket.updated_at = now

    sink.notify(
        target.id,
        "ticket_escalated",
        "Ticket escalated to you",
        f"Ticket {ticket.ticket_number} has been escalated to you",
        {"ticket_id": ticket.id, "level": ticket.escalation_level},
    )
    log.info("ticket_escalated", extra={"ticket_id": ticket.id, "level": ticket.escalation_level})
    return record


def add_watcher(ticket: Ticket, user_id: int) -> bool:
    """Returns False when the user already watches the ticket."""
    if user_id in ticket.watcher_ids:
        return False
    ticket.watchers.append(TicketWatcher(user_id=user_id, created_at=utc_now()))
    ticket.updated_at = utc_now()
    return True


def remove_watcher(ticket: Ticket, user_id: int) -> bool:
    for w in list(ticket.watchers):
        if w.user_id == user_id:
            ticket.watchers.remove(w)
            ticket.updated_at = utc_now()
            return True
    return False


def add_internal_note(ticket: Ticket, actor: User, content: str, now: Optional[datetime] = None) -> InternalNote:
    if not is_staff(actor.role):
        raise Forbidden("Only staff can add internal notes")
    now = now or utc_now()
    note = InternalNote(author_id=actor.id, content=content.strip(), created_at=now)
    ticket.internal_notes.append(note)
    ticket.updated_at = now
    return note


# ---------- deletion ----------


async def delete_ticket(db: AsyncSession, ticket: Ticket, actor: User) -> None:
    """Irreversible. Embedded rows go with the ticket, comments are removed explicitly."""
    if not can_delete(actor.role):
        raise Forbidden("Only admins and managers can delete tickets")
    await db.execute(delete(Comment).where(Comment.ticket_id == ticket.id))
    await db.delete(ticket)
    await db.commit()
    log.info("ticket_deleted", extra={"ticket_id": ticket.id, "actor_id": actor.id})
