# tenantdesk/api/routes/tickets.py
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import Response
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.api.deps import DBDep, SinkDep, UserDep, load_ticket, require_admin, require_premium, require_role
from tenantdesk.core.errors import DomainError, Forbidden, NotFound, ValidationFailure
from tenantdesk.db.models import (
    STAFF_ROLES,
    CategoryEnum,
    PriorityEnum as Priority,
    ReopenRequest,
    ReopenStatusEnum,
    RoleEnum,
    Ticket,
    TicketStatusEnum as Status,
    User,
)
from tenantdesk.policy import can_close, can_edit, can_see_internal, can_view, visible_tickets_condition
from tenantdesk.schemas.comments import CommentCreate, CommentOut
from tenantdesk.schemas.tickets import (
    EscalateIn,
    InternalNoteIn,
    InternalNoteOut,
    PendingReopenOut,
    ReopenDecisionIn,
    ReopenRequestIn,
    ReopenRequestOut,
    TicketCreate,
    TicketOut,
    TicketsPage,
    TicketUpdate,
    TimeEntryCreate,
    TimeEntryOut,
    TrackingStart,
)
from tenantdesk.services import comments as comment_service
from tenantdesk.services import reopen as reopen_service
from tenantdesk.services import tickets as ticket_service
from tenantdesk.services import time_tracking
from tenantdesk.services.blobstore import LocalBlobStore
from tenantdesk.services.companies import refresh_stats_for
from tenantdesk.services.notifications import OutboxNotificationSink
from tenantdesk.services.sla import refresh_sla

log = logging.getLogger(__name__)

router = APIRouter()

ReviewerDep = Depends(require_role(RoleEnum.admin, RoleEnum.manager))


def ticket_out(t: Ticket, viewer_role) -> TicketOut:
    data: dict[str, Any] = {
        c: getattr(t, c)
        for c in TicketOut.model_fields
        if c not in {"sla", "watchers", "internal_notes"}
    }
    data["internal_notes"] = t.internal_notes if can_see_internal(viewer_role) else []
    data["sla"] = {
        "type": t.sla_type,
        "target_hours": t.sla_target_hours,
        "start_time": t.sla_start_time,
        "end_time": t.sla_end_time,
        "is_breached": t.sla_is_breached,
    }
    data["watchers"] = t.watcher_ids
    return TicketOut.model_validate(data, from_attributes=True)


async def _refresh_sla(db: AsyncSession, tickets: list[Ticket]) -> None:
    """Breach flags are derived on read; flips are written back."""
    changed = False
    for t in tickets:
        before = t.sla_is_breached
        if refresh_sla(t) != before:
            changed = True
    if changed:
        await db.commit()


async def _viewable(db: AsyncSession, ticket_id: int, current: User) -> Ticket:
    t = await load_ticket(db, ticket_id)
    if not can_view(current.id, current.role, t):
        raise Forbidden("Access denied")
    return t


async def _commit(db: AsyncSession, sink: OutboxNotificationSink) -> None:
    await db.commit()
    sink.publish()


# ---------- collection ----------


@router.get("", response_model=TicketsPage)
async def list_tickets(
    db: DBDep,
    current: UserDep,
    status_: Status | None = Query(default=None, alias="status"),
    priority: Priority | None = None,
    category: CategoryEnum | None = None,
    assignee_id: int | None = None,
    company_id: int | None = None,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    q = select(Ticket).where(visible_tickets_condition(current.id, current.role))
    if status_:
        q = q.where(Ticket.status == status_)
    if priority:
        q = q.where(Ticket.priority == priority)
    if category:
        q = q.where(Ticket.category == category)
    if assignee_id is not None:
        q = q.where(Ticket.assignee_id == assignee_id)
    if company_id is not None:
        q = q.where(Ticket.company_id == company_id)
    if search:
        like = f"%{search}%"
        q = q.where(or_(
            Ticket.title.ilike(like),
            Ticket.description.ilike(like),
            Ticket.ticket_number.ilike(like),
        ))

    total = (await db.execute(select(func.count()).select_from(q.subquery()))).scalar_one()
    q = q.order_by(Ticket.created_at.desc(), Ticket.id.desc()).limit(limit).offset((page - 1) * limit)
    rows = list((await db.execute(q)).scalars().all())
    await _refresh_sla(db, rows)
    return {"items": [ticket_out(t, current.role) for t in rows], "total": total, "page": page, "limit": limit}


@router.post("", response_model=TicketOut, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketCreate, db: DBDep, current: UserDep, sink: SinkDep):
    t = await ticket_service.create_ticket(
        db,
        current,
        ticket_service.NewTicket(**payload.model_dump()),
        sink,
    )
    await refresh_stats_for(db, t.company_id)
    await _commit(db, sink)
    return ticket_out(t, current.role)


# ---------- global reopen queue (admin) ----------
# declared before /{ticket_id} so the literal path wins


@router.get("/reopen-requests/all", response_model=list[PendingReopenOut], dependencies=[Depends(require_admin())])
async def all_pending_reopen_requests(db: DBDep):
    q = (
        select(ReopenRequest, Ticket)
        .join(Ticket, Ticket.id == ReopenRequest.ticket_id)
        .where(ReopenRequest.status == ReopenStatusEnum.pending)
        .order_by(ReopenRequest.requested_at.desc())
    )
    rows = (await db.execute(q)).all()
    return [
        {
            "ticket_id": t.id,
            "ticket_number": t.ticket_number,
            "title": t.title,
            "request": ReopenRequestOut.model_validate(r),
        }
        for r, t in rows
    ]


async def _ticket_for_request(db: AsyncSession, request_id: int) -> Ticket:
    req = await db.get(ReopenRequest, request_id)
    if req is None:
        raise NotFound("Reopen request not found")
    return await load_ticket(db, req.ticket_id)


@router.put("/reopen-request/{request_id}/approve", response_model=TicketOut, dependencies=[Depends(require_admin())])
async def approve_reopen_global(request_id: int, payload: ReopenDecisionIn, db: DBDep, current: UserDep, sink: SinkDep):
    t = await _ticket_for_request(db, request_id)
    reopen_service.approve_reopen(t, current.id, request_id, payload.review_note, sink)
    await _commit(db, sink)
    return ticket_out(t, current.role)


@router.put("/reopen-request/{request_id}/reject", response_model=TicketOut, dependencies=[Depends(require_admin())])
async def reject_reopen_global(request_id: int, payload: ReopenDecisionIn, db: DBDep, current: UserDep, sink: SinkDep):
    t = await _ticket_for_request(db, request_id)
    reopen_service.reject_reopen(t, current.id, request_id, payload.review_note, sink)
    await _commit(db, sink)
    return ticket_out(t, current.role)


# ---------- single ticket ----------


@router.get("/{ticket_id}", response_model=TicketOut)
async def get_ticket(ticket_id: int, db: DBDep, current: UserDep):
    t = await _viewable(db, ticket_id, current)
    await _refresh_sla(db, [t])
    return ticket_out(t, current.role)


@router.patch("/{ticket_id}", response_model=TicketOut)
async def patch_ticket(ticket_id: int, payload: TicketUpdate, db: DBDep, current: UserDep, sink: SinkDep):
    t = await load_ticket(db, ticket_id)
    if not can_view(current.id, current.role, t):
        raise Forbidden("Access denied")

    kwargs: dict[str, Any] = {
        "status": payload.status,
        "priority": payload.priority,
        "category": payload.category,
    }
    if "assignee_id" in payload.model_fields_set:
        if not can_edit(current.id, current.role, t):
            raise Forbidden("Not authorized to edit this ticket")
        assignee = None
        if payload.assignee_id is not None:
            assignee = await db.get(User, payload.assignee_id)
            if assignee is None or assignee.role not in STAFF_ROLES:
                raise ValidationFailure("Invalid assignee")
        kwargs["assignee"] = assignee

    if payload.resolution_description is not None:
        if not can_close(current.id, current.role, t):
            raise Forbidden("Not authorized to change ticket status")
        t.resolution_description = payload.resolution_description

    changes = ticket_service.apply_update(t, current, sink, **kwargs)
    if changes:
        db.add(ticket_service.system_comment(t, current.id, changes))
        log.info("ticket_updated", extra={"ticket_id": t.id, "changes": changes})
    if payload.status is not None:
        await refresh_stats_for(db, t.company_id)
    await _commit(db, sink)
    return ticket_out(t, current.role)


@router.delete("/{ticket_id}", status_code=204)
async def delete_ticket(ticket_id: int, db: DBDep, current: UserDep):
    t = await load_ticket(db, ticket_id)
    company_id = t.company_id
    stored = [a.get("filename") for a in (t.attachments or []) if a.get("filename")]
    await ticket_service.delete_ticket(db, t, current)
    await refresh_stats_for(db, company_id)
    await db.commit()

    blobs = LocalBlobStore()
    for name in stored:
        blobs.delete(name)
    return Response(status_code=204)


# ---------- attachments ----------


async def _store_upload(file: UploadFile, store: LocalBlobStore, current: User) -> dict:
    # one byte past the cap is enough for save() to reject the file
    data = await file.read(store.max_bytes + 1)
    if not data:
        raise ValidationFailure("No file uploaded")
    blob = store.save(file.filename, data)
    return {
        "filename": blob.filename,
        "original_name": blob.original_name,
        "mime_type": file.content_type or "application/octet-stream",
        "size": blob.size,
        "url": blob.url,
        "uploaded_by": current.id,
    }


@router.post("/{ticket_id}/attachments", status_code=status.HTTP_201_CREATED)
async def upload_attachment(ticket_id: int, db: DBDep, current: UserDep, file: UploadFile = File(...)):
    t = await _viewable(db, ticket_id, current)
    meta = await _store_upload(file, LocalBlobStore(), current)
    # JSON column: assign a new list so the change is detected
    t.attachments = [*(t.attachments or []), meta]
    await db.commit()
    return meta


# ---------- time tracking (premium) ----------


async def _trackable(db: AsyncSession, ticket_id: int, current: User) -> Ticket:
    t = await load_ticket(db, ticket_id)
    if not can_edit(current.id, current.role, t):
        raise Forbidden("Not authorized to track time on this ticket")
    return t


@router.post("/{ticket_id}/time-entries", response_model=TicketOut, status_code=status.HTTP_201_CREATED)
async def add_time_entry(
    ticket_id: int,
    payload: TimeEntryCreate,
    db: DBDep,
    current: User = Depends(require_premium),
):
    t = await _trackable(db, ticket_id, current)
    time_tracking.add_time_entry(
        t, current.id, payload.description, payload.start_time, payload.end_time, payload.duration
    )
    await db.commit()
    return ticket_out(t, current.role)


@router.post("/{ticket_id}/start-tracking", response_model=TimeEntryOut)
async def start_tracking(
    ticket_id: int,
    db: DBDep,
    payload: TrackingStart | None = None,
    current: User = Depends(require_premium),
):
    t = await _trackable(db, ticket_id, current)
    entry = time_tracking.start_time_tracking(t, current.id, (payload or TrackingStart()).description)
    await db.commit()
    return entry


@router.post("/{ticket_id}/stop-tracking", response_model=Optional[TimeEntryOut])
async def stop_tracking(ticket_id: int, db: DBDep, current: User = Depends(require_premium)):
    t = await _trackable(db, ticket_id, current)
    entry = time_tracking.stop_time_tracking(t)
    if entry is not None:
        await db.commit()
    return entry


# ---------- escalation / watchers / internal notes ----------


@router.post("/{ticket_id}/escalate", response_model=TicketOut)
async def escalate_ticket(ticket_id: int, payload: EscalateIn, db: DBDep, current: UserDep, sink: SinkDep):
    t = await _viewable(db, ticket_id, current)
    target = await db.get(User, payload.escalated_to)
    ticket_service.escalate(t, current, target, payload.reason, sink)
    await _commit(db, sink)
    return ticket_out(t, current.role)


@router.post("/{ticket_id}/watch")
async def watch_ticket(ticket_id: int, db: DBDep, current: UserDep):
    t = await _viewable(db, ticket_id, current)
    if ticket_service.add_watcher(t, current.id):
        await db.commit()
    return {"watching": True, "watchers": t.watcher_ids}


@router.delete("/{ticket_id}/watch")
async def unwatch_ticket(ticket_id: int, db: DBDep, current: UserDep):
    t = await _viewable(db, ticket_id, current)
    if ticket_service.remove_watcher(t, current.id):
        await db.commit()
    return {"watching": False, "watchers": t.watcher_ids}


@router.post("/{ticket_id}/internal-notes", response_model=InternalNoteOut, status_code=status.HTTP_201_CREATED)
async def add_internal_note(ticket_id: int, payload: InternalNoteIn, db: DBDep, current: UserDep):
    t = await _viewable(db, ticket_id, current)
    note = ticket_service.add_internal_note(t, current, payload.content)
    await db.commit()
    return note


# ---------- reopen workflow ----------


@router.post("/{ticket_id}/reopen-request", response_model=ReopenRequestOut, status_code=status.HTTP_201_CREATED)
async def request_reopen(ticket_id: int, payload: ReopenRequestIn, db: DBDep, current: UserDep):
    t = await load_ticket(db, ticket_id)
    req = reopen_service.request_reopen(t, current.id, current.role, payload.reason)
    await db.commit()
    log.info("reopen_requested", extra={"ticket_id": t.id, "reopen_request_id": req.id})
    return req


@router.get("/{ticket_id}/reopen-requests", response_model=list[ReopenRequestOut])
async def list_reopen_requests(ticket_id: int, db: DBDep, current: UserDep):
    t = await _viewable(db, ticket_id, current)
    return t.reopen_requests


@router.put("/{ticket_id}/reopen-request/{request_id}/approve", response_model=TicketOut, dependencies=[ReviewerDep])
async def approve_reopen(
    ticket_id: int,
    request_id: int,
    payload: ReopenDecisionIn,
    db: DBDep,
    current: UserDep,
    sink: SinkDep,
):
    t = await load_ticket(db, ticket_id)
    reopen_service.approve_reopen(t, current.id, request_id, payload.review_note, sink)
    await _commit(db, sink)
    return ticket_out(t, current.role)


@router.put("/{ticket_id}/reopen-request/{request_id}/reject", response_model=TicketOut, dependencies=[ReviewerDep])
async def reject_reopen(
    ticket_id: int,
    request_id: int,
    payload: ReopenDecisionIn,
    db: DBDep,
    current: UserDep,
    sink: SinkDep,
):
    t = await load_ticket(db, ticket_id)
    reopen_service.reject_reopen(t, current.id, request_id, payload.review_note, sink)
    await _commit(db, sink)
    return ticket_out(t, current.role)


# ---------- comments (nested entry point) ----------


@router.get("/{ticket_id}/comments", response_model=list[CommentOut])
async def list_ticket_comments(ticket_id: int, db: DBDep, current: UserDep):
    await _viewable(db, ticket_id, current)
    rows = await comment_service.list_comments(db, ticket_id)
    authors = await comment_service.load_authors(db, rows)
    return [comment_service.present_comment(c, current.role, authors) for c in rows]


@router.post("/{ticket_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def add_ticket_comment(ticket_id: int, payload: CommentCreate, db: DBDep, current: UserDep):
    t = await load_ticket(db, ticket_id)
    c = await comment_service.add_comment(db, t, current, payload.content, is_internal=payload.is_internal)
    await db.commit()
    return comment_service.present_comment(c, current.role, {current.id: current})


@router.post("/{ticket_id}/comments/upload", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def add_ticket_comment_with_file(
    ticket_id: int,
    db: DBDep,
    current: UserDep,
    content: str = Form(..., min_length=1, max_length=2000),
    is_internal: bool = Form(False),
    file: UploadFile | None = File(None),
):
    t = await load_ticket(db, ticket_id)
    store = LocalBlobStore()
    attachments = [await _store_upload(file, store, current)] if file is not None else []
    try:
        c = await comment_service.add_comment(
            db, t, current, content, is_internal=is_internal, attachments=attachments
        )
    except DomainError:
        for meta in attachments:
            store.delete(meta["filename"])
        raise
    await db.commit()
    log.info("comment_uploaded", extra={"ticket_id": t.id, "attachments": len(attachments)})
    return comment_service.present_comment(c, current.role, {current.id: current})
