# tenantdesk/schemas/tickets.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tenantdesk.db.models import (
    ActivityActionEnum,
    CategoryEnum,
    PriorityEnum as Priority,
    ReopenStatusEnum,
    SlaTypeEnum,
    TicketStatusEnum as Status,
)


class TicketCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    company_id: int
    priority: Priority = Priority.medium
    category: CategoryEnum = CategoryEnum.general
    assignee_id: Optional[int] = None
    estimated_time: int = Field(default=0, ge=0)
    due_date: Optional[datetime] = None
    tags: list[str] = Field(default_factory=list)


class TicketUpdate(BaseModel):
    # every field optional; partial update
    status: Optional[Status] = None
    priority: Optional[Priority] = None
    category: Optional[CategoryEnum] = None
    assignee_id: Optional[int] = None
    resolution_description: Optional[str] = Field(default=None, max_length=5000)


# ---- embedded collections ----


class TimeEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: int
    user_id: Optional[int] = None
    is_active: bool


class EscalationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    level: int
    escalated_to_id: Optional[int] = None
    reason: Optional[str] = None
    created_at: datetime


class ReopenRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requested_by_id: int
    reason: str
    status: ReopenStatusEnum
    reviewed_by_id: Optional[int] = None
    review_note: Optional[str] = None
    requested_at: datetime
    reviewed_at: Optional[datetime] = None


class InternalNoteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_id: Optional[int] = None
    content: str
    created_at: datetime


class ActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: ActivityActionEnum
    user_id: Optional[int] = None
    details: Optional[str] = None
    created_at: datetime


class SlaOut(BaseModel):
    type: SlaTypeEnum
    target_hours: int
    start_time: datetime
    end_time: Optional[datetime] = None
    is_breached: bool


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_number: str
    title: str
    description: str
    status: Status
    priority: Priority
    category: CategoryEnum
    reporter_id: int
    assignee_id: Optional[int] = None
    company_id: int
    estimated_time: int
    actual_time: int
    sla: SlaOut
    escalation_level: int
    escalated_to_id: Optional[int] = None
    resolution_description: Optional[str] = None
    resolved_by_id: Optional[int] = None
    resolved_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    tags: list[str] = []
    attachments: list[dict] = []
    watchers: list[int] = []
    time_entries: list[TimeEntryOut] = []
    escalation_history: list[EscalationOut] = []
    reopen_requests: list[ReopenRequestOut] = []
    internal_notes: list[InternalNoteOut] = []
    activity_log: list[ActivityOut] = []
    version: int
    created_at: datetime
    updated_at: datetime


class TicketsPage(BaseModel):
    items: list[TicketOut]
    total: int
    page: int
    limit: int


# ---- actions ----


class TimeEntryCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, ge=0)


class TrackingStart(BaseModel):
    description: str = Field(default="Work session", max_length=500)


class EscalateIn(BaseModel):
    escalated_to: int
    reason: str = Field(..., min_length=5, max_length=1000)


class InternalNoteIn(BaseModel):
    content: str = Field(..., min_length=3, max_length=2000)


class ReopenRequestIn(BaseModel):
    reason: str = Field(..., min_length=10, max_length=1000)


class ReopenDecisionIn(BaseModel):
    review_note: Optional[str] = Field(default=None, max_length=1000)


class PendingReopenOut(BaseModel):
    ticket_id: int
    ticket_number: str
    title: str
    request: ReopenRequestOut
