# tenantdesk/db/models.py
from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    String,
    Text,
    Integer,
    Float,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    func,
    Index,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tenantdesk.db.base import Base
from tenantdesk.utils.time import utc_now

# JSONB on postgres, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# ==== Enums (python + sqlalchemy) ====


class RoleEnum(str, enum.Enum):
    admin = "admin"
    manager = "manager"
    agent = "agent"
    user = "user"


class SubscriptionTier(str, enum.Enum):
    free = "free"
    basic = "basic"
    premium = "premium"
    enterprise = "enterprise"


class PermissionEnum(str, enum.Enum):
    create_tickets = "create_tickets"
    edit_tickets = "edit_tickets"
    delete_tickets = "delete_tickets"
    view_analytics = "view_analytics"
    manage_users = "manage_users"
    manage_settings = "manage_settings"
    export_data = "export_data"
    custom_fields = "custom_fields"
    automation = "automation"
    integrations = "integrations"


class CompanyFeatureEnum(str, enum.Enum):
    unlimited_tickets = "unlimited_tickets"
    advanced_analytics = "advanced_analytics"
    custom_fields = "custom_fields"
    automation = "automation"
    integrations = "integrations"
    api_access = "api_access"
    white_label = "white_label"
    priority_support = "priority_support"


class TicketStatusEnum(str, enum.Enum):
    open = "open"
    in_progress = "in_progress"
    resolved = "resolved"
    closed = "closed"


class PriorityEnum(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class CategoryEnum(str, enum.Enum):
    technical = "technical"
    billing = "billing"
    feature_request = "feature_request"
    bug_report = "bug_report"
    general = "general"


class SlaTypeEnum(str, enum.Enum):
    response = "response"
    resolution = "resolution"


class ReopenStatusEnum(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ActivityActionEnum(str, enum.Enum):
    created = "created"
    updated = "updated"
    status_changed = "status_changed"
    assigned = "assigned"
    reopened = "reopened"
    reopen_requested = "reopen_requested"
    closed = "closed"


STAFF_ROLES = frozenset({RoleEnum.admin, RoleEnum.manager, RoleEnum.agent})
PREMIUM_TIERS = frozenset({SubscriptionTier.premium, SubscriptionTier.enterprise})
ACTIVE_STATUSES = frozenset({TicketStatusEnum.open, TicketStatusEnum.in_progress})
FINAL_STATUSES = frozenset({TicketStatusEnum.resolved, TicketStatusEnum.closed})


# ==== Mixins ====


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
    )


# ==== Tenancy / identity ====


class Company(TimestampMixin, Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # subscription
    subscription_plan: Mapped[SubscriptionTier] = mapped_column(
        Enum(SubscriptionTier, name="subscription_tier_enum"),
        default=SubscriptionTier.free,
        nullable=False,
    )
    subscription_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=True
    )
    subscription_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    subscription_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    features: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    # stats, recomputed on demand
    total_users: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_tickets: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    active_tickets: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    users_with_inherited_subscription: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    avg_resolution_hours: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # weak reference, the creator may be removed later
    created_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_companies_subscription_plan", "subscription_plan"),
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} slug={self.slug} plan={self.subscription_plan}>"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    first_name: Mapped[str] = mapped_column(String(100), default="")
    last_name: Mapped[str] = mapped_column(String(100), default="")
    role: Mapped[RoleEnum] = mapped_column(
        Enum(RoleEnum, name="role_enum"),
        default=RoleEnum.user,
        nullable=False,
    )
    # absent means "inherit from company"
    subscription: Mapped[Optional[SubscriptionTier]] = mapped_column(
        Enum(SubscriptionTier, name="subscription_tier_enum"),
        nullable=True,
    )
    subscription_expires: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    company_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    permissions: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"


# ==== Ticket aggregate ====


class Ticket(TimestampMixin, Base):
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)

    status: Mapped[TicketStatusEnum] = mapped_column(
        Enum(TicketStatusEnum, name="ticket_status_enum"),
        default=TicketStatusEnum.open,
        nullable=False,
    )
    priority: Mapped[PriorityEnum] = mapped_column(
        Enum(PriorityEnum, name="priority_enum"),
        default=PriorityEnum.medium,
        nullable=False,
    )
    category: Mapped[CategoryEnum] = mapped_column(
        Enum(CategoryEnum, name="category_enum"),
        default=CategoryEnum.general,
        nullable=False,
    )

    reporter_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    assignee_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        index=True,
    )

    # minutes
    estimated_time: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    actual_time: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # SLA
    sla_type: Mapped[SlaTypeEnum] = mapped_column(
        Enum(SlaTypeEnum, name="sla_type_enum"),
        default=SlaTypeEnum.resolution,
        nullable=False,
    )
    sla_target_hours: Mapped[int] = mapped_column(Integer, default=24, nullable=False)
    sla_start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    sla_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_is_breached: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # escalation
    escalation_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    escalated_to_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # resolution
    resolution_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    tags: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    custom_fields: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    related_ticket_ids: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    attachments: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    # optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # embedded collections
    time_entries: Mapped[List["TimeEntry"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TimeEntry.id",
    )
    escalation_history: Mapped[List["EscalationRecord"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="EscalationRecord.id",
    )
    reopen_requests: Mapped[List["ReopenRequest"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReopenRequest.id",
    )
    internal_notes: Mapped[List["InternalNote"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InternalNote.id",
    )
    watchers: Mapped[List["TicketWatcher"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="TicketWatcher.id",
    )
    activity_log: Mapped[List["ActivityLogEntry"]] = relationship(
        back_populates="ticket",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ActivityLogEntry.id",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_tickets_status_priority", "status", "priority"),
        Index("ix_tickets_created_at", "created_at"),
        Index("ix_tickets_sla_is_breached", "sla_is_breached"),
    )

    @property
    def watcher_ids(self) -> list[int]:
        return [w.user_id for w in self.watchers]

    def __repr__(self) -> str:
        return f"<Ticket id={self.id} number={self.ticket_number} status={self.status}>"


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    description: Mapped[str] = mapped_column(Text)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # minutes
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    ticket: Mapped["Ticket"] = relationship(back_populates="time_entries")


class EscalationRecord(Base):
    __tablename__ = "escalation_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    escalated_to_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="escalation_history")


class ReopenRequest(Base):
    __tablename__ = "reopen_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    requested_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    reason: Mapped[str] = mapped_column(Text)
    status: Mapped[ReopenStatusEnum] = mapped_column(
        Enum(ReopenStatusEnum, name="reopen_status_enum"),
        default=ReopenStatusEnum.pending,
        nullable=False,
        index=True,
    )
    reviewed_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    review_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    ticket: Mapped["Ticket"] = relationship(back_populates="reopen_requests")


class InternalNote(Base):
    __tablename__ = "internal_notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    author_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="internal_notes")


class TicketWatcher(Base):
    __tablename__ = "ticket_watchers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="watchers")

    __table_args__ = (
        UniqueConstraint("ticket_id", "user_id", name="uq_ticket_watchers_ticket_user"),
    )


class ActivityLogEntry(Base):
    __tablename__ = "ticket_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    action: Mapped[ActivityActionEnum] = mapped_column(
        Enum(ActivityActionEnum, name="activity_action_enum"),
        nullable=False,
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    ticket: Mapped["Ticket"] = relationship(back_populates="activity_log")


# ==== Comments (not embedded) ====


class Comment(TimestampMixin, Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"),
        index=True,
    )
    author_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # system-generated status/change trail
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attachments: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    __table_args__ = (
        Index("ix_comments_ticket_created", "ticket_id", "created_at"),
    )


# ==== Notification outbox ====


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    type: Mapped[str] = mapped_column(String(64))
    title: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    context: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
