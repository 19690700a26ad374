# tenantdesk/services/companies.py
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.errors import NotFound, ValidationFailure
from tenantdesk.db.models import (
    ACTIVE_STATUSES,
    Company,
    SubscriptionTier,
    Ticket,
    TicketStatusEnum,
    User,
)
from tenantdesk.utils.time import add_months, ensure_utc, utc_now

log = logging.getLogger(__name__)

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    return _NON_SLUG.sub("-", (name or "").lower()).strip("-")


async def get_company(db: AsyncSession, company_id: int) -> Company:
    c = await db.get(Company, company_id)
    if c is None:
        raise NotFound("Company not found")
    return c


async def name_taken(db: AsyncSession, name: str, exclude_id: Optional[int] = None) -> bool:
    q = select(Company.id).where(or_(Company.name == name, Company.slug == slugify(name)))
    if exclude_id is not None:
        q = q.where(Company.id != exclude_id)
    return (await db.execute(q.limit(1))).scalar_one_or_none() is not None


async def create_company(
    db: AsyncSession,
    *,
    name: str,
    description: Optional[str] = None,
    plan: SubscriptionTier = SubscriptionTier.free,
    created_by_id: Optional[int] = None,
) -> Company:
    name = name.strip()
    if await name_taken(db, name):
        raise ValidationFailure("Company with this name already exists")
    now = utc_now()
    company = Company(
        name=name,
        slug=slugify(name),
        description=description,
        subscription_plan=plan,
        subscription_start=now,
        subscription_active=True,
        features=[],
        total_users=0,
        total_tickets=0,
        active_tickets=0,
        users_with_inherited_subscription=0,
        avg_resolution_hours=0,
        is_active=True,
        created_by_id=created_by_id,
        created_at=now,
        updated_at=now,
    )
    db.add(company)
    await db.flush()
    log.info("company_created", extra={"company_id": company.id, "slug": company.slug})
    return company


async def rename_company(db: AsyncSession, company: Company, name: str) -> None:
    name = name.strip()
    if name == company.name:
        return
    if await name_taken(db, name, exclude_id=company.id):
        raise ValidationFailure("Company with this name already exists")
    company.name = name
    company.slug = slugify(name)


def upgrade_subscription(
    company: Company,
    plan: SubscriptionTier,
    months: int,
    features: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> None:
    if plan == SubscriptionTier.free:
        raise ValidationFailure("Invalid subscription plan")
    if months < 1:
        raise ValidationFailure("Duration must be at least 1 month")
    company.subscription_plan = plan
    company.subscription_end = add_months(now or utc_now(), months)
    company.features = [getattr(f, "value", f) for f in (features or [])]
    company.subscription_active = True


async def delete_company(db: AsyncSession, company: Company) -> None:
    users = (
        await db.execute(select(func.count(User.id)).where(User.company_id == company.id))
    ).scalar_one()
    if users:
        raise ValidationFailure("Cannot delete company with active users. Please remove all users first.")
    await db.delete(company)


async def refresh_company_stats(db: AsyncSession, company: Company) -> Company:
    """Recounts tickets and members. The caller commits."""
    cid = company.id

    async def count(q) -> int:
        return (await db.execute(q)).scalar_one()

    company.total_tickets = await count(select(func.count(Ticket.id)).where(Ticket.company_id == cid))
    company.active_tickets = await count(
        select(func.count(Ticket.id)).where(
            Ticket.company_id == cid, Ticket.status.in_(list(ACTIVE_STATUSES))
        )
    )
    company.total_users = await count(
        select(func.count(User.id)).where(User.company_id == cid, User.is_active.is_(True))
    )
    company.users_with_inherited_subscription = await count(
        select(func.count(User.id)).where(
            User.company_id == cid,
            User.is_active.is_(True),
            or_(User.subscription.is_(None), User.subscription == SubscriptionTier.free),
        )
    )

    rows = (
        await db.execute(
            select(Ticket.created_at, Ticket.resolved_at).where(
                Ticket.company_id == cid,
                Ticket.status == TicketStatusEnum.resolved,
                Ticket.resolved_at.is_not(None),
            )
        )
    ).all()
    if rows:
        total = sum(
            (ensure_utc(resolved) - ensure_utc(created)).total_seconds() for created, resolved in rows
        )
        company.avg_resolution_hours = round(total / len(rows) / 3600, 2)

    log.debug("company_stats_refreshed", extra={"company_id": cid})
    return company


async def refresh_stats_for(db: AsyncSession, *company_ids: Optional[int]) -> None:
    for cid in {c for c in company_ids if c is not None}:
        company = await db.get(Company, cid)
        if company is not None:
            await refresh_company_stats(db, company)
