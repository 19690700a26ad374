"""
Subscription resolver.

A user's own tier wins unless it is absent or "free"; then the tier is
inherited from the user's company. A company that cannot be loaded is not an
error, the user simply ends up on the free tier.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.errors import ValidationFailure
from tenantdesk.db.models import (
    PREMIUM_TIERS,
    Company,
    PermissionEnum,
    RoleEnum,
    SubscriptionTier,
    User,
)
from tenantdesk.utils.time import add_months, ensure_utc, utc_now

log = logging.getLogger(__name__)


def resolve_tier(user_tier: Optional[SubscriptionTier], company: Optional[Company]) -> SubscriptionTier:
    if user_tier is not None and user_tier != SubscriptionTier.free:
        return SubscriptionTier(user_tier)
    if company is not None and company.subscription_plan:
        return SubscriptionTier(company.subscription_plan)
    return SubscriptionTier.free


async def effective_subscription(db: AsyncSession, user: User) -> SubscriptionTier:
    if user.subscription is not None and user.subscription != SubscriptionTier.free:
        return SubscriptionTier(user.subscription)

    company = None
    if user.company_id is not None:
        company = await db.get(Company, user.company_id)
        if company is None:
            log.debug(
                "subscription_company_missing",
                extra={"user_id": user.id, "company_id": user.company_id},
            )
    return resolve_tier(user.subscription, company)


async def has_premium_access(db: AsyncSession, user: User) -> bool:
    return await effective_subscription(db, user) in PREMIUM_TIERS


def is_subscription_active(user: User, now: Optional[datetime] = None) -> bool:
    if user.subscription_expires is None:
        return True
    return (now or utc_now()) < ensure_utc(user.subscription_expires)


def has_permission(user: User, permission: PermissionEnum | str) -> bool:
    value = getattr(permission, "value", permission)
    return user.role == RoleEnum.admin or value in (user.permissions or [])


def company_has_premium_access(company: Company) -> bool:
    return company.subscription_plan in PREMIUM_TIERS


def is_company_subscription_active(company: Company, now: Optional[datetime] = None) -> bool:
    if company.subscription_end is None:
        return True
    return (now or utc_now()) < ensure_utc(company.subscription_end)


# capabilities granted along with a paid tier
TIER_PERMISSIONS: dict[SubscriptionTier, list[PermissionEnum]] = {
    SubscriptionTier.free: [],
    SubscriptionTier.basic: [PermissionEnum.create_tickets, PermissionEnum.edit_tickets],
    SubscriptionTier.premium: [
        PermissionEnum.create_tickets,
        PermissionEnum.edit_tickets,
        PermissionEnum.view_analytics,
        PermissionEnum.custom_fields,
    ],
    SubscriptionTier.enterprise: list(PermissionEnum),
}


def upgrade_user_subscription(
    user: User,
    tier: SubscriptionTier,
    months: int,
    now: Optional[datetime] = None,
) -> None:
    if tier == SubscriptionTier.free:
        raise ValidationFailure("Invalid subscription type")
    if months < 1:
        raise ValidationFailure("Duration must be at least 1 month")
    user.subscription = tier
    user.subscription_expires = add_months(now or utc_now(), months)
    user.permissions = [p.value for p in TIER_PERMISSIONS[tier]]
    log.info("user_subscription_upgraded", extra={"user_id": user.id, "tier": tier.value})
