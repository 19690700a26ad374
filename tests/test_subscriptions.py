import asyncio
from datetime import datetime, timezone

import pytest
from conftest import make_user

from tenantdesk.core.errors import ValidationFailure
from tenantdesk.db.models import Company, PermissionEnum, RoleEnum, SubscriptionTier as Tier
from tenantdesk.services.subscriptions import (
    company_has_premium_access,
    effective_subscription,
    has_permission,
    has_premium_access,
    is_company_subscription_active,
    is_subscription_active,
    resolve_tier,
    upgrade_user_subscription,
)


class FakeDB:
    """Just enough of AsyncSession for db.get()."""

    def __init__(self, *companies):
        self.companies = {c.id: c for c in companies}
        self.calls = 0

    async def get(self, model, ident):
        self.calls += 1
        return self.companies.get(ident)


def _company(plan, id=1):
    return Company(id=id, name=f"Acme {id}", slug=f"acme-{id}", subscription_plan=plan)


@pytest.mark.parametrize("user_tier,company_plan,expected", [
    (None, Tier.premium, Tier.premium),
    (Tier.free, Tier.enterprise, Tier.enterprise),
    (Tier.basic, Tier.premium, Tier.basic),
    (Tier.premium, Tier.free, Tier.premium),
    (None, None, Tier.free),
    (Tier.free, None, Tier.free),
])
def test_resolve_tier(user_tier, company_plan, expected):
    company = _company(company_plan) if company_plan else None
    assert resolve_tier(user_tier, company) == expected


def test_inherits_from_company():
    db = FakeDB(_company(Tier.premium))
    user = make_user(company_id=1, subscription=None)
    assert asyncio.run(effective_subscription(db, user)) == Tier.premium
    assert asyncio.run(has_premium_access(db, user)) is True


def test_own_tier_skips_company_lookup():
    db = FakeDB(_company(Tier.enterprise))
    user = make_user(company_id=1, subscription=Tier.basic)
    assert asyncio.run(effective_subscription(db, user)) == Tier.basic
    assert db.calls == 0


def test_missing_company_soft_fails_to_free():
    user = make_user(company_id=42, subscription=None)
    assert asyncio.run(effective_subscription(FakeDB(), user)) == Tier.free


def test_resolution_is_idempotent():
    db = FakeDB(_company(Tier.premium))
    user = make_user(company_id=1, subscription=Tier.free)
    first = asyncio.run(effective_subscription(db, user))
    assert asyncio.run(effective_subscription(db, user)) == first
    assert user.subscription == Tier.free


def test_upgrade_sets_expiry_and_permissions():
    user = make_user()
    start = datetime(2026, 1, 31, 9, 0, tzinfo=timezone.utc)
    upgrade_user_subscription(user, Tier.premium, 1, now=start)
    assert user.subscription == Tier.premium
    assert user.subscription_expires == datetime(2026, 2, 28, 9, 0, tzinfo=timezone.utc)
    assert PermissionEnum.view_analytics.value in user.permissions
    assert is_subscription_active(user, now=start)
    assert not is_subscription_active(user, now=datetime(2026, 3, 1, tzinfo=timezone.utc))


@pytest.mark.parametrize("tier,months", [(Tier.free, 3), (Tier.premium, 0)])
def test_upgrade_rejects_bad_input(tier, months):
    with pytest.raises(ValidationFailure):
        upgrade_user_subscription(make_user(), tier, months)


def test_admin_has_every_permission():
    assert has_permission(make_user(RoleEnum.admin), PermissionEnum.export_data)
    assert not has_permission(make_user(), "export_data")


def test_company_level_checks():
    premium = _company(Tier.premium)
    premium.subscription_end = datetime(2026, 6, 1, tzinfo=timezone.utc)
    assert company_has_premium_access(premium)
    assert not company_has_premium_access(_company(Tier.basic))
    assert is_company_subscription_active(premium, now=datetime(2026, 5, 31, tzinfo=timezone.utc))
    assert not is_company_subscription_active(premium, now=datetime(2026, 6, 2, tzinfo=timezone.utc))
    assert is_company_subscription_active(_company(Tier.free))
