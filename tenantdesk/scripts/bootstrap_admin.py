from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.config import settings
from tenantdesk.core.logging import setup_logging
from tenantdesk.db.models import Company, RoleEnum, SubscriptionTier, User
from tenantdesk.db.session import AsyncSessionLocal, init_db
from tenantdesk.services.auth import create_user, get_user_by_email
from tenantdesk.services.companies import create_company, refresh_company_stats, slugify

log = logging.getLogger("tenantdesk.bootstrap")

DEMO_COMPANY = "Demo Company"
DEMO_USERS = [
    # email, password, first, last, role
    ("manager@example.com", "Manager123!", "Demo", "Manager", RoleEnum.manager),
    ("agent@example.com", "Agent123!", "Demo", "Agent", RoleEnum.agent),
    ("user@example.com", "User123!", "Demo", "User", RoleEnum.user),
]


async def _ensure_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: RoleEnum,
    company_id: Optional[int] = None,
) -> User:
    """
    Creates the user when missing.
    Otherwise aligns role and active flag; the password is left alone.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        user = await create_user(
            db,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=role,
            company_id=company_id,
        )
        log.info("bootstrap_user_created", extra={"email": email, "role": role.value})
        return user

    if user.role != role or not user.is_active:
        user.role = role
        user.is_active = True
        log.info("bootstrap_user_updated", extra={"email": email, "role": role.value})
    return user


async def _ensure_company(db: AsyncSession, name: str, created_by_id: int) -> Company:
    res = await db.execute(select(Company).where(Company.slug == slugify(name)))
    company = res.scalar_one_or_none()
    if company is None:
        company = await create_company(
            db, name=name, plan=SubscriptionTier.premium, created_by_id=created_by_id
        )
    return company


async def seed(db: AsyncSession, *, admin_email: str, admin_password: str, demo: bool) -> None:
    admin = await _ensure_user(
        db,
        email=admin_email,
        password=admin_password,
        first_name=settings.admin_first_name,
        last_name=settings.admin_last_name,
        role=RoleEnum.admin,
    )

    if demo:
        company = await _ensure_company(db, DEMO_COMPANY, admin.id)
        for email, password, first, last, role in DEMO_USERS:
            await _ensure_user(
                db,
                email=email,
                password=password,
                first_name=first,
                last_name=last,
                role=role,
                company_id=company.id,
            )
        await db.flush()
        await refresh_company_stats(db, company)

    await db.commit()
    log.info("bootstrap_done")


async def _run(*, admin_email: str, admin_password: str, demo: bool, create_tables: bool) -> None:
    if create_tables:
        await init_db()
    async with AsyncSessionLocal() as db:
        await seed(db, admin_email=admin_email, admin_password=admin_password, demo=demo)


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed admin and demo tenant")
    p.add_argument("email", nargs="?", default=settings.admin_email, help="Admin email")
    p.add_argument("password", nargs="?", default=settings.admin_password, help="Admin password")

    p.add_argument("--demo", dest="demo", action="store_true", help="Create the demo company and its users")
    p.add_argument("--no-demo", dest="demo", action="store_false", help="Admin only")
    p.set_defaults(demo=settings.create_demo_company)

    p.add_argument("--create-tables", action="store_true", help="create_all before seeding (no alembic)")
    return p.parse_args()


def main() -> None:
    setup_logging(settings.log_level)
    args = _parse_args()

    if not args.email:
        raise SystemExit("Admin email is not set (argument or ADMIN_EMAIL in .env)")
    if not args.password:
        raise SystemExit("Admin password is not set (argument or ADMIN_PASSWORD in .env)")

    asyncio.run(
        _run(
            admin_email=args.email,
            admin_password=args.password,
            demo=args.demo,
            create_tables=args.create_tables,
        )
    )


if __name__ == "__main__":
    main()
