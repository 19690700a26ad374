# tenantdesk/services/auth.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.config import settings
from tenantdesk.core.errors import NotFound, ValidationFailure
from tenantdesk.core.security import create_access_token, hash_password, verify_password
from tenantdesk.db.models import Company, RoleEnum, SubscriptionTier, User
from tenantdesk.services.subscriptions import effective_subscription, resolve_tier
from tenantdesk.utils.time import utc_now


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(select(User).where(User.email == email.lower()))
    return res.scalar_one_or_none()


async def authenticate(db: AsyncSession, *, email: str, password: str) -> Optional[User]:
    user = await get_user_by_email(db, email)
    if not user or not user.password_hash:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


async def create_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: RoleEnum = RoleEnum.user,
    company_id: Optional[int] = None,
    subscription: Optional[SubscriptionTier] = None,
    permissions: Optional[list[str]] = None,
) -> User:
    if await get_user_by_email(db, email):
        raise ValidationFailure("User already exists")
    if company_id is not None and await db.get(Company, company_id) is None:
        raise NotFound("Company not found")
    now = utc_now()
    user = User(
        email=email.lower(),
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        company_id=company_id,
        subscription=subscription,
        permissions=[getattr(p, "value", p) for p in (permissions or [])],
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    await db.flush()
    return user


async def register_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    company_id: Optional[int] = None,
) -> User:
    """Self-service sign-up, always as role=user."""
    if not settings.allow_self_signup:
        raise ValidationFailure("Self signup is disabled")
    return await create_user(
        db,
        email=email,
        password=password,
        first_name=first_name,
        last_name=last_name,
        role=RoleEnum.user,
        company_id=company_id,
    )


def user_payload(user: User, effective: SubscriptionTier) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
        "company_id": user.company_id,
        "subscription": user.subscription,
        "effective_subscription": effective,
        "subscription_expires": user.subscription_expires,
        "permissions": list(user.permissions or []),
        "is_active": user.is_active,
        "last_login": user.last_login,
    }


async def serialize_user(db: AsyncSession, user: User) -> dict:
    return user_payload(user, await effective_subscription(db, user))


async def serialize_users(db: AsyncSession, users: list[User]) -> list[dict]:
    """Same as serialize_user for a page of users, one company lookup each."""
    cache: dict[int, Optional[Company]] = {}
    out = []
    for u in users:
        company = None
        if u.company_id is not None:
            if u.company_id not in cache:
                cache[u.company_id] = await db.get(Company, u.company_id)
            company = cache[u.company_id]
        out.append(user_payload(u, resolve_tier(u.subscription, company)))
    return out


def make_token_for_user(user: User, *, remember_me: bool = False) -> str:
    """
    Access token for the user.
    remember_me=True gives the longer jwt_remember_expires_min TTL.
    """
    minutes = settings.jwt_remember_expires_min if remember_me else settings.jwt_expires_min
    return create_access_token(
        subject=user.email,
        role=str(getattr(user.role, "value", user.role)),
        secret=settings.jwt_secret,
        algorithm=settings.jwt_alg,
        expires_minutes=minutes,
    )
