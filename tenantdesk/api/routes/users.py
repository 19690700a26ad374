# tenantdesk/api/routes/users.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.api.deps import DBDep, UserDep, require_admin, require_role, require_staff
from tenantdesk.core.errors import Forbidden, NotFound, ValidationFailure
from tenantdesk.core.security import hash_password
from tenantdesk.db.models import Company, RoleEnum, SubscriptionTier, User
from tenantdesk.schemas.users import UserAdminCreate, UserAdminUpdate, UserOut, UserUpdateSelf, UsersPage
from tenantdesk.services.auth import create_user, serialize_user, serialize_users
from tenantdesk.services.companies import refresh_stats_for
from tenantdesk.services.subscriptions import upgrade_user_subscription

router = APIRouter()

ManagerDep = Depends(require_role(RoleEnum.admin, RoleEnum.manager))


class SubscriptionUpgradeIn(BaseModel):
    subscription: SubscriptionTier
    duration: int = Field(ge=1, description="months")


class Assignable(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    email: str
    role: RoleEnum


async def _get_user(db: AsyncSession, user_id: int) -> User:
    u = await db.get(User, user_id)
    if not u:
        raise NotFound("User not found")
    return u


# ---------- SELF ----------
@router.get("/me", response_model=UserOut)
async def get_me(db: DBDep, current: UserDep):
    return UserOut(**await serialize_user(db, current))


@router.patch("/me", response_model=UserOut)
async def update_me(payload: UserUpdateSelf, db: DBDep, current: UserDep):
    if payload.first_name is not None:
        current.first_name = payload.first_name
    if payload.last_name is not None:
        current.last_name = payload.last_name
    if payload.password:
        current.password_hash = hash_password(payload.password)
    await db.commit()
    return UserOut(**await serialize_user(db, current))


# ---------- assignment pickers ----------
@router.get("/for-tickets", response_model=list[Assignable])
async def assignable_users(db: DBDep, current: UserDep):
    """Who the current user may put on a ticket; users may not assign at all."""
    if current.role == RoleEnum.admin:
        roles = [RoleEnum.agent, RoleEnum.manager, RoleEnum.admin]
    elif current.role == RoleEnum.manager:
        roles = [RoleEnum.agent, RoleEnum.manager]
    else:
        return []
    rows = (
        await db.execute(
            select(User)
            .where(User.role.in_(roles), User.is_active.is_(True))
            .order_by(User.first_name, User.last_name)
        )
    ).scalars().all()
    return rows


@router.get("/agents", response_model=list[Assignable], dependencies=[Depends(require_staff())])
async def list_agents(db: DBDep):
    rows = (
        await db.execute(
            select(User)
            .where(User.role.in_([RoleEnum.agent, RoleEnum.manager]), User.is_active.is_(True))
            .order_by(User.first_name, User.last_name)
        )
    ).scalars().all()
    return rows


# ---------- MANAGER / ADMIN ----------
@router.get("", response_model=UsersPage, dependencies=[ManagerDep])
async def list_users(
    db: DBDep,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    q: Optional[str] = Query(None, description="search by email/name"),
    role: Optional[RoleEnum] = None,
    company_id: Optional[int] = None,
    is_active: Optional[bool] = None,
):
    stmt = select(User)
    if q:
        like = f"%{q.lower()}%"
        stmt = stmt.where(or_(
            func.lower(User.email).like(like),
            func.lower(User.first_name).like(like),
            func.lower(User.last_name).like(like),
        ))
    if role:
        stmt = stmt.where(User.role == role)
    if company_id is not None:
        stmt = stmt.where(User.company_id == company_id)
    if is_active is not None:
        stmt = stmt.where(User.is_active == is_active)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    rows = (await db.execute(stmt.order_by(User.id.asc()).limit(limit).offset((page - 1) * limit))).scalars().all()

    return UsersPage(
        items=[UserOut(**d) for d in await serialize_users(db, list(rows))],
        total=int(total or 0),
        page=page,
        limit=limit,
    )


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin())])
async def admin_create_user(payload: UserAdminCreate, db: DBDep):
    u = await create_user(
        db,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        role=payload.role,
        company_id=payload.company_id,
        subscription=payload.subscription,
        permissions=payload.permissions,
    )
    await refresh_stats_for(db, u.company_id)
    await db.commit()
    return UserOut(**await serialize_user(db, u))


@router.get("/{user_id}", response_model=UserOut)
async def get_user(user_id: int, db: DBDep, current: UserDep):
    if current.role not in {RoleEnum.admin, RoleEnum.manager} and current.id != user_id:
        raise Forbidden("Access denied")
    u = await _get_user(db, user_id)
    return UserOut(**await serialize_user(db, u))


@router.patch("/{user_id}", response_model=UserOut, dependencies=[Depends(require_admin())])
async def admin_update_user(user_id: int, payload: UserAdminUpdate, db: DBDep):
    u = await _get_user(db, user_id)
    fields = payload.model_dump(exclude_unset=True)
    old_company = u.company_id

    if "company_id" in fields and fields["company_id"] is not None:
        if await db.get(Company, fields["company_id"]) is None:
            raise NotFound("Company not found")
    if "permissions" in fields and fields["permissions"] is not None:
        fields["permissions"] = [getattr(p, "value", p) for p in fields["permissions"]]

    for name, value in fields.items():
        setattr(u, name, value)

    # membership or tier changes move company counters
    await refresh_stats_for(db, old_company, u.company_id)
    await db.commit()
    return UserOut(**await serialize_user(db, u))


@router.delete("/{user_id}", status_code=204, dependencies=[Depends(require_admin())])
async def delete_user(user_id: int, db: DBDep, current: UserDep):
    u = await _get_user(db, user_id)
    if u.id == current.id:
        raise ValidationFailure("Cannot delete your own account")
    company_id = u.company_id
    await db.delete(u)
    await db.flush()
    await refresh_stats_for(db, company_id)
    await db.commit()
    return Response(status_code=204)


@router.post("/{user_id}/activate", response_model=UserOut, dependencies=[ManagerDep])
async def activate_user(user_id: int, db: DBDep):
    u = await _get_user(db, user_id)
    u.is_active = True
    await refresh_stats_for(db, u.company_id)
    await db.commit()
    return UserOut(**await serialize_user(db, u))


@router.post("/{user_id}/deactivate", response_model=UserOut, dependencies=[ManagerDep])
async def deactivate_user(user_id: int, db: DBDep, current: UserDep):
    u = await _get_user(db, user_id)
    if u.id == current.id:
        raise HTTPException(status_code=400, detail="Cannot deactivate your own account")
    u.is_active = False
    await refresh_stats_for(db, u.company_id)
    await db.commit()
    return UserOut(**await serialize_user(db, u))


@router.post("/{user_id}/upgrade-subscription", response_model=UserOut, dependencies=[Depends(require_admin())])
async def upgrade_subscription(user_id: int, payload: SubscriptionUpgradeIn, db: DBDep):
    u = await _get_user(db, user_id)
    upgrade_user_subscription(u, payload.subscription, payload.duration)
    await refresh_stats_for(db, u.company_id)
    await db.commit()
    return UserOut(**await serialize_user(db, u))
