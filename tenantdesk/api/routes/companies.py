# tenantdesk/api/routes/companies.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy import func, select

from tenantdesk.api.deps import DBDep, UserDep, require_admin
from tenantdesk.core.errors import Forbidden
from tenantdesk.db.models import Company, RoleEnum, User
from tenantdesk.schemas.companies import (
    CompanyBrief,
    CompanyCreate,
    CompanyOut,
    CompanyStats,
    CompanyUpdate,
    SubscriptionUpgrade,
)
from tenantdesk.services import companies as company_service

router = APIRouter()


def _member_or_admin(current: User, company_id: int) -> None:
    if current.role != RoleEnum.admin and current.company_id != company_id:
        raise Forbidden("Access denied")


@router.get("/for-tickets", response_model=list[CompanyBrief])
async def companies_for_tickets(db: DBDep, current: UserDep):
    """Companies the current user may file tickets for."""
    q = select(Company).where(Company.is_active.is_(True)).order_by(Company.name)
    if current.role != RoleEnum.admin:
        if current.company_id is None:
            raise Forbidden("You must be associated with a company to create tickets")
        q = q.where(Company.id == current.company_id)
    return (await db.execute(q)).scalars().all()


@router.get("", response_model=list[CompanyOut], dependencies=[Depends(require_admin())])
async def list_companies(
    db: DBDep,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    q = select(Company)
    if search:
        q = q.where(func.lower(Company.name).like(f"%{search.lower()}%"))
    if is_active is not None:
        q = q.where(Company.is_active == is_active)
    q = q.order_by(Company.created_at.desc()).limit(limit).offset((page - 1) * limit)
    return (await db.execute(q)).scalars().all()


@router.post("", response_model=CompanyOut, status_code=status.HTTP_201_CREATED)
async def create_company(payload: CompanyCreate, db: DBDep, current: User = Depends(require_admin())):
    c = await company_service.create_company(
        db,
        name=payload.name,
        description=payload.description,
        plan=payload.subscription_plan,
        created_by_id=current.id,
    )
    await db.commit()
    return c


@router.get("/{company_id}", response_model=CompanyOut)
async def get_company(company_id: int, db: DBDep, current: UserDep):
    _member_or_admin(current, company_id)
    return await company_service.get_company(db, company_id)


@router.put("/{company_id}", response_model=CompanyOut, dependencies=[Depends(require_admin())])
async def update_company(company_id: int, payload: CompanyUpdate, db: DBDep):
    c = await company_service.get_company(db, company_id)
    if payload.name is not None:
        await company_service.rename_company(db, c, payload.name)
    if payload.description is not None:
        c.description = payload.description
    if payload.subscription_plan is not None:
        c.subscription_plan = payload.subscription_plan
    if payload.is_active is not None:
        c.is_active = payload.is_active
    await db.commit()
    return c


@router.delete("/{company_id}", status_code=204, dependencies=[Depends(require_admin())])
async def delete_company(company_id: int, db: DBDep):
    c = await company_service.get_company(db, company_id)
    await company_service.delete_company(db, c)
    await db.commit()
    return Response(status_code=204)


@router.post("/{company_id}/activate", response_model=CompanyOut, dependencies=[Depends(require_admin())])
async def activate_company(company_id: int, db: DBDep):
    c = await company_service.get_company(db, company_id)
    c.is_active = True
    await db.commit()
    return c


@router.post("/{company_id}/deactivate", response_model=CompanyOut, dependencies=[Depends(require_admin())])
async def deactivate_company(company_id: int, db: DBDep):
    c = await company_service.get_company(db, company_id)
    c.is_active = False
    await db.commit()
    return c


@router.post("/{company_id}/upgrade-subscription", response_model=CompanyOut, dependencies=[Depends(require_admin())])
async def upgrade_subscription(company_id: int, payload: SubscriptionUpgrade, db: DBDep):
    c = await company_service.get_company(db, company_id)
    company_service.upgrade_subscription(c, payload.plan, payload.duration, payload.features)
    await db.commit()
    return c


@router.get("/{company_id}/stats", response_model=CompanyStats)
async def company_stats(company_id: int, db: DBDep, current: UserDep):
    _member_or_admin(current, company_id)
    c = await company_service.get_company(db, company_id)
    await company_service.refresh_company_stats(db, c)
    await db.commit()
    return c
