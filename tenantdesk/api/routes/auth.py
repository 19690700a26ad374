# tenantdesk/api/routes/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from tenantdesk.api.deps import DBDep, UserDep
from tenantdesk.schemas.auth import LoginIn, RegisterIn, TokenOut
from tenantdesk.schemas.users import UserOut
from tenantdesk.services.auth import authenticate, make_token_for_user, register_user, serialize_user
from tenantdesk.services.companies import refresh_stats_for
from tenantdesk.utils.time import utc_now

log = logging.getLogger(__name__)

router = APIRouter()


# ===== login / me =====

@router.post("/login", response_model=TokenOut)
async def login(payload: LoginIn, db: DBDep):
    email = payload.username.strip().lower()
    remember_me = bool(payload.remember_me)

    # 1) look up the user and check the password
    user = await authenticate(db, email=email, password=payload.password or "")
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    # 2) active flag
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    user.last_login = utc_now()
    await db.commit()

    # 3) token lifetime honours remember_me
    token = make_token_for_user(user, remember_me=remember_me)
    log.info("login", extra={"user_id": user.id})
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": UserOut(**await serialize_user(db, user)),
    }


@router.get("/me", response_model=UserOut)
async def me(db: DBDep, current: UserDep):
    return UserOut(**await serialize_user(db, current))


# ===== register (plain user) =====

@router.post("/register", response_model=TokenOut, status_code=201)
async def register(payload: RegisterIn, db: DBDep):
    u = await register_user(
        db,
        email=payload.email.strip().lower(),
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        company_id=payload.company_id,
    )
    await refresh_stats_for(db, u.company_id)
    await db.commit()

    tok = make_token_for_user(u)
    return TokenOut(access_token=tok, user=UserOut(**await serialize_user(db, u)))
