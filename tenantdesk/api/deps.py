from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.config import settings
from tenantdesk.core.errors import NotFound
from tenantdesk.core.security import decode_token
from tenantdesk.db.models import RoleEnum, STAFF_ROLES, Ticket, User
from tenantdesk.db.session import get_session
from tenantdesk.services.notifications import OutboxNotificationSink
from tenantdesk.services.subscriptions import has_premium_access, is_subscription_active

# OAuth2 bearer (for /api/docs); the /api prefix is set in main.py
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

# DB session dependency type
DBDep = Annotated[AsyncSession, Depends(get_session)]


async def get_current_user(
    db: DBDep,
    token: Annotated[str, Depends(oauth2_scheme)]
) -> User:
    """
    Decodes the bearer JWT, loads the user and checks that it is active.
    """
    try:
        payload = decode_token(token, settings.jwt_secret, settings.jwt_alg)
        email: str | None = payload.get("sub")
        if not email:
            raise ValueError("no_sub")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    res = await db.execute(select(User).where(User.email == email))
    user = res.scalar_one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User inactive or not found")
    return user


UserDep = Annotated[User, Depends(get_current_user)]


def require_role(*allowed: RoleEnum):
    """
    Lets through only users whose role is in ``allowed``.
    Example: @router.get(..., dependencies=[Depends(require_role(RoleEnum.admin))])
    """
    allowed_set = set(allowed)

    async def _guard(current: UserDep) -> User:
        if current.role not in allowed_set:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current

    return _guard


def require_staff():
    return require_role(*STAFF_ROLES)


def require_admin():
    return require_role(RoleEnum.admin)


async def require_premium(db: DBDep, current: UserDep) -> User:
    """Premium feature gate: premium/enterprise tier that has not expired."""
    if not await has_premium_access(db, current) or not is_subscription_active(current):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This feature requires a premium subscription",
        )
    return current


def get_sink(db: DBDep) -> OutboxNotificationSink:
    return OutboxNotificationSink(db)


SinkDep = Annotated[OutboxNotificationSink, Depends(get_sink)]


async def load_ticket(db: AsyncSession, ticket_id: int) -> Ticket:
    t = await db.get(Ticket, ticket_id)
    if t is None:
        raise NotFound("Ticket not found")
    return t
