# tenantdesk/api/routes/notifications.py
from __future__ import annotations

from fastapi import APIRouter, Query
from pydantic import BaseModel
from sqlalchemy import delete, func, select, update

from tenantdesk.api.deps import DBDep, UserDep
from tenantdesk.core.errors import NotFound
from tenantdesk.db.models import Notification
from tenantdesk.schemas.notifications import NotificationOut, NotificationsPage

router = APIRouter()


class MarkReadIn(BaseModel):
    notification_ids: list[int]


@router.get("", response_model=NotificationsPage)
async def list_notifications(
    db: DBDep,
    current: UserDep,
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
):
    q = select(Notification).where(Notification.user_id == current.id)
    if unread_only:
        q = q.where(Notification.is_read.is_(False))
    rows = (
        await db.execute(q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit))
    ).scalars().all()
    unread = (
        await db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == current.id, Notification.is_read.is_(False)
            )
        )
    ).scalar_one()
    return {"items": [NotificationOut.model_validate(n) for n in rows], "unread": unread}


@router.post("/mark-read")
async def mark_read(payload: MarkReadIn, db: DBDep, current: UserDep):
    # other users' notifications are skipped silently
    res = await db.execute(
        update(Notification)
        .where(Notification.user_id == current.id, Notification.id.in_(payload.notification_ids))
        .values(is_read=True)
    )
    await db.commit()
    return {"updated": res.rowcount}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: int, db: DBDep, current: UserDep):
    n = await db.get(Notification, notification_id)
    if n is None or n.user_id != current.id:
        raise NotFound("Notification not found")
    await db.delete(n)
    await db.commit()
    return {"ok": True}


@router.post("/clear-all")
async def clear_all(db: DBDep, current: UserDep):
    res = await db.execute(delete(Notification).where(Notification.user_id == current.id))
    await db.commit()
    return {"deleted": res.rowcount}
