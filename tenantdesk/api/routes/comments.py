# tenantdesk/api/routes/comments.py
from __future__ import annotations

from fastapi import APIRouter, status
from fastapi.responses import Response

from tenantdesk.api.deps import DBDep, UserDep, load_ticket
from tenantdesk.core.errors import Forbidden
from tenantdesk.policy import can_view
from tenantdesk.schemas.comments import CommentCreateFlat, CommentOut, CommentUpdate
from tenantdesk.services import comments as comment_service

router = APIRouter()


@router.get("/ticket/{ticket_id}", response_model=list[CommentOut])
async def list_comments(ticket_id: int, db: DBDep, current: UserDep):
    t = await load_ticket(db, ticket_id)
    if not can_view(current.id, current.role, t):
        raise Forbidden("Access denied")
    rows = await comment_service.list_comments(db, ticket_id)
    authors = await comment_service.load_authors(db, rows)
    return [comment_service.present_comment(c, current.role, authors) for c in rows]


@router.post("", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def create_comment(payload: CommentCreateFlat, db: DBDep, current: UserDep):
    t = await load_ticket(db, payload.ticket_id)
    c = await comment_service.add_comment(db, t, current, payload.content, is_internal=payload.is_internal)
    await db.commit()
    return comment_service.present_comment(c, current.role, {current.id: current})


@router.put("/{comment_id}", response_model=CommentOut)
async def update_comment(comment_id: int, payload: CommentUpdate, db: DBDep, current: UserDep):
    c = await comment_service.get_comment(db, comment_id)
    comment_service.edit_comment(c, current, payload.content)
    await db.commit()
    authors = await comment_service.load_authors(db, [c])
    return comment_service.present_comment(c, current.role, authors)


@router.delete("/{comment_id}", status_code=204)
async def delete_comment(comment_id: int, db: DBDep, current: UserDep):
    c = await comment_service.get_comment(db, comment_id)
    if not comment_service.can_modify(c, current):
        raise Forbidden("You can only delete your own comments")
    await db.delete(c)
    await db.commit()
    return Response(status_code=204)
