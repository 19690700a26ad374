# tenantdesk/services/comments.py
"""
Ticket comments.

Both comment endpoints (nested under a ticket and the flat /api/comments)
go through ``add_comment`` so the access rules and the "first staff reply
starts work" transition behave the same way.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.errors import Forbidden, NotFound
from tenantdesk.db.models import Comment, RoleEnum, Ticket, User
from tenantdesk.policy import can_comment, can_post_internal, can_see_internal
from tenantdesk.services.tickets import auto_progress_on_staff_reply
from tenantdesk.utils.time import utc_now

log = logging.getLogger(__name__)

REDACTED_CONTENT = "[Internal comment - not visible to customers]"
REDACTED_AUTHOR = {"id": None, "name": "System", "email": None}


async def add_comment(
    db: AsyncSession,
    ticket: Ticket,
    actor: User,
    content: str,
    *,
    is_internal: bool = False,
    attachments: Optional[list[dict]] = None,
) -> Comment:
    if not can_comment(actor.id, actor.role, ticket):
        raise Forbidden("You cannot comment on this ticket")
    if is_internal and not can_post_internal(actor.role):
        raise Forbidden("Only staff can create internal comments")

    now = utc_now()
    c = Comment(
        ticket_id=ticket.id,
        author_id=actor.id,
        content=content.strip(),
        is_internal=is_internal,
        is_system=False,
        attachments=list(attachments or []),
        created_at=now,
        updated_at=now,
    )
    db.add(c)

    trail = auto_progress_on_staff_reply(ticket, actor, now)
    if trail is not None:
        db.add(trail)
        log.info("ticket_auto_in_progress", extra={"ticket_id": ticket.id, "actor_id": actor.id})

    return c


async def list_comments(db: AsyncSession, ticket_id: int) -> list[Comment]:
    q = select(Comment).where(Comment.ticket_id == ticket_id).order_by(Comment.created_at, Comment.id)
    return list((await db.execute(q)).scalars().all())


async def get_comment(db: AsyncSession, comment_id: int) -> Comment:
    c = await db.get(Comment, comment_id)
    if c is None:
        raise NotFound("Comment not found")
    return c


def can_modify(comment: Comment, actor: User) -> bool:
    return actor.role == RoleEnum.admin or (comment.author_id is not None and comment.author_id == actor.id)


def edit_comment(comment: Comment, actor: User, content: str) -> Comment:
    if not can_modify(comment, actor):
        raise Forbidden("Not authorized to edit this comment")
    comment.content = content.strip()
    comment.updated_at = utc_now()
    return comment


def present_comment(comment: Comment, viewer_role, authors: dict[int, User]) -> dict[str, Any]:
    """
    Serialises a comment for one viewer. Internal comments seen by
    non-staff keep id, timestamps and the flag; content and author are masked.
    """
    author = authors.get(comment.author_id) if comment.author_id is not None else None
    data: dict[str, Any] = {
        "id": comment.id,
        "ticket_id": comment.ticket_id,
        "author_id": comment.author_id,
        "author": (
            {"id": author.id, "name": author.full_name, "email": author.email}
            if author is not None
            else None
        ),
        "content": comment.content,
        "is_internal": comment.is_internal,
        "is_system": comment.is_system,
        "attachments": comment.attachments or [],
        "created_at": comment.created_at,
        "updated_at": comment.updated_at,
    }
    if comment.is_internal and not can_see_internal(viewer_role):
        data["content"] = REDACTED_CONTENT
        data["author_id"] = None
        data["author"] = dict(REDACTED_AUTHOR)
        data["attachments"] = []
    return data


async def load_authors(db: AsyncSession, comments: list[Comment]) -> dict[int, User]:
    ids = {c.author_id for c in comments if c.author_id is not None}
    if not ids:
        return {}
    rows = (await db.execute(select(User).where(User.id.in_(ids)))).scalars().all()
    return {u.id: u for u in rows}
