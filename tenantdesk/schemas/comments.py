from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    is_internal: bool = False


class CommentCreateFlat(CommentCreate):
    ticket_id: int


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


class CommentAuthor(BaseModel):
    id: Optional[int] = None
    name: str
    email: Optional[str] = None


class CommentOut(BaseModel):
    id: int
    ticket_id: int
    author_id: Optional[int] = None
    author: Optional[CommentAuthor] = None
    content: str
    is_internal: bool
    is_system: bool
    attachments: list[dict] = []
    created_at: datetime
    updated_at: datetime
