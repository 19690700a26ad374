"""
Ticket display numbers: TICKET-000001, TICKET-000002, ...

The next number is read from the current highest one, so two concurrent
creations can compute the same value. There is no lock; the unique index on
``tickets.ticket_number`` catches the collision and the caller retries with
a timestamp-derived number. Uniqueness is therefore best-effort.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.config import settings
from tenantdesk.db.models import Ticket

log = logging.getLogger(__name__)


def format_ticket_number(number: int) -> str:
    return f"{settings.ticket_number_prefix}{number:0{settings.ticket_number_width}d}"


def parse_ticket_number(value: Optional[str]) -> Optional[int]:
    if not value or not value.startswith(settings.ticket_number_prefix):
        return None
    digits = value[len(settings.ticket_number_prefix):]
    return int(digits) if digits.isdigit() else None


def fallback_ticket_number() -> str:
    """Degraded mode: milliseconds since epoch."""
    return format_ticket_number(int(time.time() * 1000))


def next_after(last_number: Optional[str]) -> str:
    last = parse_ticket_number(last_number)
    return format_ticket_number((last or 0) + 1)


async def next_ticket_number(db: AsyncSession) -> str:
    try:
        last = (
            await db.execute(
                select(Ticket.ticket_number)
                .order_by(Ticket.ticket_number.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
    except SQLAlchemyError:
        await db.rollback()
        number = fallback_ticket_number()
        log.warning("ticket_number_fallback", extra={"ticket_number": number}, exc_info=True)
        return number
    return next_after(last)
