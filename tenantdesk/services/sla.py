"""
SLA monitor.

Breach status is derived on read while a ticket is open/in_progress and is
not kept fresh in between: callers must call ``refresh_sla`` before trusting
``sla_is_breached``. Once a ticket is resolved or closed the value is frozen.

With ``sla_forgive_on_close`` enabled (the default) the frozen value is
always False, even for a ticket that breached while it was active.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from tenantdesk.core.config import settings
from tenantdesk.db.models import ACTIVE_STATUSES, Ticket
from tenantdesk.utils.time import ensure_utc, utc_now


def elapsed_hours(ticket: Ticket, now: Optional[datetime] = None) -> float:
    now = now or utc_now()
    return (now - ensure_utc(ticket.sla_start_time)).total_seconds() / 3600


def refresh_sla(ticket: Ticket, now: Optional[datetime] = None) -> bool:
    """Recomputes the breach flag of an active ticket and returns it."""
    if ticket.status in ACTIVE_STATUSES:
        ticket.sla_is_breached = elapsed_hours(ticket, now) > ticket.sla_target_hours
    return bool(ticket.sla_is_breached)


def freeze_sla(
    ticket: Ticket,
    now: Optional[datetime] = None,
    forgive: Optional[bool] = None,
) -> None:
    now = now or utc_now()
    forgive = settings.sla_forgive_on_close if forgive is None else forgive
    if forgive:
        ticket.sla_is_breached = False
    else:
        # measured up to the moment the ticket left the active states
        ticket.sla_is_breached = elapsed_hours(ticket, now) > ticket.sla_target_hours
    ticket.sla_end_time = now


def restart_sla(ticket: Ticket, now: Optional[datetime] = None) -> None:
    """Resumes breach tracking against the original start time."""
    ticket.sla_end_time = None
    refresh_sla(ticket, now)
