"""
Time tracking on a ticket.

At most one entry is active at any time, and ``ticket.actual_time`` is
always the sum of entry durations (minutes). It is recomputed here after
every mutation and never written anywhere else.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from tenantdesk.db.models import Ticket, TimeEntry
from tenantdesk.utils.time import minutes_between, utc_now


def recompute_actual_time(ticket: Ticket) -> int:
    ticket.actual_time = sum(e.duration or 0 for e in ticket.time_entries)
    return ticket.actual_time


def active_time_entry(ticket: Ticket) -> Optional[TimeEntry]:
    return next((e for e in ticket.time_entries if e.is_active), None)


def _close_entry(entry: TimeEntry, now: datetime) -> None:
    entry.end_time = now
    entry.duration = minutes_between(entry.start_time, now)
    entry.is_active = False


def start_time_tracking(
    ticket: Ticket,
    user_id: int,
    description: str,
    now: Optional[datetime] = None,
) -> TimeEntry:
    now = now or utc_now()
    for entry in ticket.time_entries:
        if entry.is_active:
            _close_entry(entry, now)

    entry = TimeEntry(
        description=description,
        start_time=now,
        end_time=None,
        duration=0,
        user_id=user_id,
        is_active=True,
    )
    ticket.time_entries.append(entry)
    recompute_actual_time(ticket)
    ticket.updated_at = now
    return entry


def stop_time_tracking(ticket: Ticket, now: Optional[datetime] = None) -> Optional[TimeEntry]:
    """Closes the running entry. Without one this is a no-op returning None."""
    entry = active_time_entry(ticket)
    if entry is None:
        return None
    now = now or utc_now()
    _close_entry(entry, now)
    recompute_actual_time(ticket)
    ticket.updated_at = now
    return entry


def add_time_entry(
    ticket: Ticket,
    user_id: int,
    description: str,
    start_time: datetime,
    end_time: Optional[datetime] = None,
    duration: Optional[int] = None,
) -> TimeEntry:
    """Manual, already finished entry."""
    if end_time is not None:
        minutes = duration if duration else minutes_between(start_time, end_time)
    else:
        minutes = duration or 0

    entry = TimeEntry(
        description=description,
        start_time=start_time,
        end_time=end_time,
        duration=minutes,
        user_id=user_id,
        is_active=False,
    )
    ticket.time_entries.append(entry)
    recompute_actual_time(ticket)
    ticket.updated_at = utc_now()
    return entry
