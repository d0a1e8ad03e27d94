from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Sequence

from helpdesk.memberships.models import Project

from .models import Ticket
from .state import TicketStatus


@dataclass(slots=True)
class WeeklyResolution:
    week_start: date
    average_hours: float
    closed_count: int


@dataclass(slots=True)
class TicketOverview:
    """Aggregate counts used by the manager overview."""

    by_status: dict[TicketStatus, int]
    by_project: dict[str, int]
    weekly_resolution: list[WeeklyResolution]
    total: int


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""

    return day - timedelta(days=day.weekday())


def summarize_tickets(tickets: Iterable[Ticket], projects: Sequence[Project] = ()) -> TicketOverview:
    by_status = {status: 0 for status in TicketStatus}
    by_project: dict[str, int] = {project.id: 0 for project in projects}
    buckets: dict[date, list[float]] = defaultdict(list)
    total = 0

    for ticket in tickets:
        total += 1
        by_status[ticket.status] += 1
        by_project[ticket.project_id] = by_project.get(ticket.project_id, 0) + 1
        if ticket.closed_at is not None:
            hours = (ticket.closed_at - ticket.created_at).total_seconds() / 3600.0
            buckets[week_start(ticket.closed_at.date())].append(hours)

    weekly = [
        WeeklyResolution(week_start=start, average_hours=round(sum(hours) / len(hours), 2), closed_count=len(hours))
        for start, hours in sorted(buckets.items())
    ]
    return TicketOverview(by_status=by_status, by_project=by_project, weekly_resolution=weekly, total=total)
