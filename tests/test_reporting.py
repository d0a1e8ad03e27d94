from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from helpdesk.memberships import Project
from helpdesk.tickets.models import Ticket
from helpdesk.tickets.reporting import summarize_tickets, week_start
from helpdesk.tickets.state import TicketStatus

CREATED = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _ticket(ticket_id: str, status: TicketStatus, *, project_id: str = "project-p", hours: float | None = None) -> Ticket:
    closed_at = CREATED + timedelta(hours=hours) if hours is not None else None
    return Ticket(
        id=ticket_id,
        project_id=project_id,
        title="Issue",
        description="X",
        original_description="X",
        status=status,
        querent_id="alice",
        mediator_id="diana",
        created_at=CREATED,
        updated_at=closed_at or CREATED,
        closed_at=closed_at,
    )


def test_week_start_is_monday():
    assert week_start(date(2026, 3, 8)) == date(2026, 3, 2)
    assert week_start(date(2026, 3, 2)) == date(2026, 3, 2)


def test_summarize_counts_and_resolution_times():
    tickets = [
        _ticket("t-1", TicketStatus.CLOSED, hours=2),
        _ticket("t-2", TicketStatus.CLOSED, hours=4),
        _ticket("t-3", TicketStatus.CLOSED, hours=24 * 8),
        _ticket("t-4", TicketStatus.PENDING_APPROVAL, project_id="project-q"),
    ]
    projects = [Project(id="project-p", name="Platform"), Project(id="project-q", name="Billing"), Project(id="project-r", name="Empty")]

    overview = summarize_tickets(tickets, projects)

    assert overview.total == 4
    assert overview.by_status[TicketStatus.CLOSED] == 3
    assert overview.by_status[TicketStatus.REJECTED] == 0
    assert set(overview.by_status) == set(TicketStatus)
    assert overview.by_project == {"project-p": 3, "project-q": 1, "project-r": 0}
    assert [bucket.week_start for bucket in overview.weekly_resolution] == [date(2026, 3, 2), date(2026, 3, 9)]
    assert overview.weekly_resolution[0].average_hours == pytest.approx(3.0)
    assert overview.weekly_resolution[0].closed_count == 2
    assert overview.weekly_resolution[1].average_hours == pytest.approx(192.0)


def test_summarize_empty():
    overview = summarize_tickets([])

    assert overview.total == 0
    assert overview.weekly_resolution == []
    assert all(count == 0 for count in overview.by_status.values())
