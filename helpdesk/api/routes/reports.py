from __future__ import annotations

from datetime import date

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, ConfigDict

from helpdesk.api.errors import to_http_exception
from helpdesk.dependencies.auth import CurrentUser
from helpdesk.dependencies.tickets import DirectoryDep, TicketServiceDep
from helpdesk.memberships.models import User
from helpdesk.tickets.errors import ProjectNotFoundError
from helpdesk.tickets.reporting import TicketOverview, summarize_tickets
from helpdesk.tickets.state import TicketStatus

router = APIRouter(prefix="/reports", tags=["reports"])


class WeeklyResolutionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    week_start: date
    average_hours: float
    closed_count: int


class TicketOverviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    by_status: dict[TicketStatus, int]
    by_project: dict[str, int]
    weekly_resolution: list[WeeklyResolutionResponse]


def _moderates(user: User, project_id: str) -> bool:
    role = user.role_in(project_id)
    return role is not None and role.is_privileged


def _to_response(overview: TicketOverview) -> TicketOverviewResponse:
    return TicketOverviewResponse.model_validate(overview)


@router.get("/overview", response_model=TicketOverviewResponse)
async def ticket_overview(
    service: TicketServiceDep,
    directory: DirectoryDep,
    user: CurrentUser,
    project_id: str | None = Query(default=None),
) -> TicketOverviewResponse:
    """Ticket counts and resolution times for the projects the user moderates."""

    if project_id is not None:
        project = await directory.get_project(project_id)
        if project is None:
            raise to_http_exception(ProjectNotFoundError(f"Project {project_id} not found", field="project_id"))
        projects = [project]
    else:
        projects = await directory.list_projects()

    moderated = [project for project in projects if _moderates(user, project.id)]
    if not moderated:
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    moderated_ids = {project.id for project in moderated}
    tickets = await service.list_tickets(project_id=project_id, with_children=False)
    overview = summarize_tickets(
        [ticket for ticket in tickets if ticket.project_id in moderated_ids],
        moderated,
    )
    return _to_response(overview)
