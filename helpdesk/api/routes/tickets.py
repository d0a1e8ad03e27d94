from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from helpdesk.api.errors import to_http_exception
from helpdesk.dependencies.auth import CurrentUser
from helpdesk.dependencies.tickets import DirectoryDep, TicketServiceDep
from helpdesk.memberships.models import Actor, Role, User
from helpdesk.memberships.repository import DirectoryRepository
from helpdesk.tickets.actions import MESSAGE_ACTIONS, TICKET_TRANSITIONS, TicketAction
from helpdesk.tickets.authorization import permitted_actions
from helpdesk.tickets.errors import (
    HelpdeskError,
    MessageNotFoundError,
    NotFoundError,
    PersistenceFailureError,
    TicketNotFoundError,
)
from helpdesk.tickets.models import MessageStatus, Ticket
from helpdesk.tickets.service import TicketService, TransitionParams
from helpdesk.tickets.state import TicketStateMachine, TicketStatus
from helpdesk.tickets.visibility import (
    AuditEntryView,
    MessageView,
    TicketFilters,
    Viewer,
    can_view_ticket,
    list_tickets_for_user,
    project_audit_log,
    project_message_views,
)

router = APIRouter(prefix="/tickets", tags=["tickets"])
projects_router = APIRouter(prefix="/projects", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)


class TicketTransitionRequest(BaseModel):
    action: TicketAction
    assignee_id: str | None = Field(default=None)
    reason: str | None = Field(default=None, max_length=2000)


class MessageCreateRequest(BaseModel):
    content: str = Field(..., min_length=1)


class MessageModerationRequest(BaseModel):
    action: TicketAction
    new_content: str | None = Field(default=None)


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    title: str
    description: str
    status: TicketStatus
    querent_id: str
    responder_id: str | None
    mediator_id: str
    version: int
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_label: str
    content: str
    status: MessageStatus
    timestamp: datetime
    sender_id: str | None = None
    original_content: str | None = None


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    action: str
    details: str
    actor_label: str
    role: Role
    timestamp: datetime
    from_status: TicketStatus | None = None
    to_status: TicketStatus | None = None
    user_id: str | None = None
    metadata: dict[str, object] = Field(default_factory=dict)


class TicketDetailResponse(TicketResponse):
    original_description: str | None = None
    viewer_role: Role | None = None
    available_actions: list[TicketAction] = Field(default_factory=list)
    messages: list[MessageResponse] = Field(default_factory=list)
    audit_log: list[AuditEntryResponse] = Field(default_factory=list)


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_message_response(view: MessageView) -> MessageResponse:
    return MessageResponse.model_validate(view)


def _to_audit_response(view: AuditEntryView) -> AuditEntryResponse:
    return AuditEntryResponse.model_validate(view)


def _available_actions(ticket: Ticket, viewer: Viewer) -> list[TicketAction]:
    if viewer.role is None:
        return []
    actor = Actor(user_id=viewer.user_id, role=viewer.role)
    granted = permitted_actions(actor, ticket)
    actions = [
        action
        for action in TICKET_TRANSITIONS & granted
        if TicketStateMachine.allows(action, ticket.status)
    ]
    if TicketAction.SEND_MESSAGE in granted and TicketStateMachine.accepts_messages(ticket.status):
        actions.append(TicketAction.SEND_MESSAGE)
    return sorted(actions, key=lambda action: action.value)


def _participant_ids(ticket: Ticket) -> Iterable[str]:
    yield ticket.querent_id
    yield ticket.mediator_id
    if ticket.responder_id is not None:
        yield ticket.responder_id
    for message in ticket.messages:
        yield message.sender_id
    for entry in ticket.audit_log:
        yield entry.user_id


async def _users_for(ticket: Ticket, directory: DirectoryRepository) -> Mapping[str, User]:
    return await directory.get_users(_participant_ids(ticket))


def _require_visible(ticket: Ticket, user: User) -> Viewer:
    viewer = Viewer.for_user(user, ticket.project_id)
    if not can_view_ticket(ticket, viewer):
        # Tickets outside the viewer's reach are reported as missing.
        raise to_http_exception(TicketNotFoundError(f"Ticket {ticket.id} not found", field="ticket_id"))
    return viewer


async def _rejection(exc: HelpdeskError, ticket_id: str, service: TicketService, user: User) -> HTTPException:
    """Map a refused mutation, reporting tickets the user cannot see as missing."""

    if isinstance(exc, (NotFoundError, PersistenceFailureError)):
        return to_http_exception(exc)
    try:
        ticket = await service.get_ticket(ticket_id)
    except HelpdeskError:
        return to_http_exception(exc)
    if not can_view_ticket(ticket, Viewer.for_user(user, ticket.project_id)):
        return to_http_exception(TicketNotFoundError(f"Ticket {ticket_id} not found", field="ticket_id"))
    return to_http_exception(exc)


async def _to_detail(ticket: Ticket, user: User, directory: DirectoryRepository) -> TicketDetailResponse:
    viewer = _require_visible(ticket, user)
    users = await _users_for(ticket, directory)
    base = _to_response(ticket)
    return TicketDetailResponse(
        **base.model_dump(),
        original_description=ticket.original_description if viewer.is_privileged else None,
        viewer_role=viewer.role,
        available_actions=_available_actions(ticket, viewer),
        messages=[_to_message_response(view) for view in project_message_views(ticket, viewer, directory=users)],
        audit_log=[_to_audit_response(view) for view in project_audit_log(ticket, viewer, directory=users)],
    )


async def _message_for_viewer(
    ticket: Ticket,
    message_id: str,
    user: User,
    directory: DirectoryRepository,
) -> MessageResponse:
    viewer = Viewer.for_user(user, ticket.project_id)
    users = await _users_for(ticket, directory)
    for view in project_message_views(ticket, viewer, directory=users):
        if view.id == message_id:
            return _to_message_response(view)
    raise to_http_exception(MessageNotFoundError(f"Message {message_id} not found", field="message_id"))


@projects_router.post(
    "/{project_id}/tickets",
    response_model=TicketDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_ticket(
    project_id: str,
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    directory: DirectoryDep,
    user: CurrentUser,
) -> TicketDetailResponse:
    try:
        ticket = await service.create_ticket(
            project_id=project_id,
            querent_id=user.id,
            title=payload.title,
            description=payload.description,
        )
    except HelpdeskError as exc:
        raise to_http_exception(exc) from exc
    return await _to_detail(ticket, user, directory)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(
    service: TicketServiceDep,
    user: CurrentUser,
    project_id: str | None = Query(default=None),
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    assignee_id: str | None = Query(default=None),
) -> list[TicketResponse]:
    tickets = await service.list_tickets(project_id=project_id, status=status_filter, with_children=False)
    filters = TicketFilters(status=status_filter, assignee_id=assignee_id, project_id=project_id)
    return [_to_response(ticket) for ticket in list_tickets_for_user(tickets, user, filters)]


@router.get("/{ticket_id}", response_model=TicketDetailResponse)
async def get_ticket(
    ticket_id: str,
    service: TicketServiceDep,
    directory: DirectoryDep,
    user: CurrentUser,
) -> TicketDetailResponse:
    try:
        ticket = await service.get_ticket(ticket_id)
    except HelpdeskError as exc:
        raise to_http_exception(exc) from exc
    return await _to_detail(ticket, user, directory)


@router.post("/{ticket_id}/transitions", response_model=TicketDetailResponse)
async def transition_ticket(
    ticket_id: str,
    payload: TicketTransitionRequest,
    service: TicketServiceDep,
    directory: DirectoryDep,
    user: CurrentUser,
) -> TicketDetailResponse:
    if payload.action not in TICKET_TRANSITIONS:
        raise HTTPException(status_code=422, detail=f"{payload.action.value} is not a ticket transition")
    try:
        ticket = await service.transition_ticket(
            ticket_id,
            actor_id=user.id,
            action=payload.action,
            params=TransitionParams(assignee_id=payload.assignee_id, reason=payload.reason),
        )
    except HelpdeskError as exc:
        raise await _rejection(exc, ticket_id, service, user) from exc
    return await _to_detail(ticket, user, directory)


@router.post(
    "/{ticket_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    ticket_id: str,
    payload: MessageCreateRequest,
    service: TicketServiceDep,
    directory: DirectoryDep,
    user: CurrentUser,
) -> MessageResponse:
    try:
        message = await service.send_message(ticket_id, sender_id=user.id, content=payload.content)
        ticket = await service.get_ticket(ticket_id)
    except HelpdeskError as exc:
        raise await _rejection(exc, ticket_id, service, user) from exc
    return await _message_for_viewer(ticket, message.id, user, directory)


@router.post("/{ticket_id}/messages/{message_id}/moderation", response_model=MessageResponse)
async def moderate_message(
    ticket_id: str,
    message_id: str,
    payload: MessageModerationRequest,
    service: TicketServiceDep,
    directory: DirectoryDep,
    user: CurrentUser,
) -> MessageResponse:
    if payload.action not in MESSAGE_ACTIONS:
        raise HTTPException(status_code=422, detail=f"{payload.action.value} is not a message action")
    try:
        message = await service.act_on_message(
            ticket_id,
            message_id,
            actor_id=user.id,
            action=payload.action,
            new_content=payload.new_content,
        )
        ticket = await service.get_ticket(ticket_id)
    except HelpdeskError as exc:
        raise await _rejection(exc, ticket_id, service, user) from exc
    return await _message_for_viewer(ticket, message.id, user, directory)


@router.get("/{ticket_id}/audit", response_model=list[AuditEntryResponse])
async def get_ticket_audit(
    ticket_id: str,
    service: TicketServiceDep,
    directory: DirectoryDep,
    user: CurrentUser,
) -> list[AuditEntryResponse]:
    try:
        ticket = await service.get_ticket(ticket_id)
    except HelpdeskError as exc:
        raise to_http_exception(exc) from exc
    viewer = _require_visible(ticket, user)
    users = await _users_for(ticket, directory)
    return [_to_audit_response(view) for view in project_audit_log(ticket, viewer, directory=users)]
