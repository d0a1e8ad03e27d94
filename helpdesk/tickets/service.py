"""Ticket service orchestrating reads, validation and durable writes.

Each mutation reads the ticket, asks the pure workflow or moderation code
for a :class:`TicketChange`, then hands it to the repository. Only a change
the repository accepted is returned; a version conflict triggers a reread
and a fresh validation against the newer state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

from opentelemetry import trace

from helpdesk.memberships.models import Actor, Role, User
from helpdesk.memberships.repository import DirectoryRepository

from . import audit
from .actions import TicketAction
from .errors import (
    ConcurrentModificationError,
    HelpdeskError,
    InvalidMessageActionError,
    InvalidTransitionError,
    PersistenceFailureError,
    ProjectNotFoundError,
    StaleTicketError,
    TicketNotFoundError,
    UserNotFoundError,
)
from .models import AuditLogEntry, Message, Ticket, TicketChange
from .moderation import MessageModeration
from .repository import TicketRepository
from .state import TicketStatus
from .workflow import TicketWorkflow

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TransitionParams:
    """Optional inputs for ticket transitions."""

    assignee_id: str | None = None
    reason: str | None = None


class TicketService:
    """High level orchestration for ticket lifecycle operations."""

    def __init__(
        self,
        repository: TicketRepository,
        directory: DirectoryRepository,
        *,
        workflow: TicketWorkflow | None = None,
        moderation: MessageModeration | None = None,
        clock: Clock | None = None,
        max_conflict_retries: int = 3,
    ) -> None:
        self.repository = repository
        self.directory = directory
        self.workflow = workflow or TicketWorkflow()
        self.moderation = moderation or MessageModeration()
        self._clock = clock or _utcnow
        self.max_conflict_retries = max_conflict_retries

    async def ensure_schema(self) -> None:
        await self.repository.ensure_schema()

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self.repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found", field="ticket_id")
        return ticket

    async def list_tickets(
        self,
        *,
        project_id: str | None = None,
        status: TicketStatus | None = None,
        with_children: bool = True,
    ) -> list[Ticket]:
        """List tickets newest first; ``with_children=False`` skips messages and audit rows."""

        return await self.repository.list_tickets(project_id=project_id, status=status, with_children=with_children)

    async def get_audit_log(self, ticket_id: str) -> list[AuditLogEntry]:
        ticket = await self.get_ticket(ticket_id)
        return audit.ordered(ticket.audit_log)

    async def get_user(self, user_id: str) -> User:
        user = await self.directory.get_user(user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found", field="user_id")
        return user

    # Planning: validate and compute a change without persisting it.

    async def plan_create(self, *, project_id: str, querent_id: str, title: str, description: str) -> TicketChange:
        project = await self.directory.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project {project_id} not found", field="project_id")
        querent = await self.directory.get_user(querent_id)
        if querent is None:
            raise UserNotFoundError(f"User {querent_id} not found", field="querent_id")
        mediator = await self.directory.mediator_for(project_id)
        return self.workflow.create(
            project_id=project.id,
            querent=querent,
            title=title,
            description=description,
            mediator=mediator,
            now=self._clock(),
        )

    async def plan_transition(
        self,
        ticket_id: str,
        *,
        actor_id: str,
        action: TicketAction,
        actor_role: Role | None = None,
        params: TransitionParams | None = None,
    ) -> TicketChange:
        params = params or TransitionParams()
        ticket = await self.get_ticket(ticket_id)
        actor = await self._resolve_actor(ticket, actor_id, actor_role, error=InvalidTransitionError)
        assignee = None
        if params.assignee_id is not None:
            assignee = await self.directory.get_user(params.assignee_id)
            if assignee is None:
                raise UserNotFoundError(f"User {params.assignee_id} not found", field="assignee_id")
        return self.workflow.apply(
            ticket,
            actor,
            action,
            now=self._clock(),
            assignee=assignee,
            reason=params.reason,
        )

    async def plan_send_message(self, ticket_id: str, *, sender_id: str, content: str) -> TicketChange:
        ticket = await self.get_ticket(ticket_id)
        actor = await self._resolve_actor(ticket, sender_id, None, error=InvalidMessageActionError, field="sender_id")
        return self.moderation.send(ticket, actor, content, now=self._clock())

    async def plan_message_action(
        self,
        ticket_id: str,
        message_id: str,
        *,
        actor_id: str,
        action: TicketAction,
        actor_role: Role | None = None,
        new_content: str | None = None,
    ) -> TicketChange:
        ticket = await self.get_ticket(ticket_id)
        actor = await self._resolve_actor(ticket, actor_id, actor_role, error=InvalidMessageActionError)
        return self.moderation.act(ticket, message_id, actor, action, now=self._clock(), new_content=new_content)

    # Mutations: plan, then commit through the repository.

    async def create_ticket(self, *, project_id: str, querent_id: str, title: str, description: str) -> Ticket:
        change = await self._commit(
            "create_ticket",
            lambda: self.plan_create(
                project_id=project_id, querent_id=querent_id, title=title, description=description
            ),
        )
        return change.after

    async def transition_ticket(
        self,
        ticket_id: str,
        *,
        actor_id: str,
        action: TicketAction,
        actor_role: Role | None = None,
        params: TransitionParams | None = None,
    ) -> Ticket:
        change = await self._commit(
            "transition_ticket",
            lambda: self.plan_transition(
                ticket_id, actor_id=actor_id, action=action, actor_role=actor_role, params=params
            ),
            ticket_id=ticket_id,
        )
        return change.after

    async def send_message(self, ticket_id: str, *, sender_id: str, content: str) -> Message:
        change = await self._commit(
            "send_message",
            lambda: self.plan_send_message(ticket_id, sender_id=sender_id, content=content),
            ticket_id=ticket_id,
        )
        return change.new_messages[0]

    async def act_on_message(
        self,
        ticket_id: str,
        message_id: str,
        *,
        actor_id: str,
        action: TicketAction,
        actor_role: Role | None = None,
        new_content: str | None = None,
    ) -> Message:
        change = await self._commit(
            "act_on_message",
            lambda: self.plan_message_action(
                ticket_id,
                message_id,
                actor_id=actor_id,
                action=action,
                actor_role=actor_role,
                new_content=new_content,
            ),
            ticket_id=ticket_id,
        )
        return change.updated_messages[0]

    async def _resolve_actor(
        self,
        ticket: Ticket,
        user_id: str,
        claimed_role: Role | None,
        *,
        error: type[HelpdeskError],
        field: str = "actor_id",
    ) -> Actor:
        user = await self.directory.get_user(user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found", field=field)
        actor = Actor.for_project(user, ticket.project_id)
        if actor is None:
            raise error(f"User {user_id} holds no role in project {ticket.project_id}", field=field)
        if claimed_role is not None and claimed_role is not actor.role:
            raise error(
                f"User {user_id} holds role {actor.role.value}, not {claimed_role.value}, in project {ticket.project_id}",
                field="actor_role",
            )
        return actor

    async def _commit(
        self,
        operation: str,
        plan: Callable[[], Awaitable[TicketChange]],
        *,
        ticket_id: str | None = None,
    ) -> TicketChange:
        conflicts = 0
        with tracer.start_as_current_span(f"tickets.{operation}") as span:
            if ticket_id is not None:
                span.set_attribute("helpdesk.ticket_id", ticket_id)
            while True:
                try:
                    change = await plan()
                except HelpdeskError as exc:
                    logger.info("Rejected %s on ticket %s: %s: %s", operation, ticket_id, exc.kind, exc.message)
                    raise

                try:
                    await self.repository.apply(change)
                except StaleTicketError:
                    conflicts += 1
                    if conflicts > self.max_conflict_retries:
                        logger.warning(
                            "Giving up %s on ticket %s after %d version conflicts",
                            operation,
                            change.after.id,
                            conflicts,
                        )
                        raise ConcurrentModificationError(
                            f"Ticket {change.after.id} kept changing during {operation}",
                            field="version",
                            authoritative=await self.repository.get_ticket(change.after.id),
                        )
                    logger.warning(
                        "Version conflict on ticket %s during %s; rereading (%d/%d)",
                        change.after.id,
                        operation,
                        conflicts,
                        self.max_conflict_retries,
                    )
                    continue
                except PersistenceFailureError as exc:
                    logger.error("Persistence failure during %s on ticket %s: %s", operation, change.after.id, exc)
                    raise

                audit.emit(change.audit)
                span.set_attribute("helpdesk.ticket_id", change.after.id)
                span.set_attribute("helpdesk.ticket_status", change.after.status.value)
                return change
