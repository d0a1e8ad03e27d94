"""Ticket lifecycle transitions.

Every operation here is pure: it validates an intent against the ticket it
is given and returns a :class:`TicketChange` without touching storage.
Precondition failures raise before anything is computed, so a rejected
intent never yields a partial change.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Mapping

from helpdesk.memberships.models import Actor, Role, User

from .actions import TICKET_TRANSITIONS, TicketAction
from .audit import AuditTrail
from .authorization import is_permitted
from .errors import InvalidTransitionError, MembershipViolationError, NoMediatorAssignedError
from .models import Ticket, TicketChange
from .state import TicketStateMachine, TicketStatus


def _new_id() -> str:
    return str(uuid.uuid4())


def _require_text(value: str | None, field: str) -> str:
    if value is None or not value.strip():
        raise InvalidTransitionError(f"{field.replace('_', ' ').capitalize()} must not be empty", field=field)
    return value


class TicketWorkflow:
    """Validate ticket intents and compute their effects."""

    def __init__(
        self,
        *,
        state_machine: type[TicketStateMachine] = TicketStateMachine,
        audit: AuditTrail | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._state_machine = state_machine
        self._audit = audit or AuditTrail()
        self._id_factory = id_factory or _new_id
        self._handlers: Mapping[TicketAction, Callable[..., TicketChange]] = {
            TicketAction.APPROVE_AND_ASSIGN: self._approve_and_assign,
            TicketAction.REJECT: self._reject,
            TicketAction.CHANGE_ASSIGNEE: self._change_assignee,
            TicketAction.REQUEST_CLOSE: self._request_close,
            TicketAction.APPROVE_CLOSE: self._approve_close,
            TicketAction.REJECT_CLOSE: self._reject_close,
            TicketAction.FORCE_CLOSE: self._force_close,
            TicketAction.REOPEN: self._reopen,
        }

    def create(
        self,
        *,
        project_id: str,
        querent: User,
        title: str,
        description: str,
        mediator: User | None,
        now: datetime,
    ) -> TicketChange:
        title = _require_text(title, "title").strip()
        description = _require_text(description, "description")

        actor = Actor.for_project(querent, project_id)
        if actor is None:
            raise MembershipViolationError(
                f"User {querent.id} holds no role in project {project_id}", field="querent_id"
            )
        if not is_permitted(actor, TicketAction.CREATE):
            raise InvalidTransitionError(f"Role {actor.role.value} may not create tickets", field="actor_role")
        if mediator is None:
            raise NoMediatorAssignedError(f"Project {project_id} has no mediator", field="project_id")

        status = self._state_machine.initial_state()
        ticket = Ticket(
            id=self._id_factory(),
            project_id=project_id,
            title=title,
            description=description,
            original_description=description,
            status=status,
            querent_id=querent.id,
            mediator_id=mediator.id,
            created_at=now,
            updated_at=now,
        )
        entry = self._audit.record(ticket, actor, TicketAction.CREATE, "Ticket created.", now=now, to_status=status)
        return TicketChange(
            before=None,
            after=replace(ticket, audit_log=(entry,)),
            action=TicketAction.CREATE,
            audit=entry,
        )

    def apply(
        self,
        ticket: Ticket,
        actor: Actor,
        action: TicketAction,
        *,
        now: datetime,
        assignee: User | None = None,
        reason: str | None = None,
    ) -> TicketChange:
        """Validate ``action`` for ``actor`` and return the resulting change."""

        if action not in TICKET_TRANSITIONS:
            raise InvalidTransitionError(f"{action.value} is not a ticket transition", field="action")
        if not is_permitted(actor, action, ticket):
            raise InvalidTransitionError(
                f"User {actor.user_id} with role {actor.role.value} may not {action.value} ticket {ticket.id}",
                field="actor_role",
            )
        self._state_machine.assert_allows(action, ticket.status)
        handler = self._handlers[action]
        return handler(ticket, actor, now=now, assignee=assignee, reason=reason)

    def _approve_and_assign(self, ticket: Ticket, actor: Actor, *, now: datetime, assignee: User | None, **_: Any) -> TicketChange:
        chosen = self._require_assignee(ticket, assignee)
        return self._finish(
            ticket,
            actor,
            TicketAction.APPROVE_AND_ASSIGN,
            "Ticket approved and assigned to a responder.",
            now=now,
            status=TicketStatus.ASSIGNED,
            metadata={"assignee_id": chosen.id},
            responder_id=chosen.id,
        )

    def _reject(self, ticket: Ticket, actor: Actor, *, now: datetime, reason: str | None, **_: Any) -> TicketChange:
        details = "Ticket was rejected."
        if reason and reason.strip():
            details = f"{details} Reason: {reason.strip()}"
        return self._finish(ticket, actor, TicketAction.REJECT, details, now=now, status=TicketStatus.REJECTED)

    def _change_assignee(self, ticket: Ticket, actor: Actor, *, now: datetime, assignee: User | None, **_: Any) -> TicketChange:
        chosen = self._require_assignee(ticket, assignee)
        if chosen.id == ticket.responder_id:
            raise MembershipViolationError(
                f"User {chosen.id} is already assigned to ticket {ticket.id}", field="assignee_id"
            )
        return self._finish(
            ticket,
            actor,
            TicketAction.CHANGE_ASSIGNEE,
            "The assigned responder has been changed.",
            now=now,
            metadata={"previous_assignee_id": ticket.responder_id, "assignee_id": chosen.id},
            responder_id=chosen.id,
        )

    def _request_close(self, ticket: Ticket, actor: Actor, *, now: datetime, **_: Any) -> TicketChange:
        return self._finish(
            ticket,
            actor,
            TicketAction.REQUEST_CLOSE,
            "Querent requested to close the ticket.",
            now=now,
            status=TicketStatus.PENDING_CLOSE_APPROVAL,
        )

    def _approve_close(self, ticket: Ticket, actor: Actor, *, now: datetime, **_: Any) -> TicketChange:
        return self._finish(
            ticket,
            actor,
            TicketAction.APPROVE_CLOSE,
            "Ticket closure approved.",
            now=now,
            status=TicketStatus.CLOSED,
            closed_at=now,
        )

    def _reject_close(self, ticket: Ticket, actor: Actor, *, now: datetime, reason: str | None, **_: Any) -> TicketChange:
        details = "Ticket closure rejected."
        if reason and reason.strip():
            details = f"{details} Reason: {reason.strip()}"
        return self._finish(
            ticket, actor, TicketAction.REJECT_CLOSE, details, now=now, status=TicketStatus.IN_PROGRESS
        )

    def _force_close(self, ticket: Ticket, actor: Actor, *, now: datetime, **_: Any) -> TicketChange:
        return self._finish(
            ticket,
            actor,
            TicketAction.FORCE_CLOSE,
            f"{actor.role.label} closed the ticket.",
            now=now,
            status=TicketStatus.CLOSED,
            closed_at=now,
        )

    def _reopen(
        self, ticket: Ticket, actor: Actor, *, now: datetime, assignee: User | None, reason: str | None
    ) -> TicketChange:
        reason = _require_text(reason, "reason").strip()
        is_querent = actor.user_id == ticket.querent_id
        if actor.is_privileged and (assignee is not None or not is_querent):
            chosen = self._require_assignee(ticket, assignee)
            return self._finish(
                ticket,
                actor,
                TicketAction.REOPEN,
                f"Ticket reopened and assigned to a responder. Reason: {reason}",
                now=now,
                status=TicketStatus.ASSIGNED,
                metadata={"assignee_id": chosen.id, "reason": reason},
                responder_id=chosen.id,
                closed_at=None,
            )
        return self._finish(
            ticket,
            actor,
            TicketAction.REOPEN,
            f"Ticket reopened for approval. Reason: {reason}",
            now=now,
            status=TicketStatus.PENDING_APPROVAL,
            metadata={"reason": reason},
            responder_id=None,
            closed_at=None,
        )

    def _require_assignee(self, ticket: Ticket, assignee: User | None) -> User:
        if assignee is None:
            raise InvalidTransitionError("An assignee must be chosen", field="assignee_id")
        if assignee.id == ticket.querent_id:
            raise MembershipViolationError("The querent cannot be assigned to their own ticket", field="assignee_id")
        if assignee.role_in(ticket.project_id) is not Role.MEMBER:
            raise MembershipViolationError(
                f"User {assignee.id} does not hold the member role in project {ticket.project_id}",
                field="assignee_id",
            )
        return assignee

    def _finish(
        self,
        ticket: Ticket,
        actor: Actor,
        action: TicketAction,
        details: str,
        *,
        now: datetime,
        status: TicketStatus | None = None,
        metadata: Mapping[str, Any] | None = None,
        **changes: Any,
    ) -> TicketChange:
        target = status or ticket.status
        self._state_machine.assert_transition(ticket.status, target)
        entry = self._audit.record(
            ticket,
            actor,
            action,
            details,
            now=now,
            from_status=ticket.status,
            to_status=target,
            metadata=metadata,
        )
        after = replace(
            ticket,
            status=target,
            updated_at=now,
            version=ticket.version + 1,
            audit_log=AuditTrail.append(ticket.audit_log, entry),
            **changes,
        )
        return TicketChange(before=ticket, after=after, action=action, audit=entry)
