"""Message moderation pipeline.

Participant messages wait for a mediator; mediator messages are published
immediately. Whenever a message becomes published the ticket may advance,
keyed on who originally sent the message rather than who approved it.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Mapping

from helpdesk.memberships.models import Actor

from .actions import MESSAGE_ACTIONS, TicketAction
from .audit import AuditTrail
from .authorization import is_permitted
from .errors import InvalidMessageActionError, MessageNotFoundError, TicketNotOpenForMessagesError
from .models import Message, MessageStatus, Ticket, TicketChange
from .state import TicketStateMachine, TicketStatus

_RESOLUTIONS: Mapping[TicketAction, MessageStatus] = {
    TicketAction.APPROVE_MESSAGE: MessageStatus.APPROVED,
    TicketAction.REJECT_MESSAGE: MessageStatus.REJECTED,
    TicketAction.EDIT_MESSAGE: MessageStatus.EDITED,
}

_DETAILS: Mapping[TicketAction, str] = {
    TicketAction.APPROVE_MESSAGE: "Message approved.",
    TicketAction.REJECT_MESSAGE: "Message rejected.",
    TicketAction.EDIT_MESSAGE: "Message edited and approved.",
}


def _new_id() -> str:
    return str(uuid.uuid4())


class MessageModeration:
    """Validate message intents and compute their effects on the ticket."""

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

    def send(self, ticket: Ticket, actor: Actor, content: str, *, now: datetime) -> TicketChange:
        if not is_permitted(actor, TicketAction.SEND_MESSAGE, ticket):
            raise InvalidMessageActionError(
                f"User {actor.user_id} is not a participant of ticket {ticket.id}", field="sender_id"
            )
        if not self._state_machine.accepts_messages(ticket.status):
            raise TicketNotOpenForMessagesError(
                f"Ticket {ticket.id} is {ticket.status.value}; messages cannot be sent", field="status"
            )
        if content is None or not content.strip():
            raise InvalidMessageActionError("Message content must not be empty", field="content")

        status = MessageStatus.APPROVED if actor.is_privileged else MessageStatus.PENDING_APPROVAL
        message = Message(
            id=self._id_factory(),
            ticket_id=ticket.id,
            sender_id=actor.user_id,
            content=content,
            original_content=content,
            status=status,
            timestamp=now,
            position=len(ticket.messages),
        )
        target = self._status_after_publish(ticket, message)
        entry = self._audit.record(
            ticket,
            actor,
            TicketAction.SEND_MESSAGE,
            f"Message sent (status: {status.value}).",
            now=now,
            from_status=ticket.status,
            to_status=target,
            metadata={"message_id": message.id, "message_status": status.value},
        )
        after = replace(
            ticket,
            status=target,
            messages=(*ticket.messages, message),
            audit_log=AuditTrail.append(ticket.audit_log, entry),
            updated_at=now,
            version=ticket.version + 1,
        )
        return TicketChange(
            before=ticket, after=after, action=TicketAction.SEND_MESSAGE, audit=entry, new_messages=(message,)
        )

    def act(
        self,
        ticket: Ticket,
        message_id: str,
        actor: Actor,
        action: TicketAction,
        *,
        now: datetime,
        new_content: str | None = None,
    ) -> TicketChange:
        if action not in MESSAGE_ACTIONS:
            raise InvalidMessageActionError(f"{action.value} is not a message action", field="action")
        message = ticket.find_message(message_id)
        if message is None:
            raise MessageNotFoundError(f"Message {message_id} not found on ticket {ticket.id}", field="message_id")
        if not is_permitted(actor, action, ticket):
            raise InvalidMessageActionError(
                f"Role {actor.role.value} may not {action.value}", field="actor_role"
            )
        if message.status.is_resolved:
            raise InvalidMessageActionError(
                f"Message {message.id} is already {message.status.value}", field="status"
            )

        resolved = replace(message, status=_RESOLUTIONS[action])
        if action is TicketAction.EDIT_MESSAGE:
            if new_content is None or not new_content.strip():
                raise InvalidMessageActionError("Edited content must not be empty", field="new_content")
            resolved = replace(resolved, content=new_content)

        target = self._status_after_publish(ticket, resolved)
        entry = self._audit.record(
            ticket,
            actor,
            action,
            _DETAILS[action],
            now=now,
            from_status=ticket.status,
            to_status=target,
            metadata={"message_id": message.id, "message_status": resolved.status.value},
        )
        after = replace(
            ticket,
            status=target,
            messages=tuple(resolved if item.id == message.id else item for item in ticket.messages),
            audit_log=AuditTrail.append(ticket.audit_log, entry),
            updated_at=now,
            version=ticket.version + 1,
        )
        return TicketChange(before=ticket, after=after, action=action, audit=entry, updated_messages=(resolved,))

    def _status_after_publish(self, ticket: Ticket, message: Message) -> TicketStatus:
        if not message.status.is_published:
            return ticket.status
        if not self._state_machine.advances_on_approval(ticket.status):
            return ticket.status
        if message.sender_id == ticket.querent_id:
            target = TicketStatus.IN_PROGRESS
        elif ticket.responder_id is not None and message.sender_id == ticket.responder_id:
            target = TicketStatus.WAITING_FEEDBACK
        else:
            return ticket.status
        self._state_machine.assert_transition(ticket.status, target)
        return target
