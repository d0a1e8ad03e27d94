from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Sequence

from helpdesk.memberships.models import Role

from .actions import TicketAction
from .state import TicketStatus


class MessageStatus(str, Enum):
    """Moderation states of a single message."""

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    EDITED = "edited"

    @property
    def is_resolved(self) -> bool:
        return self is not MessageStatus.PENDING_APPROVAL

    @property
    def is_published(self) -> bool:
        return self in (MessageStatus.APPROVED, MessageStatus.EDITED)


@dataclass(slots=True)
class Message:
    """Message exchanged on a ticket; ``original_content`` never changes."""

    id: str
    ticket_id: str
    sender_id: str
    content: str
    original_content: str
    status: MessageStatus
    timestamp: datetime
    position: int = 0


@dataclass(slots=True)
class AuditLogEntry:
    """Append-only record of a state-changing action.

    ``role`` is the role the actor held when acting, not a later lookup.
    """

    id: str
    ticket_id: str
    sequence: int
    user_id: str
    role: Role
    action: TicketAction
    details: str
    timestamp: datetime
    from_status: TicketStatus | None = None
    to_status: TicketStatus | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Ticket:
    """Ticket aggregate bundling its messages and audit log."""

    id: str
    project_id: str
    title: str
    description: str
    original_description: str
    status: TicketStatus
    querent_id: str
    mediator_id: str
    created_at: datetime
    updated_at: datetime
    responder_id: str | None = None
    closed_at: datetime | None = None
    version: int = 1
    messages: Sequence[Message] = ()
    audit_log: Sequence[AuditLogEntry] = ()

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


@dataclass(slots=True)
class TicketChange:
    """Validated but not yet durable result of a transition.

    ``before`` is ``None`` for a newly created ticket. ``after`` may be shown
    optimistically but is authoritative only once the repository applied it.
    """

    before: Ticket | None
    after: Ticket
    action: TicketAction
    audit: AuditLogEntry
    new_messages: Sequence[Message] = ()
    updated_messages: Sequence[Message] = ()

    @property
    def expected_version(self) -> int | None:
        return None if self.before is None else self.before.version

    @property
    def message(self) -> Message | None:
        if self.new_messages:
            return self.new_messages[-1]
        if self.updated_messages:
            return self.updated_messages[-1]
        return None
