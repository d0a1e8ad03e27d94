"""Error taxonomy for the ticket workflow.

Every error carries a stable ``kind`` code and, where one applies, the
``field`` that caused it so callers can render an actionable message.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Ticket


class HelpdeskError(RuntimeError):
    """Base error for ticket workflow issues."""

    kind = "helpdesk_error"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict[str, str | None]:
        return {"kind": self.kind, "message": self.message, "field": self.field}


class InvalidTransitionError(HelpdeskError):
    """Raised when a ticket transition is illegal from the current state or for the actor."""

    kind = "invalid_transition"


class InvalidMessageActionError(HelpdeskError):
    """Raised when a message action is illegal for the message state or the actor."""

    kind = "invalid_message_action"


class TicketNotOpenForMessagesError(HelpdeskError):
    """Raised when sending a message while the ticket is approval-gated or terminal."""

    kind = "ticket_not_open_for_messages"


class NoMediatorAssignedError(HelpdeskError):
    """Raised when a ticket is created in a project without a mediator."""

    kind = "no_mediator_assigned"


class MembershipViolationError(HelpdeskError):
    """Raised when a querent or assignee does not satisfy the role constraints."""

    kind = "membership_violation"


class PersistenceFailureError(HelpdeskError):
    """Raised when the store rejects a write.

    ``authoritative`` holds the last durable snapshot of the ticket so callers
    that applied the change optimistically can revert to it.
    """

    kind = "persistence_failure"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        authoritative: "Ticket | None" = None,
    ) -> None:
        super().__init__(message, field=field)
        self.authoritative = authoritative


class ConcurrentModificationError(PersistenceFailureError):
    """Raised when optimistic version conflicts outlast the configured retries."""

    kind = "concurrent_modification"


class StaleTicketError(HelpdeskError):
    """Raised by the repository when the stored version moved underneath a write."""

    kind = "stale_ticket"


class NotFoundError(HelpdeskError):
    """Base error for unknown identifiers."""

    kind = "not_found"


class TicketNotFoundError(NotFoundError):
    """Raised when an operation targets a non-existent ticket."""

    kind = "ticket_not_found"


class MessageNotFoundError(NotFoundError):
    """Raised when an operation targets a non-existent message."""

    kind = "message_not_found"


class UserNotFoundError(NotFoundError):
    kind = "user_not_found"


class ProjectNotFoundError(NotFoundError):
    kind = "project_not_found"
