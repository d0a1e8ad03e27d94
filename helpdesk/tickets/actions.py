from __future__ import annotations

from enum import Enum


class TicketAction(str, Enum):
    """Intents an actor may issue; values double as audit action codes."""

    CREATE = "CREATE"
    APPROVE_AND_ASSIGN = "APPROVE_AND_ASSIGN"
    REJECT = "REJECT"
    CHANGE_ASSIGNEE = "CHANGE_ASSIGNEE"
    REQUEST_CLOSE = "REQUEST_CLOSE"
    APPROVE_CLOSE = "APPROVE_CLOSE"
    REJECT_CLOSE = "REJECT_CLOSE"
    FORCE_CLOSE = "CLOSE_TICKET"
    REOPEN = "REOPEN"
    SEND_MESSAGE = "SEND_MESSAGE"
    APPROVE_MESSAGE = "APPROVE_MESSAGE"
    REJECT_MESSAGE = "REJECT_MESSAGE"
    EDIT_MESSAGE = "EDIT_MESSAGE"


TICKET_TRANSITIONS: frozenset[TicketAction] = frozenset(
    {
        TicketAction.APPROVE_AND_ASSIGN,
        TicketAction.REJECT,
        TicketAction.CHANGE_ASSIGNEE,
        TicketAction.REQUEST_CLOSE,
        TicketAction.APPROVE_CLOSE,
        TicketAction.REJECT_CLOSE,
        TicketAction.FORCE_CLOSE,
        TicketAction.REOPEN,
    }
)

MESSAGE_ACTIONS: frozenset[TicketAction] = frozenset(
    {
        TicketAction.APPROVE_MESSAGE,
        TicketAction.REJECT_MESSAGE,
        TicketAction.EDIT_MESSAGE,
    }
)
