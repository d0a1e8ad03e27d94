from __future__ import annotations

from enum import Enum
from typing import Mapping

from .actions import TicketAction
from .errors import InvalidTransitionError


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    PENDING_APPROVAL = "pending_approval"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    WAITING_FEEDBACK = "waiting_feedback"
    PENDING_CLOSE_APPROVAL = "pending_close_approval"
    CLOSED = "closed"
    REJECTED = "rejected"


TERMINAL_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.CLOSED, TicketStatus.REJECTED})
REVIEW_STATUSES: frozenset[TicketStatus] = frozenset(
    {TicketStatus.PENDING_APPROVAL, TicketStatus.PENDING_CLOSE_APPROVAL}
)
ACTIVE_STATUSES: frozenset[TicketStatus] = frozenset(
    {TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS, TicketStatus.WAITING_FEEDBACK}
)


class TicketStateMachine:
    """Validate ticket lifecycle transitions."""

    _TRANSITIONS: Mapping[TicketStatus, frozenset[TicketStatus]] = {
        TicketStatus.PENDING_APPROVAL: frozenset({TicketStatus.ASSIGNED, TicketStatus.REJECTED}),
        TicketStatus.ASSIGNED: frozenset(
            {
                TicketStatus.IN_PROGRESS,
                TicketStatus.WAITING_FEEDBACK,
                TicketStatus.PENDING_CLOSE_APPROVAL,
                TicketStatus.CLOSED,
            }
        ),
        TicketStatus.IN_PROGRESS: frozenset(
            {TicketStatus.WAITING_FEEDBACK, TicketStatus.PENDING_CLOSE_APPROVAL, TicketStatus.CLOSED}
        ),
        TicketStatus.WAITING_FEEDBACK: frozenset(
            {TicketStatus.IN_PROGRESS, TicketStatus.PENDING_CLOSE_APPROVAL, TicketStatus.CLOSED}
        ),
        TicketStatus.PENDING_CLOSE_APPROVAL: frozenset({TicketStatus.CLOSED, TicketStatus.IN_PROGRESS}),
        TicketStatus.CLOSED: frozenset({TicketStatus.PENDING_APPROVAL, TicketStatus.ASSIGNED}),
        TicketStatus.REJECTED: frozenset({TicketStatus.PENDING_APPROVAL, TicketStatus.ASSIGNED}),
    }

    # Source states from which each ticket-level intent may be issued.
    _ACTION_SOURCES: Mapping[TicketAction, frozenset[TicketStatus]] = {
        TicketAction.APPROVE_AND_ASSIGN: frozenset({TicketStatus.PENDING_APPROVAL}),
        TicketAction.REJECT: frozenset({TicketStatus.PENDING_APPROVAL}),
        TicketAction.CHANGE_ASSIGNEE: ACTIVE_STATUSES | {TicketStatus.PENDING_CLOSE_APPROVAL},
        TicketAction.REQUEST_CLOSE: ACTIVE_STATUSES,
        TicketAction.APPROVE_CLOSE: frozenset({TicketStatus.PENDING_CLOSE_APPROVAL}),
        TicketAction.REJECT_CLOSE: frozenset({TicketStatus.PENDING_CLOSE_APPROVAL}),
        TicketAction.FORCE_CLOSE: ACTIVE_STATUSES | {TicketStatus.PENDING_CLOSE_APPROVAL},
        TicketAction.REOPEN: TERMINAL_STATUSES,
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.PENDING_APPROVAL

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        if current == new:
            return True
        return new in cls._TRANSITIONS.get(current, frozenset())

    @classmethod
    def assert_transition(cls, current: TicketStatus, new: TicketStatus) -> None:
        if not cls.can_transition(current, new):
            raise InvalidTransitionError(
                f"Invalid ticket status transition: {current.value} -> {new.value}", field="status"
            )

    @classmethod
    def allows(cls, action: TicketAction, current: TicketStatus) -> bool:
        return current in cls._ACTION_SOURCES.get(action, frozenset())

    @classmethod
    def assert_allows(cls, action: TicketAction, current: TicketStatus) -> None:
        if not cls.allows(action, current):
            raise InvalidTransitionError(
                f"Cannot {action.value} a ticket in status {current.value}", field="status"
            )

    @staticmethod
    def is_terminal(status: TicketStatus) -> bool:
        return status in TERMINAL_STATUSES

    @staticmethod
    def accepts_messages(status: TicketStatus) -> bool:
        return status in ACTIVE_STATUSES

    @staticmethod
    def advances_on_approval(status: TicketStatus) -> bool:
        """Whether an approved participant message may move the ticket forward."""

        return status in ACTIVE_STATUSES
