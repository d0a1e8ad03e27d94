"""Ticket moderation workflow: lifecycle, message moderation, visibility and audit."""

from .actions import MESSAGE_ACTIONS, TICKET_TRANSITIONS, TicketAction
from .errors import (
    ConcurrentModificationError,
    HelpdeskError,
    InvalidMessageActionError,
    InvalidTransitionError,
    MembershipViolationError,
    MessageNotFoundError,
    NoMediatorAssignedError,
    NotFoundError,
    PersistenceFailureError,
    ProjectNotFoundError,
    StaleTicketError,
    TicketNotFoundError,
    TicketNotOpenForMessagesError,
    UserNotFoundError,
)
from .models import AuditLogEntry, Message, MessageStatus, Ticket, TicketChange
from .moderation import MessageModeration
from .repository import TicketRepository
from .service import TicketService, TransitionParams
from .state import TicketStateMachine, TicketStatus
from .visibility import (
    TicketFilters,
    Viewer,
    list_tickets_for_user,
    list_tickets_for_viewer,
    project_audit_label,
    project_audit_log,
    project_message_views,
    project_visible_messages,
)
from .workflow import TicketWorkflow

__all__ = [
    "AuditLogEntry",
    "ConcurrentModificationError",
    "HelpdeskError",
    "InvalidMessageActionError",
    "InvalidTransitionError",
    "MESSAGE_ACTIONS",
    "MembershipViolationError",
    "Message",
    "MessageModeration",
    "MessageNotFoundError",
    "MessageStatus",
    "NoMediatorAssignedError",
    "NotFoundError",
    "PersistenceFailureError",
    "ProjectNotFoundError",
    "StaleTicketError",
    "TICKET_TRANSITIONS",
    "Ticket",
    "TicketAction",
    "TicketChange",
    "TicketFilters",
    "TicketNotFoundError",
    "TicketNotOpenForMessagesError",
    "TicketRepository",
    "TicketService",
    "TicketStateMachine",
    "TicketStatus",
    "TicketWorkflow",
    "TransitionParams",
    "UserNotFoundError",
    "Viewer",
    "list_tickets_for_user",
    "list_tickets_for_viewer",
    "project_audit_label",
    "project_audit_log",
    "project_message_views",
    "project_visible_messages",
]
