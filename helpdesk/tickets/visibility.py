"""Read-side projection of tickets for a given viewer.

Mediators and admins see every message and who did what. Everyone else sees
published messages plus their own pending ones, and audit actors only by
role. The hiding happens here, in the data returned, not at render time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping

from helpdesk.memberships.models import Role, User

from . import audit
from .models import AuditLogEntry, Message, MessageStatus, Ticket
from .state import TicketStatus

UNKNOWN_USER = "Unknown User"


@dataclass(frozen=True, slots=True)
class Viewer:
    """User reading tickets with the role held in the project in scope.

    ``project_id`` of ``None`` means no project scope (e.g. a global admin
    overview); otherwise only tickets of that project are in scope.
    """

    user_id: str
    role: Role | None
    project_id: str | None = None

    @classmethod
    def for_user(cls, user: User, project_id: str | None = None) -> "Viewer":
        if project_id is None:
            role = Role.ADMIN if user.is_global_admin else None
        else:
            role = user.role_in(project_id)
        return cls(user_id=user.id, role=role, project_id=project_id)

    @property
    def is_privileged(self) -> bool:
        return self.role is not None and self.role.is_privileged


@dataclass(frozen=True, slots=True)
class TicketFilters:
    """Secondary predicates applied after the role filter."""

    status: TicketStatus | None = None
    assignee_id: str | None = None
    project_id: str | None = None

    def matches(self, ticket: Ticket) -> bool:
        if self.status is not None and ticket.status is not self.status:
            return False
        if self.assignee_id is not None and ticket.responder_id != self.assignee_id:
            return False
        if self.project_id is not None and ticket.project_id != self.project_id:
            return False
        return True


@dataclass(frozen=True, slots=True)
class MessageView:
    id: str
    sender_label: str
    content: str
    status: MessageStatus
    timestamp: datetime
    sender_id: str | None = None
    original_content: str | None = None


@dataclass(frozen=True, slots=True)
class AuditEntryView:
    id: str
    action: str
    details: str
    actor_label: str
    role: Role
    timestamp: datetime
    from_status: TicketStatus | None = None
    to_status: TicketStatus | None = None
    user_id: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


def is_message_visible(message: Message, viewer: Viewer) -> bool:
    if message.status.is_published:
        return True
    if viewer.is_privileged:
        return True
    return message.sender_id == viewer.user_id and message.status is MessageStatus.PENDING_APPROVAL


def project_visible_messages(ticket: Ticket, viewer: Viewer) -> list[Message]:
    """Return the ticket's messages ``viewer`` may see, in chronological order."""

    ordered = sorted(ticket.messages, key=lambda message: (message.timestamp, message.position))
    return [message for message in ordered if is_message_visible(message, viewer)]


def _name_of(user_id: str, directory: Mapping[str, User] | None) -> str:
    user = (directory or {}).get(user_id)
    return user.name if user is not None else UNKNOWN_USER


def project_audit_label(
    entry: AuditLogEntry,
    viewer_role: Role | None,
    *,
    directory: Mapping[str, User] | None = None,
) -> str:
    """Actor label for an audit entry: ``name (role)`` for privileged viewers, ``role`` otherwise."""

    if viewer_role is not None and viewer_role.is_privileged:
        return f"{_name_of(entry.user_id, directory)} ({entry.role.label})"
    return entry.role.label


def project_audit_log(
    ticket: Ticket,
    viewer: Viewer,
    *,
    directory: Mapping[str, User] | None = None,
) -> list[AuditEntryView]:
    views: list[AuditEntryView] = []
    for entry in audit.ordered(ticket.audit_log):
        views.append(
            AuditEntryView(
                id=entry.id,
                action=entry.action.value,
                details=entry.details,
                actor_label=project_audit_label(entry, viewer.role, directory=directory),
                role=entry.role,
                timestamp=entry.timestamp,
                from_status=entry.from_status,
                to_status=entry.to_status,
                user_id=entry.user_id if viewer.is_privileged else None,
                metadata=dict(entry.metadata) if viewer.is_privileged else {},
            )
        )
    return views


def sender_label(
    message: Message,
    ticket: Ticket,
    viewer: Viewer,
    *,
    directory: Mapping[str, User] | None = None,
) -> str:
    sender = (directory or {}).get(message.sender_id)
    sender_role = sender.role_in(ticket.project_id) if sender is not None else None
    if viewer.is_privileged:
        if sender is None:
            return UNKNOWN_USER
        return f"{sender.name} ({sender_role.label if sender_role else 'User'})"
    if message.sender_id == viewer.user_id:
        return "You"
    if message.sender_id == ticket.querent_id:
        return "Creator"
    if message.sender_id == ticket.responder_id:
        return "Assignee"
    if sender_role is Role.MEDIATOR:
        return "Mediator"
    return "System"


def project_message_views(
    ticket: Ticket,
    viewer: Viewer,
    *,
    directory: Mapping[str, User] | None = None,
) -> list[MessageView]:
    return [
        MessageView(
            id=message.id,
            sender_label=sender_label(message, ticket, viewer, directory=directory),
            content=message.content,
            status=message.status,
            timestamp=message.timestamp,
            sender_id=message.sender_id if viewer.is_privileged else None,
            original_content=message.original_content if viewer.is_privileged else None,
        )
        for message in project_visible_messages(ticket, viewer)
    ]


def can_view_ticket(ticket: Ticket, viewer: Viewer) -> bool:
    if viewer.project_id is not None and ticket.project_id != viewer.project_id:
        return False
    if viewer.is_privileged:
        return True
    return viewer.user_id in (ticket.querent_id, ticket.responder_id)


def list_tickets_for_viewer(
    tickets: Iterable[Ticket],
    viewer: Viewer,
    filters: TicketFilters | None = None,
) -> list[Ticket]:
    """Role filter first, then the optional secondary predicates; input order is kept."""

    filters = filters or TicketFilters()
    return [ticket for ticket in tickets if can_view_ticket(ticket, viewer) and filters.matches(ticket)]


def list_tickets_for_user(
    tickets: Iterable[Ticket],
    user: User,
    filters: TicketFilters | None = None,
) -> list[Ticket]:
    """Like :func:`list_tickets_for_viewer`, resolving the user's role per ticket project."""

    filters = filters or TicketFilters()
    visible: list[Ticket] = []
    for ticket in tickets:
        viewer = Viewer.for_user(user, ticket.project_id)
        if can_view_ticket(ticket, viewer) and filters.matches(ticket):
            visible.append(ticket)
    return visible
