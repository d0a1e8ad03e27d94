"""Audit trail helpers.

Entries are appended, never edited. Ordering is by timestamp with ties
broken by insertion sequence. Committed entries are also emitted on the
``helpdesk.tickets.audit`` logger.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Sequence

from helpdesk.memberships.models import Actor

from .actions import TicketAction
from .models import AuditLogEntry, Ticket
from .state import TicketStatus

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class AuditTrail:
    """Builds entries for a ticket's append-only log."""

    def __init__(self, *, id_factory: Callable[[], str] | None = None) -> None:
        self._id_factory = id_factory or _new_id

    def record(
        self,
        ticket: Ticket,
        actor: Actor,
        action: TicketAction,
        details: str,
        *,
        now: datetime,
        from_status: TicketStatus | None = None,
        to_status: TicketStatus | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> AuditLogEntry:
        return AuditLogEntry(
            id=self._id_factory(),
            ticket_id=ticket.id,
            sequence=len(ticket.audit_log),
            user_id=actor.user_id,
            role=actor.role,
            action=action,
            details=details,
            timestamp=now,
            from_status=from_status,
            to_status=to_status,
            metadata=dict(metadata or {}),
        )

    @staticmethod
    def append(entries: Sequence[AuditLogEntry], entry: AuditLogEntry) -> tuple[AuditLogEntry, ...]:
        return (*entries, entry)


def ordered(entries: Iterable[AuditLogEntry]) -> list[AuditLogEntry]:
    """Return entries sorted by timestamp, insertion sequence breaking ties."""

    return sorted(entries, key=lambda entry: (entry.timestamp, entry.sequence))


def emit(entry: AuditLogEntry) -> None:
    """Forward a committed entry to the logging collaborator."""

    logger.info(
        "audit ticket=%s action=%s role=%s details=%s",
        entry.ticket_id,
        entry.action.value,
        entry.role.value,
        entry.details,
    )
    logger.debug("audit ticket=%s entry=%s actor=%s", entry.ticket_id, entry.id, entry.user_id)
