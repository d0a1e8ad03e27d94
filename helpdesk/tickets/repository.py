from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from helpdesk.db.models import TicketAuditLogTable, TicketMessageTable, TicketTable
from helpdesk.memberships.models import Role

from .actions import TicketAction
from .errors import PersistenceFailureError, StaleTicketError
from .models import AuditLogEntry, Message, MessageStatus, Ticket, TicketChange
from .state import TicketStatus


class TicketRepository:
    """Persistence helper wrapping `tickets`, `ticket_messages` and audit logs.

    A :class:`TicketChange` is written in a single transaction guarded by the
    ticket's ``version`` column, so a state change and its audit entry are
    committed together or not at all.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def apply(self, change: TicketChange) -> None:
        ticket = change.after
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if change.before is None:
                        session.add(self._ticket_to_table(ticket))
                        await session.flush()
                    else:
                        result = await session.execute(
                            update(TicketTable)
                            .where(TicketTable.id == ticket.id, TicketTable.version == change.before.version)
                            .values(
                                title=ticket.title,
                                description=ticket.description,
                                status=ticket.status.value,
                                responder_id=ticket.responder_id,
                                updated_at=ticket.updated_at,
                                closed_at=ticket.closed_at,
                                version=ticket.version,
                            )
                            .execution_options(synchronize_session=False)
                        )
                        if result.rowcount != 1:
                            raise StaleTicketError(
                                f"Ticket {ticket.id} changed since version {change.before.version}",
                                field="version",
                            )

                    for message in change.new_messages:
                        session.add(self._message_to_table(message))
                    for message in change.updated_messages:
                        result = await session.execute(
                            update(TicketMessageTable)
                            .where(
                                TicketMessageTable.id == message.id,
                                TicketMessageTable.status == MessageStatus.PENDING_APPROVAL.value,
                            )
                            .values(content=message.content, status=message.status.value)
                            .execution_options(synchronize_session=False)
                        )
                        if result.rowcount != 1:
                            raise StaleTicketError(
                                f"Message {message.id} is no longer pending", field="message_id"
                            )
                    session.add(self._audit_to_table(change.audit))
        except SQLAlchemyError as exc:
            raise PersistenceFailureError(
                f"Failed to persist {change.action.value} for ticket {ticket.id}",
                authoritative=change.before,
            ) from exc

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            ticket_row = await session.get(TicketTable, ticket_id)
            if ticket_row is None:
                return None

            message_result = await session.execute(
                select(TicketMessageTable)
                .where(TicketMessageTable.ticket_id == ticket_id)
                .order_by(TicketMessageTable.position.asc())
            )
            audit_result = await session.execute(
                select(TicketAuditLogTable)
                .where(TicketAuditLogTable.ticket_id == ticket_id)
                .order_by(TicketAuditLogTable.created_at.asc(), TicketAuditLogTable.sequence.asc())
            )
            messages = [self._table_to_message(row) for row in message_result.scalars().all()]
            audits = [self._table_to_audit(row) for row in audit_result.scalars().all()]
        return self._table_to_ticket(ticket_row, messages, audits)

    async def list_tickets(
        self,
        *,
        project_id: str | None = None,
        status: TicketStatus | None = None,
        with_children: bool = True,
    ) -> list[Ticket]:
        async with self._session_factory() as session:
            query = select(TicketTable)
            if project_id is not None:
                query = query.where(TicketTable.project_id == project_id)
            if status is not None:
                query = query.where(TicketTable.status == status.value)
            result = await session.execute(query.order_by(TicketTable.created_at.desc(), TicketTable.id.asc()))
            rows = list(result.scalars().all())
            if not rows:
                return []
            if not with_children:
                return [self._table_to_ticket(row, [], []) for row in rows]

            ticket_ids = [row.id for row in rows]
            message_result = await session.execute(
                select(TicketMessageTable)
                .where(TicketMessageTable.ticket_id.in_(ticket_ids))
                .order_by(TicketMessageTable.position.asc())
            )
            audit_result = await session.execute(
                select(TicketAuditLogTable)
                .where(TicketAuditLogTable.ticket_id.in_(ticket_ids))
                .order_by(TicketAuditLogTable.created_at.asc(), TicketAuditLogTable.sequence.asc())
            )
            messages: dict[str, list[Message]] = defaultdict(list)
            for message_row in message_result.scalars().all():
                messages[message_row.ticket_id].append(self._table_to_message(message_row))
            audits: dict[str, list[AuditLogEntry]] = defaultdict(list)
            for audit_row in audit_result.scalars().all():
                audits[audit_row.ticket_id].append(self._table_to_audit(audit_row))

        return [self._table_to_ticket(row, messages[row.id], audits[row.id]) for row in rows]

    @staticmethod
    def _ticket_to_table(ticket: Ticket) -> TicketTable:
        return TicketTable(
            id=ticket.id,
            project_id=ticket.project_id,
            title=ticket.title,
            description=ticket.description,
            original_description=ticket.original_description,
            status=ticket.status.value,
            querent_id=ticket.querent_id,
            responder_id=ticket.responder_id,
            mediator_id=ticket.mediator_id,
            version=ticket.version,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            closed_at=ticket.closed_at,
        )

    @staticmethod
    def _message_to_table(message: Message) -> TicketMessageTable:
        return TicketMessageTable(
            id=message.id,
            ticket_id=message.ticket_id,
            position=message.position,
            sender_id=message.sender_id,
            content=message.content,
            original_content=message.original_content,
            status=message.status.value,
            created_at=message.timestamp,
        )

    @staticmethod
    def _audit_to_table(entry: AuditLogEntry) -> TicketAuditLogTable:
        return TicketAuditLogTable(
            id=entry.id,
            ticket_id=entry.ticket_id,
            sequence=entry.sequence,
            user_id=entry.user_id,
            role=entry.role.value,
            action=entry.action.value,
            details=entry.details,
            from_status=entry.from_status.value if entry.from_status else None,
            to_status=entry.to_status.value if entry.to_status else None,
            metadata_=dict(entry.metadata),
            created_at=entry.timestamp,
        )

    @staticmethod
    def _table_to_ticket(
        row: TicketTable,
        messages: Sequence[Message],
        audits: Sequence[AuditLogEntry],
    ) -> Ticket:
        return Ticket(
            id=row.id,
            project_id=row.project_id,
            title=row.title,
            description=row.description,
            original_description=row.original_description,
            status=TicketStatus(row.status),
            querent_id=row.querent_id,
            responder_id=row.responder_id,
            mediator_id=row.mediator_id,
            created_at=_ensure_datetime(row.created_at),
            updated_at=_ensure_datetime(row.updated_at),
            closed_at=_ensure_datetime(row.closed_at) if row.closed_at is not None else None,
            version=row.version,
            messages=tuple(messages),
            audit_log=tuple(audits),
        )

    @staticmethod
    def _table_to_message(row: TicketMessageTable) -> Message:
        return Message(
            id=row.id,
            ticket_id=row.ticket_id,
            sender_id=row.sender_id,
            content=row.content,
            original_content=row.original_content,
            status=MessageStatus(row.status),
            timestamp=_ensure_datetime(row.created_at),
            position=row.position,
        )

    @staticmethod
    def _table_to_audit(row: TicketAuditLogTable) -> AuditLogEntry:
        return AuditLogEntry(
            id=row.id,
            ticket_id=row.ticket_id,
            sequence=row.sequence,
            user_id=row.user_id,
            role=Role(row.role),
            action=TicketAction(row.action),
            details=row.details,
            timestamp=_ensure_datetime(row.created_at),
            from_status=TicketStatus(row.from_status) if row.from_status else None,
            to_status=TicketStatus(row.to_status) if row.to_status else None,
            metadata=dict(row.metadata_ or {}),
        )


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")
