"""Database models and utilities."""

from .models import (
    MembershipTable,
    ProjectTable,
    TicketAuditLogTable,
    TicketMessageTable,
    TicketTable,
    UserTable,
)

__all__ = [
    "MembershipTable",
    "ProjectTable",
    "TicketAuditLogTable",
    "TicketMessageTable",
    "TicketTable",
    "UserTable",
]
