"""Capability table deciding who may issue which intent on a ticket.

Access is granted when the actor's role is listed for the action, or when
the actor stands in one of the listed relationships to the ticket.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from helpdesk.memberships.models import PRIVILEGED_ROLES, Actor, Role

from .actions import TicketAction
from .models import Ticket


class Relationship(str, Enum):
    QUERENT = "querent"
    RESPONDER = "responder"


@dataclass(frozen=True, slots=True)
class Permission:
    roles: frozenset[Role] = frozenset()
    relationships: frozenset[Relationship] = frozenset()


_MODERATORS = Permission(roles=PRIVILEGED_ROLES)

PERMISSIONS: Mapping[TicketAction, Permission] = {
    TicketAction.CREATE: Permission(roles=frozenset(Role)),
    TicketAction.APPROVE_AND_ASSIGN: _MODERATORS,
    TicketAction.REJECT: _MODERATORS,
    TicketAction.CHANGE_ASSIGNEE: _MODERATORS,
    TicketAction.REQUEST_CLOSE: Permission(relationships=frozenset({Relationship.QUERENT})),
    TicketAction.APPROVE_CLOSE: _MODERATORS,
    TicketAction.REJECT_CLOSE: _MODERATORS,
    TicketAction.FORCE_CLOSE: _MODERATORS,
    TicketAction.REOPEN: Permission(roles=PRIVILEGED_ROLES, relationships=frozenset({Relationship.QUERENT})),
    TicketAction.SEND_MESSAGE: Permission(
        roles=PRIVILEGED_ROLES,
        relationships=frozenset({Relationship.QUERENT, Relationship.RESPONDER}),
    ),
    TicketAction.APPROVE_MESSAGE: _MODERATORS,
    TicketAction.REJECT_MESSAGE: _MODERATORS,
    TicketAction.EDIT_MESSAGE: _MODERATORS,
}


def relationships_of(actor: Actor, ticket: Ticket | None) -> frozenset[Relationship]:
    if ticket is None:
        return frozenset()
    found: set[Relationship] = set()
    if actor.user_id == ticket.querent_id:
        found.add(Relationship.QUERENT)
    if ticket.responder_id is not None and actor.user_id == ticket.responder_id:
        found.add(Relationship.RESPONDER)
    return frozenset(found)


def is_permitted(actor: Actor, action: TicketAction, ticket: Ticket | None = None) -> bool:
    """Return whether ``actor`` may issue ``action`` against ``ticket``."""

    permission = PERMISSIONS.get(action)
    if permission is None:
        return False
    if actor.role in permission.roles:
        return True
    return bool(permission.relationships & relationships_of(actor, ticket))


def permitted_actions(actor: Actor, ticket: Ticket | None = None) -> frozenset[TicketAction]:
    """Every action the capability table grants ``actor``, ignoring ticket state."""

    return frozenset(action for action in PERMISSIONS if is_permitted(actor, action, ticket))
