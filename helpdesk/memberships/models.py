from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping


class Role(str, Enum):
    """Per-project roles a user may hold."""

    MEMBER = "member"
    MEDIATOR = "mediator"
    ADMIN = "admin"

    @property
    def label(self) -> str:
        return self.value.title()

    @property
    def is_privileged(self) -> bool:
        return self in PRIVILEGED_ROLES


PRIVILEGED_ROLES: frozenset[Role] = frozenset({Role.MEDIATOR, Role.ADMIN})


@dataclass(slots=True)
class Project:
    """Project that owns tickets."""

    id: str
    name: str
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Membership:
    """A single (project, role) assignment."""

    project_id: str
    role: Role


@dataclass(slots=True)
class User:
    """Directory user with at most one role per project."""

    id: str
    name: str
    is_global_admin: bool = False
    memberships: Mapping[str, Role] = field(default_factory=dict)
    created_at: datetime | None = None

    @classmethod
    def with_memberships(
        cls,
        id: str,
        name: str,
        memberships: Iterable[Membership],
        *,
        is_global_admin: bool = False,
        created_at: datetime | None = None,
    ) -> "User":
        roles: dict[str, Role] = {}
        for membership in memberships:
            existing = roles.get(membership.project_id)
            if existing is not None and existing != membership.role:
                raise ValueError(
                    f"User {id} already holds role {existing.value} in project {membership.project_id}"
                )
            roles[membership.project_id] = membership.role
        return cls(id=id, name=name, is_global_admin=is_global_admin, memberships=roles, created_at=created_at)

    def role_in(self, project_id: str) -> Role | None:
        """Return the effective role in ``project_id``; global admins are admins everywhere."""

        if self.is_global_admin:
            return Role.ADMIN
        return self.memberships.get(project_id)

    def membership_list(self) -> list[Membership]:
        return [Membership(project_id=project_id, role=role) for project_id, role in self.memberships.items()]


@dataclass(frozen=True, slots=True)
class Actor:
    """User acting on a ticket together with the role held at that moment."""

    user_id: str
    role: Role

    @classmethod
    def for_project(cls, user: User, project_id: str) -> "Actor | None":
        role = user.role_in(project_id)
        if role is None:
            return None
        return cls(user_id=user.id, role=role)

    @property
    def is_privileged(self) -> bool:
        return self.role.is_privileged
