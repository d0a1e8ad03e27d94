from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from helpdesk.db.models import MembershipTable, ProjectTable, UserTable

from .models import Membership, Project, Role, User


class DirectoryRepository:
    """Read access to projects, users and their per-project roles.

    Writes are limited to seeding; administering memberships happens
    outside this service.
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

    async def save_project(self, project: Project) -> Project:
        created_at = project.created_at or datetime.now(timezone.utc)
        async with self._session_factory() as session:
            async with session.begin():
                await session.merge(ProjectTable(id=project.id, name=project.name, created_at=created_at))
        return Project(id=project.id, name=project.name, created_at=created_at)

    async def save_user(self, user: User) -> User:
        created_at = user.created_at or datetime.now(timezone.utc)
        async with self._session_factory() as session:
            async with session.begin():
                await session.merge(
                    UserTable(
                        id=user.id,
                        name=user.name,
                        is_global_admin=user.is_global_admin,
                        created_at=created_at,
                    )
                )
                await session.flush()
                await session.execute(delete(MembershipTable).where(MembershipTable.user_id == user.id))
                for membership in user.membership_list():
                    session.add(
                        MembershipTable(
                            user_id=user.id,
                            project_id=membership.project_id,
                            role=membership.role.value,
                        )
                    )
        return User(
            id=user.id,
            name=user.name,
            is_global_admin=user.is_global_admin,
            memberships=dict(user.memberships),
            created_at=created_at,
        )

    async def get_project(self, project_id: str) -> Project | None:
        async with self._session_factory() as session:
            row = await session.get(ProjectTable, project_id)
        if row is None:
            return None
        return Project(id=row.id, name=row.name, created_at=_ensure_datetime(row.created_at))

    async def list_projects(self) -> list[Project]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProjectTable).order_by(ProjectTable.created_at.asc(), ProjectTable.id.asc())
            )
            rows = result.scalars().all()
        return [Project(id=row.id, name=row.name, created_at=_ensure_datetime(row.created_at)) for row in rows]

    async def get_user(self, user_id: str) -> User | None:
        users = await self._load_users([user_id])
        return users[0] if users else None

    async def get_users(self, user_ids: Iterable[str]) -> dict[str, User]:
        """Return the known users among ``user_ids`` keyed by id; unknown ids are skipped."""

        users = await self._load_users(list(dict.fromkeys(user_ids)))
        return {user.id: user for user in users}

    async def list_users(self) -> list[User]:
        return await self._load_users(None)

    async def mediator_for(self, project_id: str) -> User | None:
        """Return the project's mediator: the earliest created holder of the mediator role."""

        async with self._session_factory() as session:
            result = await session.execute(
                select(UserTable.id)
                .join(MembershipTable, MembershipTable.user_id == UserTable.id)
                .where(
                    MembershipTable.project_id == project_id,
                    MembershipTable.role == Role.MEDIATOR.value,
                )
                .order_by(UserTable.created_at.asc(), UserTable.id.asc())
                .limit(1)
            )
            mediator_id = result.scalars().first()
        if mediator_id is None:
            return None
        return await self.get_user(mediator_id)

    async def _load_users(self, user_ids: list[str] | None) -> list[User]:
        if user_ids is not None and not user_ids:
            return []
        async with self._session_factory() as session:
            query = select(UserTable)
            memberships_query = select(MembershipTable)
            if user_ids is not None:
                query = query.where(UserTable.id.in_(user_ids))
                memberships_query = memberships_query.where(MembershipTable.user_id.in_(user_ids))
            result = await session.execute(query.order_by(UserTable.created_at.asc(), UserTable.id.asc()))
            rows = result.scalars().all()
            membership_result = await session.execute(memberships_query)
            memberships: dict[str, list[Membership]] = defaultdict(list)
            for membership_row in membership_result.scalars().all():
                memberships[membership_row.user_id].append(
                    Membership(project_id=membership_row.project_id, role=Role(membership_row.role))
                )

        return [
            User.with_memberships(
                row.id,
                row.name,
                memberships[row.id],
                is_global_admin=row.is_global_admin,
                created_at=_ensure_datetime(row.created_at),
            )
            for row in rows
        ]


def _ensure_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
