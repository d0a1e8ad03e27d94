from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from helpdesk.memberships import DirectoryRepository, Membership, Project, Role, User
from helpdesk.tickets.repository import TicketRepository
from helpdesk.tickets.service import TicketService

PROJECT_ID = "project-p"
OTHER_PROJECT_ID = "project-q"
BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock advancing one minute per reading."""

    def __init__(self, start: datetime = BASE_TIME, step: timedelta = timedelta(minutes=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


def make_users() -> dict[str, User]:
    def member_of(*pairs: tuple[str, Role]) -> list[Membership]:
        return [Membership(project_id=project_id, role=role) for project_id, role in pairs]

    users = [
        User.with_memberships("alice", "Alice", member_of((PROJECT_ID, Role.MEMBER))),
        User.with_memberships("bob", "Bob", member_of((PROJECT_ID, Role.MEMBER))),
        User.with_memberships("charlie", "Charlie", member_of((PROJECT_ID, Role.MEMBER))),
        User.with_memberships(
            "diana", "Diana", member_of((PROJECT_ID, Role.MEDIATOR), (OTHER_PROJECT_ID, Role.MEMBER))
        ),
        User.with_memberships("edwin", "Edwin", [], is_global_admin=True),
        User.with_memberships("frank", "Frank", member_of((OTHER_PROJECT_ID, Role.MEMBER))),
    ]
    for offset, user in enumerate(users):
        user.created_at = BASE_TIME - timedelta(days=30) + timedelta(minutes=offset)
    return {user.id: user for user in users}


@pytest.fixture
def users() -> dict[str, User]:
    return make_users()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def engine() -> AsyncEngine:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def directory(session_factory: async_sessionmaker, engine: AsyncEngine, users: dict[str, User]):
    repository = DirectoryRepository(session_factory, engine=engine)
    await repository.save_project(Project(id=PROJECT_ID, name="Platform", created_at=BASE_TIME - timedelta(days=60)))
    await repository.save_project(
        Project(id=OTHER_PROJECT_ID, name="Billing", created_at=BASE_TIME - timedelta(days=59))
    )
    for user in users.values():
        await repository.save_user(user)
    return repository


@pytest_asyncio.fixture
async def ticket_repository(session_factory: async_sessionmaker, engine: AsyncEngine) -> TicketRepository:
    return TicketRepository(session_factory, engine=engine)


@pytest_asyncio.fixture
async def service(ticket_repository: TicketRepository, directory: DirectoryRepository, clock: FakeClock):
    return TicketService(ticket_repository, directory, clock=clock)
