from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from helpdesk.api.routes import ping, reports, tickets
from helpdesk.core.config import get_settings
from helpdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from helpdesk.memberships.repository import DirectoryRepository
from helpdesk.tickets.repository import TicketRepository
from helpdesk.tickets.service import TicketService


def _to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = logger
    app.state.tracer_provider = tracer_provider
    app.state.ticket_service = None
    app.state.directory = None
    db_engine = None
    try:
        db_engine = create_async_engine(_to_asyncpg_dsn(settings.database_dsn), future=True)
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        directory = DirectoryRepository(session_factory, engine=db_engine)
        ticket_repository = TicketRepository(session_factory, engine=db_engine)
        await ticket_repository.ensure_schema()
        app.state.directory = directory
        app.state.ticket_service = TicketService(
            ticket_repository,
            directory,
            max_conflict_retries=settings.max_conflict_retries,
        )
    except Exception:  # pragma: no cover - service initialisation best effort
        logger.exception("Ticket service unavailable; database initialisation failed")
        app.state.ticket_service = None
        app.state.directory = None
        if db_engine is not None:
            await db_engine.dispose()
            db_engine = None
    try:
        yield
    finally:
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(tickets.projects_router)
    app.include_router(tickets.router)
    app.include_router(reports.router)
    return app


app = create_app()
