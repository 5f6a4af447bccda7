from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from helpdesk.api.errors import register_exception_handlers
from helpdesk.api.routes import auth, health, tickets, users
from helpdesk.core.config import Settings, get_settings
from helpdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from helpdesk.escalation.scheduler import EscalationScheduler
from helpdesk.notifications import EmailNotificationDispatcher, NotificationDispatcher
from helpdesk.tickets.repository import TicketRepository
from helpdesk.tickets.service import TicketService
from helpdesk.users.repository import UserRepository
from helpdesk.users.service import UserService


def _to_async_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses an async driver."""

    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    if dsn.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + dsn[len("sqlite://") :]
    return dsn


def create_engine(dsn: str) -> AsyncEngine:
    url = _to_async_dsn(dsn)
    if url.startswith("sqlite") and ":memory:" in url:
        # A single shared connection keeps the in-memory database alive.
        return create_async_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
    return create_async_engine(url, future=True)


def _build_lifespan(settings: Settings, dispatcher: NotificationDispatcher | None):
    @asynccontextmanager
    async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
        if settings.environment.lower() != "development" and settings.jwt_secret_key == "helpdesk-secret-key":
            raise RuntimeError("JWT_SECRET_KEY must be set in non-development environments")
        logger = configure_logging(settings)
        tracer_provider = init_tracer(settings)
        app.state.logger = logger
        app.state.tracer_provider = tracer_provider

        db_engine = create_engine(settings.database_url)
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        user_repository = UserRepository(session_factory)
        ticket_repository = TicketRepository(session_factory, engine=db_engine)
        await ticket_repository.ensure_schema()

        notifier = dispatcher if dispatcher is not None else EmailNotificationDispatcher.from_settings(settings)
        app.state.dispatcher = notifier
        app.state.db_engine = db_engine
        app.state.user_service = UserService(user_repository, settings=settings)
        ticket_service = TicketService(ticket_repository, user_repository, notifier, background_notifications=True)
        app.state.ticket_service = ticket_service

        scheduler = EscalationScheduler(
            ticket_repository,
            user_repository,
            notifier,
            interval_seconds=settings.escalation_interval_seconds,
            threshold=timedelta(hours=settings.escalation_threshold_hours),
        )
        app.state.escalation_scheduler = scheduler
        if settings.escalation_enabled:
            scheduler.start()
        logger.info("%s started (%s)", settings.app_name, settings.environment)
        try:
            yield
        finally:
            await scheduler.stop()
            await ticket_service.drain()
            await db_engine.dispose()
            shutdown_tracer(tracer_provider)

    return lifespan


def create_app(
    settings: Settings | None = None,
    *,
    dispatcher: NotificationDispatcher | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name, lifespan=_build_lifespan(settings, dispatcher))
    register_exception_handlers(app)
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(tickets.router)
    app.include_router(users.router)
    return app


app = create_app()
