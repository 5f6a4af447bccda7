from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel import SQLModel

from helpdesk.main import create_engine
from helpdesk.notifications import NotificationKind
from helpdesk.tickets.repository import TicketRepository
from helpdesk.tickets.service import TicketService
from helpdesk.users.models import Role, User
from helpdesk.users.repository import UserRepository


class RecordingDispatcher:
    """Dispatcher double that remembers every notification it was asked to send."""

    def __init__(self, *, fail_for: set[str] | None = None, raise_for: set[str] | None = None) -> None:
        self.sent: list[tuple[str, str, NotificationKind, Mapping[str, Any]]] = []
        self._fail_for = fail_for or set()
        self._raise_for = raise_for or set()

    async def notify(
        self,
        recipient_email: str,
        recipient_name: str,
        kind: NotificationKind,
        payload: Mapping[str, Any],
    ) -> bool:
        if recipient_email in self._raise_for:
            raise RuntimeError("smtp exploded")
        if recipient_email in self._fail_for:
            return False
        self.sent.append((recipient_email, recipient_name, kind, payload))
        return True

    def of_kind(self, kind: NotificationKind) -> list[tuple[str, str, NotificationKind, Mapping[str, Any]]]:
        return [entry for entry in self.sent if entry[2] == kind]


class FrozenClock:
    """Controllable clock; every call returns the same instant until advanced."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest_asyncio.fixture
async def engine() -> AsyncEngine:
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def user_repository(session_factory: async_sessionmaker) -> UserRepository:
    return UserRepository(session_factory)


@pytest.fixture
def ticket_repository(session_factory: async_sessionmaker, engine: AsyncEngine) -> TicketRepository:
    return TicketRepository(session_factory, engine=engine)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def ticket_service(
    ticket_repository: TicketRepository,
    user_repository: UserRepository,
    dispatcher: RecordingDispatcher,
    clock: FrozenClock,
) -> TicketService:
    return TicketService(ticket_repository, user_repository, dispatcher, clock=clock)


@pytest.fixture
def make_user(user_repository: UserRepository):
    async def factory(username: str, role: Role = Role.CLIENT, *, name: str | None = None) -> User:
        now = datetime.now(timezone.utc)
        user = User(
            id=f"user-{username}",
            username=username,
            email=f"{username}@example.com",
            name=name or username.title(),
            role=role,
            created_at=now,
            updated_at=now,
        )
        await user_repository.create_user(user, hashed_password="not-a-real-hash")
        return user

    return factory


@pytest.fixture
def make_dispatcher():
    return RecordingDispatcher
