from __future__ import annotations

from typing import Iterable, Sequence

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from helpdesk.db.models import UserTable, ensure_datetime

from .models import Role, User


class UserRepository:
    """Persistence helper wrapping the ``users`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_user(self, user: User, *, hashed_password: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    UserTable(
                        id=user.id,
                        username=user.username,
                        email=user.email,
                        name=user.name,
                        hashed_password=hashed_password,
                        role=user.role.value,
                        created_at=user.created_at,
                        updated_at=user.updated_at,
                    )
                )

    async def identity_taken(self, *, username: str, email: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserTable.id)
                .where(or_(UserTable.username == username, UserTable.email == email))
                .limit(1)
            )
            return result.first() is not None

    async def get_user(self, user_id: str) -> User | None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, user_id)
            if row is None:
                return None
            return self.row_to_user(row)

    async def get_credentials(self, email: str) -> tuple[User, str] | None:
        """Return the user registered under ``email`` along with its password hash."""

        async with self._session_factory() as session:
            result = await session.execute(select(UserTable).where(UserTable.email == email))
            row = result.scalars().first()
            if row is None:
                return None
            return self.row_to_user(row), row.hashed_password

    async def list_by_role(self, role: Role) -> Sequence[User]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserTable).where(UserTable.role == role.value).order_by(UserTable.name.asc())
            )
            return [self.row_to_user(row) for row in result.scalars().all()]

    @staticmethod
    def row_to_user(row: UserTable) -> User:
        return User(
            id=row.id,
            username=row.username,
            email=row.email,
            name=row.name,
            role=Role(row.role),
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )


async def load_users(session: AsyncSession, user_ids: Iterable[str]) -> dict[str, User]:
    """Fetch users by id inside an existing session, keyed by id."""

    ids = {user_id for user_id in user_ids if user_id}
    if not ids:
        return {}
    result = await session.execute(select(UserTable).where(UserTable.id.in_(ids)))
    return {row.id: UserRepository.row_to_user(row) for row in result.scalars().all()}
