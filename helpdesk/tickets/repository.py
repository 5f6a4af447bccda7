from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import delete, func
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from helpdesk.db.models import CommentTable, TicketTable, ensure_datetime
from helpdesk.errors import InvalidState
from helpdesk.users.repository import load_users

from .models import Comment, ThreadComment, Ticket, TicketAggregate
from .state import TicketPriority, TicketStatus

# Smallest step used to keep comment timestamps strictly increasing per ticket.
_TICK = timedelta(microseconds=1)


class TicketRepository:
    """Persistence helper wrapping the ``tickets`` and ``comments`` tables."""

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

    async def create_ticket(self, ticket: Ticket) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    TicketTable(
                        id=ticket.id,
                        title=ticket.title,
                        description=ticket.description,
                        status=ticket.status.value,
                        priority=ticket.priority.value,
                        created_by_id=ticket.created_by_id,
                        assigned_to_id=ticket.assigned_to_id,
                        created_at=ticket.created_at,
                        updated_at=ticket.updated_at,
                    )
                )

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            return self._table_to_ticket(row)

    async def get_aggregate(self, ticket_id: str, *, with_comments: bool = True) -> TicketAggregate | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            aggregates = await self._load_aggregates(session, [row], with_comments=with_comments)
        return aggregates[0]

    async def list_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        priority: TicketPriority | None = None,
        created_by_id: str | None = None,
    ) -> Sequence[TicketAggregate]:
        """Return matching tickets, newest first, with users and comment threads."""

        query = select(TicketTable)
        if status is not None:
            query = query.where(TicketTable.status == status.value)
        if priority is not None:
            query = query.where(TicketTable.priority == priority.value)
        if created_by_id is not None:
            query = query.where(TicketTable.created_by_id == created_by_id)
        query = query.order_by(TicketTable.created_at.desc())

        async with self._session_factory() as session:
            result = await session.execute(query)
            return await self._load_aggregates(session, result.scalars().all())

    async def list_stale_tickets(
        self, *, statuses: Iterable[TicketStatus], created_before: datetime
    ) -> Sequence[TicketAggregate]:
        """Return tickets in ``statuses`` created strictly before ``created_before``."""

        query = (
            select(TicketTable)
            .where(TicketTable.status.in_([status.value for status in statuses]))
            .where(TicketTable.created_at < created_before)
            .order_by(TicketTable.created_at.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            return await self._load_aggregates(session, result.scalars().all())

    async def update_ticket(
        self, ticket_id: str, changes: Mapping[str, Any], updated_at: datetime
    ) -> Ticket | None:
        async with self._session_factory() as session:
            ticket_row = await session.get(TicketTable, ticket_id)
            if ticket_row is None:
                return None
            for name, value in changes.items():
                setattr(ticket_row, name, value.value if isinstance(value, (TicketStatus, TicketPriority)) else value)
            ticket_row.updated_at = updated_at
            await session.commit()
            await session.refresh(ticket_row)
            return self._table_to_ticket(ticket_row)

    async def delete_ticket(self, ticket_id: str) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                ticket_row = await session.get(TicketTable, ticket_id)
                if ticket_row is None:
                    return False
                await session.execute(delete(CommentTable).where(CommentTable.ticket_id == ticket_id))
                await session.delete(ticket_row)
            return True

    async def append_comment(self, comment: Comment) -> Comment | None:
        """Store ``comment`` at the end of its ticket thread and touch the ticket.

        The stored timestamp is moved forward when needed so that it is strictly
        later than every earlier comment of the same ticket. Returns ``None`` when
        the ticket no longer exists and raises :class:`InvalidState` when it was
        closed, both checked in the same transaction as the insert.
        """

        async with self._session_factory() as session:
            async with session.begin():
                ticket_row = await session.get(TicketTable, comment.ticket_id, with_for_update=True)
                if ticket_row is None:
                    return None
                if ticket_row.status == TicketStatus.CLOSED.value:
                    raise InvalidState("Cannot comment on closed tickets")
                latest = await session.scalar(
                    sa_select(func.max(CommentTable.created_at)).where(CommentTable.ticket_id == comment.ticket_id)
                )
                created_at = comment.created_at
                if latest is not None and ensure_datetime(latest) >= created_at:
                    created_at = ensure_datetime(latest) + _TICK
                session.add(
                    CommentTable(
                        id=comment.id,
                        ticket_id=comment.ticket_id,
                        author_id=comment.author_id,
                        message=comment.message,
                        created_at=created_at,
                    )
                )
                ticket_row.updated_at = created_at
        return Comment(
            id=comment.id,
            ticket_id=comment.ticket_id,
            author_id=comment.author_id,
            message=comment.message,
            created_at=created_at,
        )

    async def list_comments(self, ticket_id: str) -> Sequence[ThreadComment]:
        async with self._session_factory() as session:
            threads = await self._load_threads(session, [ticket_id])
        return threads.get(ticket_id, [])

    async def _load_aggregates(
        self,
        session: AsyncSession,
        rows: Sequence[TicketTable],
        *,
        with_comments: bool = True,
    ) -> list[TicketAggregate]:
        tickets = [self._table_to_ticket(row) for row in rows]
        if not tickets:
            return []
        threads = await self._load_threads(session, [ticket.id for ticket in tickets]) if with_comments else {}
        user_ids = {ticket.created_by_id for ticket in tickets}
        user_ids.update(ticket.assigned_to_id for ticket in tickets if ticket.assigned_to_id)
        users = await load_users(session, user_ids)
        return [
            TicketAggregate(
                ticket=ticket,
                created_by=users.get(ticket.created_by_id),
                assigned_to=users.get(ticket.assigned_to_id) if ticket.assigned_to_id else None,
                comments=threads.get(ticket.id, []),
            )
            for ticket in tickets
        ]

    async def _load_threads(
        self, session: AsyncSession, ticket_ids: Sequence[str]
    ) -> dict[str, list[ThreadComment]]:
        result = await session.execute(
            select(CommentTable)
            .where(CommentTable.ticket_id.in_(ticket_ids))
            .order_by(CommentTable.created_at.asc())
        )
        comments = [self._table_to_comment(row) for row in result.scalars().all()]
        authors = await load_users(session, {comment.author_id for comment in comments})
        threads: dict[str, list[ThreadComment]] = {}
        for comment in comments:
            threads.setdefault(comment.ticket_id, []).append(
                ThreadComment(comment=comment, author=authors.get(comment.author_id))
            )
        return threads

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=row.id,
            title=row.title,
            description=row.description,
            status=TicketStatus(row.status),
            priority=TicketPriority(row.priority),
            created_by_id=row.created_by_id,
            assigned_to_id=row.assigned_to_id,
            created_at=ensure_datetime(row.created_at),
            updated_at=ensure_datetime(row.updated_at),
        )

    @staticmethod
    def _table_to_comment(row: CommentTable) -> Comment:
        return Comment(
            id=row.id,
            ticket_id=row.ticket_id,
            author_id=row.author_id,
            message=row.message,
            created_at=ensure_datetime(row.created_at),
        )
