from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence

from helpdesk import policy
from helpdesk.errors import InvalidState, NotFound, ValidationError
from helpdesk.notifications import NotificationDispatcher, NotificationKind
from helpdesk.policy import Action
from helpdesk.users.models import Role, User
from helpdesk.users.repository import UserRepository

from .models import UNSET, Comment, ThreadComment, Ticket, TicketAggregate, TicketUpdate
from .repository import TicketRepository
from .state import TicketPriority, TicketStateMachine, TicketStatus

logger = logging.getLogger(__name__)

TITLE_MIN_LENGTH = 5
DESCRIPTION_MIN_LENGTH = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_title(title: str) -> str:
    if len(title.strip()) < TITLE_MIN_LENGTH:
        raise ValidationError(f"Title must be at least {TITLE_MIN_LENGTH} characters", field="title")
    return title


def _validate_description(description: str) -> str:
    if len(description.strip()) < DESCRIPTION_MIN_LENGTH:
        raise ValidationError(
            f"Description must be at least {DESCRIPTION_MIN_LENGTH} characters", field="description"
        )
    return description


def _validate_priority(priority: TicketPriority | str) -> TicketPriority:
    try:
        return TicketPriority(priority)
    except ValueError as exc:
        raise ValidationError("Priority must be one of low, medium, high", field="priority") from exc


class TicketService:
    """Ticket lifecycle manager.

    Applies validation, the access policy and the status rules before touching
    the store, then fires notifications. Notification delivery never affects the
    outcome of the operation that triggered it. With ``background_notifications``
    the send runs as a tracked task so requests do not wait on the mail server;
    :meth:`drain` waits for whatever is still in flight.
    """

    def __init__(
        self,
        repository: TicketRepository,
        users: UserRepository,
        dispatcher: NotificationDispatcher,
        *,
        state_machine: type[TicketStateMachine] = TicketStateMachine,
        clock: Callable[[], datetime] | None = None,
        background_notifications: bool = False,
    ) -> None:
        self._repository = repository
        self._users = users
        self._dispatcher = dispatcher
        self._state_machine = state_machine
        self._clock = clock or _utcnow
        self._background = background_notifications
        self._pending: set[asyncio.Task[None]] = set()

    async def create_ticket(
        self,
        creator: User,
        *,
        title: str,
        description: str,
        priority: TicketPriority | str = TicketPriority.MEDIUM,
    ) -> TicketAggregate:
        policy.check(creator, Action.CREATE_TICKET)
        ticket_priority = _validate_priority(priority)
        now = self._clock()
        ticket = Ticket(
            id=str(uuid.uuid4()),
            title=_validate_title(title),
            description=_validate_description(description),
            status=self._state_machine.initial_state(),
            priority=ticket_priority,
            created_by_id=creator.id,
            assigned_to_id=None,
            created_at=now,
            updated_at=now,
        )
        await self._repository.create_ticket(ticket)
        logger.info("Ticket %s created by %s", ticket.id, creator.id)

        await self._notify(
            creator,
            NotificationKind.TICKET_CREATED,
            {"ticket_id": ticket.id, "title": ticket.title},
        )
        return TicketAggregate(ticket=ticket, created_by=creator, assigned_to=None, comments=[])

    async def get_ticket(self, ticket_id: str, requester: User) -> TicketAggregate:
        aggregate = await self._require_aggregate(ticket_id)
        policy.check(requester, Action.VIEW_TICKET, aggregate.ticket)
        return aggregate

    async def list_tickets(
        self,
        requester: User,
        *,
        status: TicketStatus | None = None,
        priority: TicketPriority | None = None,
    ) -> Sequence[TicketAggregate]:
        policy.check(requester, Action.LIST_ALL_TICKETS)
        return await self._repository.list_tickets(status=status, priority=priority)

    async def list_my_tickets(self, requester: User) -> Sequence[TicketAggregate]:
        policy.check(requester, Action.LIST_OWN_TICKETS)
        return await self._repository.list_tickets(created_by_id=requester.id)

    async def update_ticket(self, ticket_id: str, requester: User, update: TicketUpdate) -> TicketAggregate:
        if update.is_empty:
            raise ValidationError("No fields provided for update")
        if update.title is not None:
            _validate_title(update.title)
        if update.description is not None:
            _validate_description(update.description)

        aggregate = await self._require_aggregate(ticket_id)
        current = aggregate.ticket
        if update.touches_workflow:
            policy.check(requester, Action.MANAGE_TICKET, current)
        if update.touches_content:
            policy.check(requester, Action.EDIT_TICKET_CONTENT, current)

        changes: dict[str, Any] = {}
        if update.title is not None:
            changes["title"] = update.title
        if update.description is not None:
            changes["description"] = update.description
        if update.priority is not None:
            changes["priority"] = _validate_priority(update.priority)
        if update.status is not None:
            self._state_machine.assert_transition(current.status, update.status)
            changes["status"] = update.status
        assigned_to: User | None = aggregate.assigned_to
        if update.assigned_to_id is not UNSET:
            assigned_to = await self._resolve_assignee(update.assigned_to_id)
            changes["assigned_to_id"] = update.assigned_to_id

        updated = await self._repository.update_ticket(ticket_id, changes, self._clock())
        if updated is None:
            raise NotFound("Ticket not found")
        logger.info("Ticket %s updated by %s: %s", ticket_id, requester.id, sorted(changes))

        if update.status is not None and self._state_machine.is_closing(current.status, update.status):
            if aggregate.created_by is not None:
                await self._notify(
                    aggregate.created_by,
                    NotificationKind.TICKET_CLOSED,
                    {"ticket_id": updated.id, "title": updated.title},
                )
        return replace(aggregate, ticket=updated, assigned_to=assigned_to)

    async def delete_ticket(self, ticket_id: str, requester: User) -> None:
        policy.check(requester, Action.DELETE_TICKET)
        deleted = await self._repository.delete_ticket(ticket_id)
        if not deleted:
            raise NotFound("Ticket not found")
        logger.info("Ticket %s deleted by %s", ticket_id, requester.id)

    async def add_comment(self, ticket_id: str, author: User, message: str) -> ThreadComment:
        if not message or not message.strip():
            raise ValidationError("Comment cannot be empty", field="message")

        aggregate = await self._require_aggregate(ticket_id, with_comments=False)
        ticket = aggregate.ticket
        policy.check(author, Action.COMMENT, ticket)
        if not self._state_machine.accepts_comments(ticket.status):
            raise InvalidState("Cannot comment on closed tickets")

        stored = await self._repository.append_comment(
            Comment(
                id=str(uuid.uuid4()),
                ticket_id=ticket_id,
                author_id=author.id,
                message=message,
                created_at=self._clock(),
            )
        )
        if stored is None:
            raise NotFound("Ticket not found")

        if author.is_agent and aggregate.created_by is not None:
            await self._notify(
                aggregate.created_by,
                NotificationKind.TICKET_RESPONSE,
                {
                    "ticket_id": ticket.id,
                    "title": ticket.title,
                    "agent_name": author.name,
                    "message": message,
                },
            )
        return ThreadComment(comment=stored, author=author)

    async def list_comments(self, ticket_id: str, requester: User) -> Sequence[ThreadComment]:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise NotFound("Ticket not found")
        policy.check(requester, Action.VIEW_TICKET, ticket)
        return await self._repository.list_comments(ticket_id)

    async def _require_aggregate(self, ticket_id: str, *, with_comments: bool = True) -> TicketAggregate:
        aggregate = await self._repository.get_aggregate(ticket_id, with_comments=with_comments)
        if aggregate is None:
            raise NotFound("Ticket not found")
        return aggregate

    async def _resolve_assignee(self, user_id: str | None) -> User | None:
        if user_id is None:
            return None
        assignee = await self._users.get_user(user_id)
        if assignee is None or assignee.role != Role.AGENT:
            raise ValidationError("Tickets can only be assigned to agents", field="assigned_to_id")
        return assignee

    async def drain(self) -> None:
        """Wait for background notifications that are still being delivered."""

        while self._pending:
            await asyncio.gather(*self._pending)

    async def _notify(self, recipient: User, kind: NotificationKind, payload: Mapping[str, Any]) -> None:
        if not self._background:
            await self._deliver(recipient, kind, payload)
            return
        task = asyncio.create_task(self._deliver(recipient, kind, payload), name=f"notify-{kind.value}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, recipient: User, kind: NotificationKind, payload: Mapping[str, Any]) -> None:
        try:
            delivered = await self._dispatcher.notify(recipient.email, recipient.name, kind, payload)
        except Exception:
            logger.exception("Notification %s to %s raised", kind.value, recipient.id)
            return
        if not delivered:
            logger.warning("Notification %s to %s was not delivered", kind.value, recipient.id)
