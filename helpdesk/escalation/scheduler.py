from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from helpdesk.core.logging import get_tracer
from helpdesk.notifications import NotificationDispatcher, NotificationKind
from helpdesk.tickets.models import TicketAggregate
from helpdesk.tickets.repository import TicketRepository
from helpdesk.tickets.state import ACTIVE_STATUSES
from helpdesk.users.models import Role
from helpdesk.users.repository import UserRepository

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

_HOUR = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class UnansweredTicket:
    """Digest line for a ticket still waiting on its first agent reply."""

    id: str
    title: str
    priority: str
    hours_old: int

    def as_payload(self) -> dict[str, object]:
        return {"id": self.id, "title": self.title, "priority": self.priority, "hours_old": self.hours_old}


@dataclass(slots=True)
class SweepResult:
    """Outcome of a single sweep run."""

    checked: int = 0
    unanswered: list[UnansweredTicket] = field(default_factory=list)
    notified: int = 0
    failed: int = 0


def is_answered(aggregate: TicketAggregate) -> bool:
    """A ticket counts as answered once any agent has commented on it."""

    return any(entry.author is not None and entry.author.role == Role.AGENT for entry in aggregate.comments)


class EscalationScheduler:
    """Periodically notify every agent about tickets nobody has answered.

    Each run is independent: it reads the store, sends one digest per agent and
    keeps no state between runs. Tickets are re-reported on every run until an
    agent comments or the ticket leaves the open/in_progress states.
    """

    def __init__(
        self,
        tickets: TicketRepository,
        users: UserRepository,
        dispatcher: NotificationDispatcher,
        *,
        interval_seconds: float = 3600.0,
        threshold: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._tickets = tickets
        self._users = users
        self._dispatcher = dispatcher
        self._interval = interval_seconds
        self._threshold = threshold
        self._clock = clock or _utcnow
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        """Run one escalation pass.

        Errors while reading tickets or agents propagate; a failed delivery to
        one agent is logged and the remaining agents are still notified.
        """

        now = now or self._clock()
        cutoff = now - self._threshold
        candidates = await self._tickets.list_stale_tickets(statuses=ACTIVE_STATUSES, created_before=cutoff)

        result = SweepResult(checked=len(candidates))
        result.unanswered = [
            UnansweredTicket(
                id=aggregate.ticket.id,
                title=aggregate.ticket.title,
                priority=aggregate.ticket.priority.value,
                hours_old=int((now - aggregate.ticket.created_at) // _HOUR),
            )
            for aggregate in candidates
            if not is_answered(aggregate)
        ]
        if not result.unanswered:
            logger.info("No unanswered tickets found (%d checked)", result.checked)
            return result

        logger.warning("Found %d unanswered tickets", len(result.unanswered))
        agents = await self._users.list_by_role(Role.AGENT)
        payload = {"tickets": [item.as_payload() for item in result.unanswered]}
        for agent in agents:
            try:
                delivered = await self._dispatcher.notify(
                    agent.email, agent.name, NotificationKind.UNANSWERED_DIGEST, payload
                )
            except Exception:
                logger.exception("Unanswered digest to agent %s raised", agent.id)
                delivered = False
            if delivered:
                result.notified += 1
            else:
                result.failed += 1
                logger.warning("Unanswered digest to agent %s was not delivered", agent.id)
        return result

    async def run(self, stop_event: asyncio.Event) -> None:
        """Call :meth:`sweep` every interval until ``stop_event`` is set."""

        while not stop_event.is_set():
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            if stop_event.is_set():
                break
            logger.info("Running unanswered tickets check")
            with tracer.start_as_current_span("escalation.sweep") as span:
                try:
                    result = await self.sweep()
                except Exception as exc:
                    span.record_exception(exc)
                    logger.exception("Error in unanswered tickets check")
                    continue
                span.set_attribute("helpdesk.tickets.unanswered", len(result.unanswered))
                span.set_attribute("helpdesk.agents.notified", result.notified)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop_event), name="escalation-sweep")
        logger.info("Escalation sweep scheduled every %.0f seconds", self._interval)

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
