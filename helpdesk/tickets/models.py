from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Sequence

from helpdesk.users.models import User

from .state import TicketPriority, TicketStatus


@dataclass(slots=True)
class Ticket:
    """Aggregate root representing a support ticket."""

    id: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    created_by_id: str
    assigned_to_id: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Comment:
    """Immutable message on a ticket thread."""

    id: str
    ticket_id: str
    author_id: str
    message: str
    created_at: datetime


@dataclass(slots=True)
class ThreadComment:
    """Comment bundled with its author."""

    comment: Comment
    author: User | None


@dataclass(slots=True)
class TicketAggregate:
    """Container bundling the ticket with the related users and its thread."""

    ticket: Ticket
    created_by: User | None = None
    assigned_to: User | None = None
    comments: Sequence[ThreadComment] = field(default_factory=list)


class _Unset(Enum):
    TOKEN = "unset"


UNSET = _Unset.TOKEN


@dataclass(slots=True)
class TicketUpdate:
    """Partial update of a ticket.

    ``assigned_to_id`` distinguishes "leave as is" (``UNSET``) from
    "unassign" (``None``).
    """

    title: str | None = None
    description: str | None = None
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    assigned_to_id: str | None | _Unset = UNSET

    @property
    def touches_content(self) -> bool:
        return self.title is not None or self.description is not None

    @property
    def touches_workflow(self) -> bool:
        return (
            self.status is not None
            or self.priority is not None
            or self.assigned_to_id is not UNSET
        )

    @property
    def is_empty(self) -> bool:
        return not (self.touches_content or self.touches_workflow)
