from __future__ import annotations

from enum import Enum

from helpdesk.errors import InvalidState


class TicketStatus(str, Enum):
    """Supported states for a ticket's lifecycle."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    """Urgency assigned to a ticket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Tickets still waiting on the support team.
ACTIVE_STATUSES: tuple[TicketStatus, ...] = (TicketStatus.OPEN, TicketStatus.IN_PROGRESS)


class TicketStateMachine:
    """Validate ticket lifecycle transitions.

    Agents may move a ticket freely between the non-closed states. Closing is
    final: a closed ticket cannot be re-opened and no longer accepts comments.
    """

    _TRANSITIONS: dict[TicketStatus, set[TicketStatus]] = {
        TicketStatus.OPEN: {TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED},
        TicketStatus.IN_PROGRESS: {TicketStatus.OPEN, TicketStatus.RESOLVED, TicketStatus.CLOSED},
        TicketStatus.RESOLVED: {TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.CLOSED},
        TicketStatus.CLOSED: set(),
    }

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.OPEN

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        if current == new:
            return True
        return new in cls._TRANSITIONS.get(current, set())

    @classmethod
    def assert_transition(cls, current: TicketStatus, new: TicketStatus) -> None:
        if not cls.can_transition(current, new):
            raise InvalidState(f"Cannot change status of a {current.value} ticket to {new.value}")

    @classmethod
    def is_closing(cls, current: TicketStatus, new: TicketStatus) -> bool:
        return current != TicketStatus.CLOSED and new == TicketStatus.CLOSED

    @classmethod
    def accepts_comments(cls, status: TicketStatus) -> bool:
        return status != TicketStatus.CLOSED
