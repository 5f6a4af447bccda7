"""Ticket lifecycle: domain models, persistence and the lifecycle manager."""

from .models import Comment, ThreadComment, Ticket, TicketAggregate, TicketUpdate
from .service import TicketService
from .state import TicketPriority, TicketStateMachine, TicketStatus

__all__ = [
    "Comment",
    "ThreadComment",
    "Ticket",
    "TicketAggregate",
    "TicketPriority",
    "TicketService",
    "TicketStateMachine",
    "TicketStatus",
    "TicketUpdate",
]
