"""Response models shared by the API routers."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from helpdesk.tickets.models import ThreadComment, TicketAggregate
from helpdesk.tickets.state import TicketPriority, TicketStatus
from helpdesk.users.models import Role, User


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    email: str
    name: str
    role: Role
    created_at: datetime


class UserSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: Role


class CommentResponse(BaseModel):
    id: str
    ticket_id: str
    author_id: str
    author: UserSummaryResponse | None
    message: str
    created_at: datetime


class TicketResponse(BaseModel):
    id: str
    title: str
    description: str
    status: TicketStatus
    priority: TicketPriority
    created_by_id: str
    created_by: UserSummaryResponse | None
    assigned_to_id: str | None
    assigned_to: UserSummaryResponse | None
    created_at: datetime
    updated_at: datetime
    comments: list[CommentResponse]


def _summary(user: User | None) -> UserSummaryResponse | None:
    return UserSummaryResponse.model_validate(user) if user is not None else None


def to_comment_response(entry: ThreadComment) -> CommentResponse:
    comment = entry.comment
    return CommentResponse(
        id=comment.id,
        ticket_id=comment.ticket_id,
        author_id=comment.author_id,
        author=_summary(entry.author),
        message=comment.message,
        created_at=comment.created_at,
    )


def to_ticket_response(aggregate: TicketAggregate) -> TicketResponse:
    ticket = aggregate.ticket
    return TicketResponse(
        id=ticket.id,
        title=ticket.title,
        description=ticket.description,
        status=ticket.status,
        priority=ticket.priority,
        created_by_id=ticket.created_by_id,
        created_by=_summary(aggregate.created_by),
        assigned_to_id=ticket.assigned_to_id,
        assigned_to=_summary(aggregate.assigned_to),
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
        comments=[to_comment_response(entry) for entry in aggregate.comments],
    )
