from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from helpdesk.api.schemas import CommentResponse, TicketResponse, to_comment_response, to_ticket_response
from helpdesk.dependencies.auth import CurrentUser
from helpdesk.dependencies.services import get_ticket_service
from helpdesk.errors import ValidationError
from helpdesk.tickets.models import UNSET, TicketUpdate
from helpdesk.tickets.service import TicketService
from helpdesk.tickets.state import TicketPriority, TicketStatus

router = APIRouter(prefix="/api/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    title: str = Field(..., min_length=5, max_length=255)
    description: str = Field(..., min_length=10)
    priority: TicketPriority = TicketPriority.MEDIUM


class TicketUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=5, max_length=255)
    description: str | None = Field(default=None, min_length=10)
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    assigned_to_id: str | None = None

    def to_update(self) -> TicketUpdate:
        return TicketUpdate(
            title=self.title,
            description=self.description,
            status=self.status,
            priority=self.priority,
            assigned_to_id=self.assigned_to_id if "assigned_to_id" in self.model_fields_set else UNSET,
        )


class CommentCreateRequest(BaseModel):
    message: str = Field(..., min_length=1)


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]


def _parse_filter(value: str | None, enum_type: type[TicketStatus] | type[TicketPriority], field: str):
    if value is None or value == "all":
        return None
    try:
        return enum_type(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown {field} '{value}'", field=field) from exc


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(payload: TicketCreateRequest, user: CurrentUser, service: TicketServiceDep) -> TicketResponse:
    aggregate = await service.create_ticket(
        user,
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
    )
    return to_ticket_response(aggregate)


@router.get("", response_model=list[TicketResponse], summary="All tickets (agents)")
async def list_tickets(
    user: CurrentUser,
    service: TicketServiceDep,
    status_filter: str | None = Query(default=None, alias="status"),
    priority_filter: str | None = Query(default=None, alias="priority"),
) -> list[TicketResponse]:
    aggregates = await service.list_tickets(
        user,
        status=_parse_filter(status_filter, TicketStatus, "status"),
        priority=_parse_filter(priority_filter, TicketPriority, "priority"),
    )
    return [to_ticket_response(aggregate) for aggregate in aggregates]


@router.get("/my", response_model=list[TicketResponse], summary="Tickets created by the caller")
async def list_my_tickets(user: CurrentUser, service: TicketServiceDep) -> list[TicketResponse]:
    aggregates = await service.list_my_tickets(user)
    return [to_ticket_response(aggregate) for aggregate in aggregates]


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: str, user: CurrentUser, service: TicketServiceDep) -> TicketResponse:
    aggregate = await service.get_ticket(ticket_id, user)
    return to_ticket_response(aggregate)


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdateRequest,
    user: CurrentUser,
    service: TicketServiceDep,
) -> TicketResponse:
    aggregate = await service.update_ticket(ticket_id, user, payload.to_update())
    return to_ticket_response(aggregate)


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(ticket_id: str, user: CurrentUser, service: TicketServiceDep) -> None:
    await service.delete_ticket(ticket_id, user)


@router.get("/{ticket_id}/comments", response_model=list[CommentResponse])
async def list_comments(ticket_id: str, user: CurrentUser, service: TicketServiceDep) -> list[CommentResponse]:
    entries = await service.list_comments(ticket_id, user)
    return [to_comment_response(entry) for entry in entries]


@router.post("/{ticket_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: str,
    payload: CommentCreateRequest,
    user: CurrentUser,
    service: TicketServiceDep,
) -> CommentResponse:
    entry = await service.add_comment(ticket_id, user, payload.message)
    return to_comment_response(entry)
