"""Central access policy for ticket operations.

All role and ownership rules live here so request handlers and the lifecycle
manager ask a single question: may this requester perform this action on this
ticket?
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from helpdesk.errors import AccessDenied, Forbidden
from helpdesk.users.models import Role, User

if TYPE_CHECKING:
    from helpdesk.tickets.models import Ticket


class Action(str, Enum):
    CREATE_TICKET = "create_ticket"
    VIEW_TICKET = "view_ticket"
    LIST_ALL_TICKETS = "list_all_tickets"
    LIST_OWN_TICKETS = "list_own_tickets"
    EDIT_TICKET_CONTENT = "edit_ticket_content"
    MANAGE_TICKET = "manage_ticket"
    DELETE_TICKET = "delete_ticket"
    COMMENT = "comment"


_REQUIRED_ROLE: dict[Action, Role] = {
    Action.CREATE_TICKET: Role.CLIENT,
    Action.LIST_ALL_TICKETS: Role.AGENT,
    Action.MANAGE_TICKET: Role.AGENT,
    Action.DELETE_TICKET: Role.AGENT,
}

_ROLE_MESSAGES: dict[Action, str] = {
    Action.CREATE_TICKET: "Only clients can create tickets",
    Action.MANAGE_TICKET: "Only agents can modify status, priority, or assignment",
    Action.DELETE_TICKET: "Only agents can delete tickets",
}

# Clients may only act on tickets they created; agents act on any ticket.
_OWNERSHIP_SCOPED: frozenset[Action] = frozenset(
    {Action.VIEW_TICKET, Action.EDIT_TICKET_CONTENT, Action.COMMENT}
)


def _owns(requester: User, ticket: Ticket | None) -> bool:
    return ticket is not None and ticket.created_by_id == requester.id


def check(requester: User, action: Action, ticket: Ticket | None = None) -> None:
    """Raise when ``requester`` may not perform ``action``.

    Role violations raise :class:`Forbidden`; a client touching someone else's
    ticket raises :class:`AccessDenied`.
    """

    required = _REQUIRED_ROLE.get(action)
    if required is not None and requester.role != required:
        raise Forbidden(_ROLE_MESSAGES.get(action))

    if action in _OWNERSHIP_SCOPED and requester.role == Role.CLIENT and not _owns(requester, ticket):
        raise AccessDenied()
