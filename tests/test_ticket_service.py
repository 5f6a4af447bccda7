from __future__ import annotations

import asyncio

import pytest

from helpdesk.errors import AccessDenied, Forbidden, InvalidState, NotFound, ValidationError
from helpdesk.notifications import NotificationKind
from helpdesk.tickets.models import TicketUpdate
from helpdesk.tickets.service import TicketService
from helpdesk.tickets.state import TicketPriority, TicketStatus
from helpdesk.users.models import Role


async def _open_ticket(service, client, **kwargs):
    values = {"title": "Login broken", "description": "Cannot log in since yesterday", "priority": "high"}
    values.update(kwargs)
    return await service.create_ticket(client, **values)


@pytest.mark.asyncio
async def test_create_ticket_defaults_and_notifies_creator(ticket_service, make_user, dispatcher):
    client = await make_user("client")

    aggregate = await ticket_service.create_ticket(
        client, title="Login broken", description="Cannot log in since yesterday"
    )

    assert aggregate.ticket.status == TicketStatus.OPEN
    assert aggregate.ticket.priority == TicketPriority.MEDIUM
    assert aggregate.ticket.created_by_id == client.id
    assert aggregate.ticket.assigned_to_id is None
    created = dispatcher.of_kind(NotificationKind.TICKET_CREATED)
    assert created == [
        (client.email, client.name, NotificationKind.TICKET_CREATED,
         {"ticket_id": aggregate.ticket.id, "title": "Login broken"})
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("title", "description", "priority", "field"),
    [
        ("Oops", "Long enough description", "low", "title"),
        ("Valid title", "too short", "low", "description"),
        ("Valid title", "Long enough description", "urgent", "priority"),
    ],
)
async def test_create_ticket_rejects_invalid_input(ticket_service, make_user, title, description, priority, field):
    client = await make_user("client")

    with pytest.raises(ValidationError) as exc:
        await ticket_service.create_ticket(client, title=title, description=description, priority=priority)

    assert exc.value.field == field


@pytest.mark.asyncio
async def test_agents_cannot_create_tickets(ticket_service, make_user):
    agent = await make_user("agent", Role.AGENT)
    with pytest.raises(Forbidden):
        await _open_ticket(ticket_service, agent)


@pytest.mark.asyncio
async def test_clients_cannot_reach_other_clients_tickets(ticket_service, make_user):
    owner = await make_user("owner")
    intruder = await make_user("intruder")
    aggregate = await _open_ticket(ticket_service, owner)
    ticket_id = aggregate.ticket.id

    with pytest.raises(AccessDenied):
        await ticket_service.get_ticket(ticket_id, intruder)
    with pytest.raises(AccessDenied):
        await ticket_service.list_comments(ticket_id, intruder)
    with pytest.raises(AccessDenied):
        await ticket_service.add_comment(ticket_id, intruder, "Let me in")
    assert await ticket_service.list_my_tickets(intruder) == []
    with pytest.raises(Forbidden):
        await ticket_service.list_tickets(intruder)


@pytest.mark.asyncio
async def test_missing_ticket_raises_not_found(ticket_service, make_user):
    agent = await make_user("agent", Role.AGENT)
    with pytest.raises(NotFound):
        await ticket_service.get_ticket("nope", agent)
    with pytest.raises(NotFound):
        await ticket_service.update_ticket("nope", agent, TicketUpdate(status=TicketStatus.CLOSED))
    with pytest.raises(NotFound):
        await ticket_service.delete_ticket("nope", agent)
    with pytest.raises(NotFound):
        await ticket_service.add_comment("nope", agent, "hello")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "update",
    [
        TicketUpdate(status=TicketStatus.RESOLVED),
        TicketUpdate(priority=TicketPriority.LOW),
        TicketUpdate(assigned_to_id=None),
        TicketUpdate(title="New title here", status=TicketStatus.CLOSED),
    ],
)
async def test_clients_cannot_change_workflow_fields(ticket_service, ticket_repository, make_user, update):
    client = await make_user("client")
    aggregate = await _open_ticket(ticket_service, client)
    before = await ticket_repository.get_ticket(aggregate.ticket.id)

    with pytest.raises(Forbidden):
        await ticket_service.update_ticket(aggregate.ticket.id, client, update)

    assert await ticket_repository.get_ticket(aggregate.ticket.id) == before


@pytest.mark.asyncio
async def test_agent_updates_status_priority_and_assignee(ticket_service, make_user, clock):
    client = await make_user("client")
    agent = await make_user("agent", Role.AGENT)
    aggregate = await _open_ticket(ticket_service, client)
    clock.advance(minutes=10)

    updated = await ticket_service.update_ticket(
        aggregate.ticket.id,
        agent,
        TicketUpdate(status=TicketStatus.IN_PROGRESS, priority=TicketPriority.LOW, assigned_to_id=agent.id),
    )

    assert updated.ticket.status == TicketStatus.IN_PROGRESS
    assert updated.ticket.priority == TicketPriority.LOW
    assert updated.ticket.assigned_to_id == agent.id
    assert updated.assigned_to.id == agent.id
    assert updated.ticket.updated_at == clock.now


@pytest.mark.asyncio
async def test_assignee_must_be_an_agent(ticket_service, make_user):
    client = await make_user("client")
    agent = await make_user("agent", Role.AGENT)
    aggregate = await _open_ticket(ticket_service, client)

    with pytest.raises(ValidationError):
        await ticket_service.update_ticket(aggregate.ticket.id, agent, TicketUpdate(assigned_to_id=client.id))


@pytest.mark.asyncio
async def test_owner_edits_content_but_other_clients_cannot(ticket_service, make_user):
    client = await make_user("client")
    other = await make_user("other")
    aggregate = await _open_ticket(ticket_service, client)

    updated = await ticket_service.update_ticket(
        aggregate.ticket.id, client, TicketUpdate(title="Login still broken")
    )
    assert updated.ticket.title == "Login still broken"

    with pytest.raises(AccessDenied):
        await ticket_service.update_ticket(aggregate.ticket.id, other, TicketUpdate(title="Hijacked title"))


@pytest.mark.asyncio
async def test_empty_update_is_rejected(ticket_service, make_user):
    agent = await make_user("agent", Role.AGENT)
    with pytest.raises(ValidationError):
        await ticket_service.update_ticket("whatever", agent, TicketUpdate())


@pytest.mark.asyncio
async def test_closing_notifies_once_and_locks_ticket(ticket_service, make_user, dispatcher):
    client = await make_user("client")
    agent = await make_user("agent", Role.AGENT)
    ticket_id = (await _open_ticket(ticket_service, client)).ticket.id

    await ticket_service.update_ticket(ticket_id, agent, TicketUpdate(status=TicketStatus.CLOSED))
    await ticket_service.update_ticket(ticket_id, agent, TicketUpdate(status=TicketStatus.CLOSED))

    assert len(dispatcher.of_kind(NotificationKind.TICKET_CLOSED)) == 1
    for author in (client, agent):
        with pytest.raises(InvalidState):
            await ticket_service.add_comment(ticket_id, author, "Any news?")
    with pytest.raises(InvalidState):
        await ticket_service.update_ticket(ticket_id, agent, TicketUpdate(status=TicketStatus.OPEN))


@pytest.mark.asyncio
async def test_agent_comment_notifies_creator(ticket_service, make_user, dispatcher):
    client = await make_user("client")
    agent = await make_user("agent", Role.AGENT, name="Sam Support")
    aggregate = await _open_ticket(ticket_service, client)

    await ticket_service.add_comment(aggregate.ticket.id, client, "Still broken")
    assert dispatcher.of_kind(NotificationKind.TICKET_RESPONSE) == []

    entry = await ticket_service.add_comment(aggregate.ticket.id, agent, "Try resetting your password")

    assert entry.author.id == agent.id
    [(email, _, _, payload)] = dispatcher.of_kind(NotificationKind.TICKET_RESPONSE)
    assert email == client.email
    assert payload["message"] == "Try resetting your password"
    assert payload["agent_name"] == "Sam Support"


@pytest.mark.asyncio
async def test_blank_comment_is_rejected(ticket_service, make_user):
    client = await make_user("client")
    aggregate = await _open_ticket(ticket_service, client)
    with pytest.raises(ValidationError):
        await ticket_service.add_comment(aggregate.ticket.id, client, "   ")


@pytest.mark.asyncio
async def test_comments_are_listed_in_insertion_order(ticket_service, make_user):
    client = await make_user("client")
    agent = await make_user("agent", Role.AGENT)
    ticket_id = (await _open_ticket(ticket_service, client)).ticket.id

    # The clock is frozen, so every comment is created at the same instant.
    for index in range(5):
        author = agent if index % 2 else client
        await ticket_service.add_comment(ticket_id, author, f"message {index}")

    thread = await ticket_service.list_comments(ticket_id, client)

    assert [entry.comment.message for entry in thread] == [f"message {index}" for index in range(5)]
    stamps = [entry.comment.created_at for entry in thread]
    assert stamps == sorted(stamps)
    assert thread[1].author.role == Role.AGENT


@pytest.mark.asyncio
async def test_delete_is_agent_only_and_cascades(ticket_service, ticket_repository, make_user):
    client = await make_user("client")
    agent = await make_user("agent", Role.AGENT)
    ticket_id = (await _open_ticket(ticket_service, client)).ticket.id
    await ticket_service.add_comment(ticket_id, client, "hello")

    with pytest.raises(Forbidden):
        await ticket_service.delete_ticket(ticket_id, client)

    await ticket_service.delete_ticket(ticket_id, agent)

    assert await ticket_repository.get_ticket(ticket_id) is None
    assert await ticket_repository.list_comments(ticket_id) == []


@pytest.mark.asyncio
async def test_agent_listing_filters_and_includes_threads(ticket_service, make_user):
    client = await make_user("client")
    agent = await make_user("agent", Role.AGENT)
    first = await _open_ticket(ticket_service, client, priority="low")
    second = await _open_ticket(ticket_service, client, title="Printer jammed")
    await ticket_service.add_comment(second.ticket.id, agent, "On my way")

    high = await ticket_service.list_tickets(agent, priority=TicketPriority.HIGH)
    assert [item.ticket.id for item in high] == [second.ticket.id]
    assert high[0].created_by.id == client.id
    assert [entry.comment.message for entry in high[0].comments] == ["On my way"]

    everything = await ticket_service.list_tickets(agent, status=TicketStatus.OPEN)
    assert {item.ticket.id for item in everything} == {first.ticket.id, second.ticket.id}


@pytest.mark.asyncio
async def test_notification_failures_do_not_break_operations(ticket_repository, user_repository, make_user):
    client = await make_user("client")

    class ExplodingDispatcher:
        async def notify(self, *args, **kwargs):
            raise RuntimeError("mail server down")

    service = TicketService(ticket_repository, user_repository, ExplodingDispatcher())

    aggregate = await _open_ticket(service, client)

    assert await ticket_repository.get_ticket(aggregate.ticket.id) is not None


@pytest.mark.asyncio
async def test_close_racing_a_comment_still_locks_the_thread(ticket_service, ticket_repository, make_user, clock):
    client = await make_user("client")
    ticket_id = (await _open_ticket(ticket_service, client)).ticket.id
    original = ticket_repository.get_aggregate

    async def read_then_close(*args, **kwargs):
        aggregate = await original(*args, **kwargs)
        await ticket_repository.update_ticket(ticket_id, {"status": TicketStatus.CLOSED}, clock())
        return aggregate

    ticket_repository.get_aggregate = read_then_close

    with pytest.raises(InvalidState):
        await ticket_service.add_comment(ticket_id, client, "late comment")

    assert await ticket_repository.list_comments(ticket_id) == []


@pytest.mark.asyncio
async def test_update_returns_the_existing_thread(ticket_service, make_user):
    client = await make_user("client")
    agent = await make_user("agent", Role.AGENT)
    ticket_id = (await _open_ticket(ticket_service, client)).ticket.id
    await ticket_service.add_comment(ticket_id, client, "Still broken")

    updated = await ticket_service.update_ticket(ticket_id, agent, TicketUpdate(status=TicketStatus.IN_PROGRESS))

    assert [entry.comment.message for entry in updated.comments] == ["Still broken"]


@pytest.mark.asyncio
async def test_background_notifications_do_not_hold_up_the_operation(
    ticket_repository, user_repository, make_user, make_dispatcher
):
    client = await make_user("client")
    release = asyncio.Event()
    recorder = make_dispatcher()

    class SlowDispatcher:
        async def notify(self, *args):
            await release.wait()
            return await recorder.notify(*args)

    service = TicketService(ticket_repository, user_repository, SlowDispatcher(), background_notifications=True)

    aggregate = await asyncio.wait_for(_open_ticket(service, client), timeout=1)
    assert await ticket_repository.get_ticket(aggregate.ticket.id) is not None
    assert recorder.sent == []

    release.set()
    await service.drain()

    [(email, _, kind, _)] = recorder.sent
    assert (email, kind) == (client.email, NotificationKind.TICKET_CREATED)
