"""Subjects and HTML bodies for each notification kind."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from html import escape
from typing import Any, Mapping

BRAND = "HelpDeskPro"


class NotificationKind(str, Enum):
    TICKET_CREATED = "ticket_created"
    TICKET_RESPONSE = "ticket_response"
    TICKET_CLOSED = "ticket_closed"
    UNANSWERED_DIGEST = "unanswered_digest"


@dataclass(slots=True)
class RenderedMessage:
    subject: str
    html: str


def short_id(ticket_id: str) -> str:
    return str(ticket_id)[:8]


def _wrap(heading: str, color: str, body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: {color};">{heading}</h2>'
        f"{body}"
        "</div>"
    )


def _ticket_box(payload: Mapping[str, Any]) -> str:
    return (
        '<div style="background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0;">'
        f'<p style="margin: 0;"><strong>Ticket ID:</strong> #{escape(short_id(payload["ticket_id"]))}</p>'
        f'<p style="margin: 8px 0 0;"><strong>Title:</strong> {escape(str(payload["title"]))}</p>'
        "</div>"
    )


def _ticket_created(name: str, payload: Mapping[str, Any]) -> RenderedMessage:
    body = (
        f"<p>Hello {escape(name)},</p>"
        "<p>Your support ticket has been successfully created and our team will review it shortly.</p>"
        f"{_ticket_box(payload)}"
        "<p>We'll notify you when there's an update on your ticket.</p>"
    )
    return RenderedMessage(
        subject=f"[{BRAND}] Ticket Created: {payload['title']}",
        html=_wrap("Your Support Ticket Has Been Created", "#2563eb", body),
    )


def _ticket_response(name: str, payload: Mapping[str, Any]) -> RenderedMessage:
    body = (
        f"<p>Hello {escape(name)},</p>"
        "<p>An agent has responded to your support ticket.</p>"
        '<div style="background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0;">'
        f'<p style="margin: 0;"><strong>Ticket:</strong> #{escape(short_id(payload["ticket_id"]))}'
        f' - {escape(str(payload["title"]))}</p>'
        f'<p style="margin: 8px 0;"><strong>Response from:</strong> {escape(str(payload["agent_name"]))}</p>'
        f'<p style="margin: 0; white-space: pre-wrap;">{escape(str(payload["message"]))}</p>'
        "</div>"
        "<p>Log in to view the full conversation and respond.</p>"
    )
    return RenderedMessage(
        subject=f"[{BRAND}] New Response: {payload['title']}",
        html=_wrap("New Response on Your Ticket", "#2563eb", body),
    )


def _ticket_closed(name: str, payload: Mapping[str, Any]) -> RenderedMessage:
    body = (
        f"<p>Hello {escape(name)},</p>"
        "<p>Your support ticket has been marked as closed.</p>"
        f"{_ticket_box(payload)}"
        "<p>If you need further assistance on this matter, you can create a new ticket.</p>"
    )
    return RenderedMessage(
        subject=f"[{BRAND}] Ticket Closed: {payload['title']}",
        html=_wrap("Your Ticket Has Been Closed", "#16a34a", body),
    )


def _unanswered_digest(name: str, payload: Mapping[str, Any]) -> RenderedMessage:
    tickets = list(payload.get("tickets", []))
    items = "".join(
        f"<li><strong>#{escape(short_id(item['id']))}</strong> - {escape(str(item['title']))}"
        f" ({escape(str(item['priority']))} priority, {int(item['hours_old'])}h old)</li>"
        for item in tickets
    )
    body = (
        f"<p>Hello {escape(name)},</p>"
        "<p>The following tickets have not received a response and need your attention:</p>"
        f"<ul>{items}</ul>"
        "<p>Please log in to review and respond to these tickets.</p>"
    )
    return RenderedMessage(
        subject=f"[{BRAND}] Reminder: {len(tickets)} Unanswered Tickets",
        html=_wrap("Unanswered Tickets Reminder", "#f59e0b", body),
    )


_RENDERERS = {
    NotificationKind.TICKET_CREATED: _ticket_created,
    NotificationKind.TICKET_RESPONSE: _ticket_response,
    NotificationKind.TICKET_CLOSED: _ticket_closed,
    NotificationKind.UNANSWERED_DIGEST: _unanswered_digest,
}


def render_message(kind: NotificationKind, recipient_name: str, payload: Mapping[str, Any]) -> RenderedMessage:
    """Render the subject and HTML body for ``kind``."""

    return _RENDERERS[NotificationKind(kind)](recipient_name, payload)
