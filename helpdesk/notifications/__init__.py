"""Outbound notifications triggered by the ticket lifecycle."""

from .dispatcher import EmailNotificationDispatcher, NotificationDispatcher, SmtpConfig
from .messages import NotificationKind, RenderedMessage, render_message

__all__ = [
    "EmailNotificationDispatcher",
    "NotificationDispatcher",
    "NotificationKind",
    "RenderedMessage",
    "SmtpConfig",
    "render_message",
]
