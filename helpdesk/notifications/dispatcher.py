from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Mapping, Protocol

from helpdesk.core.config import Settings

from .messages import NotificationKind, RenderedMessage, render_message

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def notify(
        self,
        recipient_email: str,
        recipient_name: str,
        kind: NotificationKind,
        payload: Mapping[str, Any],
    ) -> bool:
        """Deliver a notification. Returns ``False`` on failure, never raises."""
        ...


@dataclass(slots=True, frozen=True)
class SmtpConfig:
    host: str
    port: int
    username: str
    password: str
    sender: str

    @property
    def use_ssl(self) -> bool:
        return self.port == 465


class EmailNotificationDispatcher:
    """Render notifications to HTML email and deliver them over SMTP.

    Without an SMTP configuration the message is logged instead of sent, which
    keeps development setups working without a mail server.
    """

    def __init__(self, smtp: SmtpConfig | None = None, *, timeout: float = 10.0) -> None:
        self._smtp = smtp
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailNotificationDispatcher":
        if not (settings.smtp_host and settings.smtp_user and settings.smtp_password):
            logger.info("Email service not configured; notifications will be logged")
            return cls(None)
        return cls(
            SmtpConfig(
                host=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_user,
                password=settings.smtp_password,
                sender=settings.smtp_from or settings.smtp_user,
            ),
            timeout=settings.smtp_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return self._smtp is not None

    async def notify(
        self,
        recipient_email: str,
        recipient_name: str,
        kind: NotificationKind,
        payload: Mapping[str, Any],
    ) -> bool:
        try:
            message = render_message(kind, recipient_name, payload)
            if self._smtp is None:
                logger.info("Email would be sent to %s: %s", recipient_email, message.subject)
                return True
            await asyncio.to_thread(self._send, self._smtp, recipient_email, message)
        except Exception:
            logger.exception("Failed to send %s notification to %s", kind, recipient_email)
            return False
        logger.info("Email sent to %s: %s", recipient_email, message.subject)
        return True

    def _send(self, smtp: SmtpConfig, recipient_email: str, message: RenderedMessage) -> None:
        mime = MIMEMultipart("alternative")
        mime["Subject"] = message.subject
        mime["From"] = smtp.sender
        mime["To"] = recipient_email
        mime.attach(MIMEText(message.html, "html"))

        client_cls = smtplib.SMTP_SSL if smtp.use_ssl else smtplib.SMTP
        with client_cls(smtp.host, smtp.port, timeout=self._timeout) as server:
            if not smtp.use_ssl:
                server.starttls()
            server.login(smtp.username, smtp.password)
            server.sendmail(smtp.sender, [recipient_email], mime.as_string())
