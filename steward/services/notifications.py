"""Outbound notifications (password-reset links)."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from steward.core.config import Settings

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised when a message could not be handed to the mail transport."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotificationSender(Protocol):
    def send(self, address: str, subject: str, body: str) -> None: ...


class SmtpNotificationSender:
    """Sends plain-text email synchronously over SMTP (STARTTLS when enabled)."""

    def __init__(self, settings: Settings) -> None:
        if not settings.SMTP_HOST:
            raise ValueError("SMTP_HOST must be set to send email")
        self._host = settings.SMTP_HOST
        self._port = settings.SMTP_PORT
        self._username = settings.SMTP_USERNAME
        self._password = (
            settings.SMTP_PASSWORD.get_secret_value() if settings.SMTP_PASSWORD else None
        )
        self._use_tls = settings.SMTP_USE_TLS
        self._timeout = settings.SMTP_TIMEOUT_SEC
        self._sender = settings.MAIL_FROM

    def send(self, address: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._sender
        msg["To"] = address
        msg.set_content(body)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                if self._use_tls:
                    server.starttls()
                if self._username and self._password:
                    server.login(self._username, self._password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP delivery failed: {type(e).__name__}") from e
        logger.info("Email sent", extra={"subject": subject})


class LogNotificationSender:
    """Development sender: records that a message would have gone out, without its body."""

    def send(self, address: str, subject: str, body: str) -> None:
        logger.warning(
            "SMTP not configured; email not delivered",
            extra={"subject": subject, "body_length": len(body)},
        )


def build_notification_sender(settings: Settings) -> NotificationSender:
    if settings.SMTP_HOST:
        return SmtpNotificationSender(settings)
    return LogNotificationSender()
