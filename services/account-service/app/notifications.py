"""Outbound email used to deliver verification links."""

from __future__ import annotations

import html
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class MailMessage:
    sender: str
    recipient: str
    subject: str
    html_body: str


class Notifier(Protocol):
    def send(self, message: MailMessage) -> None: ...


class SmtpNotifier:
    """Deliver messages through an SMTP relay, one connection per message."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._timeout = timeout

    def send(self, message: MailMessage) -> None:
        email = EmailMessage()
        email["From"] = message.sender
        email["To"] = message.recipient
        email["Subject"] = message.subject
        email.set_content(message.html_body, subtype="html")

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as conn:
            if self._username:
                conn.starttls()
                conn.login(self._username, self._password)
            conn.send_message(email)
        logger.info("sent %r to %s", message.subject, message.recipient)


class LogNotifier:
    """Development stand-in that writes messages to the log instead of sending them."""

    def send(self, message: MailMessage) -> None:
        logger.info(
            "mail delivery disabled; would send %r to %s:\n%s",
            message.subject,
            message.recipient,
            message.html_body,
        )


def build_notifier(settings: Settings) -> Notifier:
    if not settings.smtp_host:
        logger.warning("SMTP_HOST not set; verification emails will only be logged")
        return LogNotifier()
    return SmtpNotifier(
        settings.smtp_host,
        settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
    )


def verification_message(*, sender: str, name: str, email: str, link: str) -> MailMessage:
    """Build the account verification email for a newly registered user."""
    safe_link = html.escape(link, quote=True)
    body = (
        f"<h1>Hello, {html.escape(name)}</h1>"
        "<p>Please verify your account by clicking the link below:</p>"
        f'<a href="{safe_link}">{safe_link}</a>'
        "<p>Thank you!</p>"
    )
    return MailMessage(sender=sender, recipient=email, subject="Account Verification", html_body=body)
