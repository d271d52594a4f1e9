"""Templated account emails and the SMTP transport that delivers them."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Dict, Protocol

import aiosmtplib

from .config import MailConfig
from .errors import TransportError
from .events import Operation

logger = logging.getLogger("accounts.notifications")


@dataclass(frozen=True)
class MailTemplate:
    subject: str
    body: str


TEMPLATES: Dict[Operation, MailTemplate] = {
    Operation.CREATE: MailTemplate(
        subject="Создание аккаунта",
        body="Здравствуйте! Ваш аккаунт на сайте ваш сайт был успешно создан.",
    ),
    Operation.DELETE: MailTemplate(
        subject="Удаление аккаунта",
        body="Здравствуйте! Ваш аккаунт был удалён.",
    ),
}


class MailTransport(Protocol):
    async def send(self, message: EmailMessage) -> None: ...


class SMTPTransport:
    """Deliver messages through an SMTP relay with ``aiosmtplib``."""

    def __init__(self, config: MailConfig) -> None:
        self._config = config

    async def send(self, message: EmailMessage) -> None:
        try:
            await aiosmtplib.send(
                message,
                hostname=self._config.host,
                port=self._config.port,
                username=self._config.username,
                password=self._config.password,
                use_tls=self._config.use_tls,
                start_tls=self._config.start_tls,
                timeout=self._config.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise TransportError(
                f"Failed to deliver mail to {message['To']} via {self._config.host}:{self._config.port}: {exc}"
            ) from exc


class Notifier:
    """Render the fixed template for an operation and hand it to the transport."""

    def __init__(self, transport: MailTransport, *, sender: str) -> None:
        self._transport = transport
        self._sender = sender

    async def send_created(self, email: str) -> None:
        await self._send(Operation.CREATE, email)

    async def send_deleted(self, email: str) -> None:
        await self._send(Operation.DELETE, email)

    def build_message(self, operation: Operation, email: str) -> EmailMessage:
        template = TEMPLATES[operation]
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = email
        message["Subject"] = template.subject
        message.set_content(template.body)
        return message

    async def _send(self, operation: Operation, email: str) -> None:
        label = "created" if operation is Operation.CREATE else "deleted"
        logger.info("Sending user %s email to: %s", label, email)
        message = self.build_message(operation, email)
        try:
            await self._transport.send(message)
        except Exception:
            logger.exception("Failed to send user %s email to: %s", label, email)
            raise
        logger.info("User %s email sent successfully to: %s", label, email)


__all__ = ["MailTemplate", "MailTransport", "Notifier", "SMTPTransport", "TEMPLATES"]
