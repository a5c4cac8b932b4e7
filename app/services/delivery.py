"""Message delivery gateway.

``send(to, subject, body)`` attempts delivery of one plain-text e-mail and
always returns a ``DeliveryResult``; it never raises into callers.  The SMTP
transport is blocking, so it runs in a worker thread via
``asyncio.to_thread``.  When no SMTP host is configured, messages are
written to the log instead.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of one delivery attempt."""
    success: bool
    error: str | None = None


class ConsoleGateway:
    """Gateway that logs messages instead of sending them."""

    provider = "console"

    async def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        logger.info(
            "mail_logged",
            extra={"to": to, "subject": subject, "body_length": len(body)},
        )
        return DeliveryResult(success=True)


class SmtpGateway:
    """SMTP delivery with STARTTLS (587) or implicit TLS (465)."""

    provider = "smtp"

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        use_ssl: bool = False,
        from_email: str = "",
        from_name: str = "Talent Shield HRMS",
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.host)

    def _build(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.from_name, self.from_email))
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _send_blocking(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.use_ssl:
            with smtplib.SMTP_SSL(
                self.host, self.port, context=context, timeout=self.timeout
            ) as server:
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(message)
            return

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls(context=context)
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)

    async def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        if not self.is_configured():
            return DeliveryResult(success=False, error="SMTP not configured (missing SMTP_HOST)")
        if not to:
            return DeliveryResult(success=False, error="Recipient address is empty")

        try:
            message = self._build(to, subject, body)
            await asyncio.to_thread(self._send_blocking, message)
        except (smtplib.SMTPException, OSError, ValueError) as exc:
            logger.error(
                "smtp_send_failed",
                extra={
                    "to": to,
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
            )
            return DeliveryResult(success=False, error=str(exc))

        logger.info("smtp_sent", extra={"to": to, "subject": subject})
        return DeliveryResult(success=True)


MailGateway = ConsoleGateway | SmtpGateway

_gateway: MailGateway | None = None


def get_gateway() -> MailGateway:
    """Return the process-wide gateway chosen from ``settings``."""
    global _gateway
    if _gateway is None:
        if settings.SMTP_HOST:
            _gateway = SmtpGateway(
                host=settings.SMTP_HOST,
                port=settings.SMTP_PORT,
                username=settings.SMTP_USERNAME,
                password=settings.SMTP_PASSWORD,
                use_tls=settings.SMTP_USE_TLS,
                use_ssl=settings.SMTP_USE_SSL,
                from_email=settings.MAIL_FROM,
            )
        else:
            logger.warning("SMTP_HOST not set, e-mail will be logged instead of sent")
            _gateway = ConsoleGateway()
    return _gateway
