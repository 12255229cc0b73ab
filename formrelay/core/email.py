from __future__ import annotations

import asyncio
import logging
import smtplib
import subprocess
from email.message import EmailMessage
from typing import Optional, Protocol

from formrelay.core.config import Settings
from formrelay.core.errors import TransportError

logger = logging.getLogger(__name__)

# Extra wait on top of the transport timeout before dispatch gives up
DISPATCH_GRACE_SECONDS = 5.0


class MailTransport(Protocol):
    def send(self, message: EmailMessage) -> None:
        """Hand ``message`` to the mail system; raise TransportError if refused."""


class SmtpTransport:
    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        starttls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    def send(self, message: EmailMessage) -> None:
        if not self.host:
            raise TransportError("SMTP_HOST is not configured")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.starttls:
                    server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                refused = server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError(f"SMTP delivery to {self.host} failed: {exc}") from exc

        if refused:
            raise TransportError(f"SMTP server refused recipients: {sorted(refused)}")


class SendmailTransport:
    """Pipes the message to the local MTA through its sendmail interface."""

    def __init__(self, path: str = "/usr/sbin/sendmail", timeout: float = 30.0):
        self.path = path
        self.timeout = timeout

    def send(self, message: EmailMessage) -> None:
        try:
            completed = subprocess.run(
                [self.path, "-t", "-i"],
                input=message.as_bytes(),
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise TransportError(f"sendmail at {self.path} failed: {exc}") from exc

        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise TransportError(
                f"sendmail exited with status {completed.returncode}: {stderr}"
            )


def build_transport(settings: Settings) -> MailTransport:
    if settings.MAIL_TRANSPORT == "sendmail":
        return SendmailTransport(settings.SENDMAIL_PATH, settings.MAIL_TIMEOUT_SECONDS)
    return SmtpTransport(
        host=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        user=settings.SMTP_USER,
        password=settings.SMTP_PASSWORD,
        starttls=settings.SMTP_STARTTLS,
        timeout=settings.MAIL_TIMEOUT_SECONDS,
    )


class MailDispatcher:
    """
    Sends composed messages through a transport with an outer timeout.

    ``dispatch`` reports whether the transport accepted the message. It does
    not confirm delivery, and it never raises for transport failures.

    The outer timeout only stops waiting: the worker thread cannot be
    cancelled, so a transport that finishes late still hands the message
    over after ``dispatch`` returned False. The transport's own socket or
    process timeout is the real bound, and callers should set ``timeout``
    above it (see ``DISPATCH_GRACE_SECONDS``) so a slow but successful send
    is not reported as a failure.
    """

    def __init__(self, transport: MailTransport, timeout: float = 30.0):
        self.transport = transport
        self.timeout = timeout

    async def dispatch(self, message: EmailMessage) -> bool:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.transport.send, message),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                "Mail dispatch timed out after %ss subject=%r",
                self.timeout,
                message["Subject"],
            )
            return False
        except TransportError as exc:
            logger.error("Mail transport rejected message: %s", exc)
            return False

        logger.info(
            "Mail accepted by transport to=%s subject=%r",
            message["To"],
            message["Subject"],
        )
        return True
