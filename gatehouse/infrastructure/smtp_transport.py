"""SMTP Transport — outbound email over smtplib, run off the event loop.

Invariants:
    - send() either hands the message to the SMTP server or raises
      ServiceUnavailableError(EMAIL_SEND_FAILED); there is no silent failure
    - verify() opens a connection (and authenticates when credentials are set)
      without sending anything
    - A fresh connection per message: no shared socket state between worker tasks
    - Once sendmail returned, the send counts as done: a failing QUIT is logged,
      never reported as a send failure
    - A connection that fails STARTTLS or login is closed before the error propagates

Design Decisions:
    - smtplib in asyncio.to_thread over an async SMTP client: the stdlib client
      is what the rest of the stack already trusts, and the worker's concurrency
      bound keeps the thread count small
    - multipart/alternative with text first, HTML last (clients prefer the last part)
"""

import asyncio
import logging
import smtplib
import ssl
import socket
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from gatehouse.core.errors import ServiceUnavailableError
from gatehouse.core.repository_protocols import EmailMessage

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (smtplib.SMTPException, OSError, socket.timeout)


def _quit(server: smtplib.SMTP) -> None:
    """QUIT politely; a failure here never undoes what the server already accepted."""
    try:
        server.quit()
    except _TRANSPORT_ERRORS as e:
        logger.warning(f"SMTP QUIT failed, closing connection: {e}")
        server.close()


def build_mime(message: EmailMessage) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = message.subject
    msg["From"] = message.sender
    msg["To"] = message.to
    msg.attach(MIMEText(message.text, "plain", "utf-8"))
    msg.attach(MIMEText(message.html, "html", "utf-8"))
    return msg


class SmtpTransport:
    def __init__(
        self,
        host: str,
        port: int,
        use_ssl: bool = False,
        use_starttls: bool = False,
        user: str | None = None,
        password: str | None = None,
        timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.use_ssl = use_ssl
        self.use_starttls = use_starttls
        self.user = user
        self.password = password
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        if self.use_ssl:
            context = ssl.create_default_context()
            server = smtplib.SMTP_SSL(
                self.host, self.port, context=context, timeout=self.timeout,
            )
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if self.use_starttls and not self.use_ssl:
                server.starttls(context=ssl.create_default_context())
            if self.user and self.password:
                server.login(self.user, self.password)
        except BaseException:
            server.close()
            raise
        return server

    def _send_sync(self, message: EmailMessage) -> None:
        server = self._connect()
        try:
            server.sendmail(message.sender, [message.to], build_mime(message).as_string())
        finally:
            _quit(server)

    def _verify_sync(self) -> None:
        server = self._connect()
        try:
            server.noop()
        finally:
            _quit(server)

    async def send(self, message: EmailMessage) -> None:
        try:
            await asyncio.to_thread(self._send_sync, message)
        except _TRANSPORT_ERRORS as e:
            logger.error(
                f"SMTP send failed: {e}",
                extra={"error_code": "EMAIL_SEND_FAILED"},
            )
            raise ServiceUnavailableError(
                "Failed to send email", code="EMAIL_SEND_FAILED",
            ) from e

    async def verify(self) -> None:
        try:
            await asyncio.to_thread(self._verify_sync)
        except _TRANSPORT_ERRORS as e:
            raise ServiceUnavailableError(
                f"SMTP server {self.host}:{self.port} unreachable",
                code="EMAIL_TRANSPORT_UNAVAILABLE",
            ) from e
