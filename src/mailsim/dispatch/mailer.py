"""SMTP mailer that sends conversation messages as threaded emails.

Each send opens its own SMTP connection with the sender's credentials,
delivers one multipart message and disconnects. Thread linkage is carried in
the ``In-Reply-To`` and ``References`` headers.

Classes:
    SMTPMailer: Sends one message per call via aiosmtplib.

Functions:
    resolve_tls_mode: Pick implicit TLS / STARTTLS for a port.
    render_html: Convert a plain-text body to the HTML alternative part.

Example:
    >>> mailer = SMTPMailer(timeout=10.0)
    >>> receipt = await mailer.send(
    ...     sender=alice,
    ...     recipients=[bob, carol],
    ...     subject="Re: Conversation: Launch plan",
    ...     body="Sounds good to me.",
    ...     thread_parent_id="<1700000000.1234@example.com>",
    ... )
    >>> receipt.transport_message_id
    '<170000000512.98765.1234@example.com>'
"""

from __future__ import annotations

import asyncio
import html
import logging
import socket
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid

import aiosmtplib

from src.mailsim.dispatch.models import (
    DispatchError,
    DispatchErrorKind,
    DispatchReceipt,
)
from src.mailsim.store.models import Account, EmailConfig


logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465
STARTTLS_PORTS = (587, 25)
DEFAULT_TIMEOUT = 10.0


def resolve_tls_mode(config: EmailConfig) -> tuple[bool, bool | None]:
    """Return ``(use_tls, start_tls)`` for an SMTP configuration.

    Port 465 always uses implicit TLS and ports 587/25 always require
    STARTTLS. Other ports use implicit TLS when ``smtp_secure`` is set and
    otherwise upgrade opportunistically.
    """
    if config.smtp_port == IMPLICIT_TLS_PORT:
        return True, False
    if config.smtp_port in STARTTLS_PORTS:
        return False, True
    if config.smtp_secure:
        return True, False
    return False, None


def render_html(body: str) -> str:
    """Render a plain-text body as a single HTML paragraph."""
    escaped = html.escape(body).replace("\r\n", "\n").replace("\n", "<br>")
    return f"<p>{escaped}</p>"


def _domain_of(address: str) -> str | None:
    return address.rsplit("@", 1)[1] if "@" in address else None


class SMTPMailer:
    """Sends messages through each sender's own SMTP server.

    Attributes:
        timeout: Connection and command timeout in seconds.
        verify_dns: Resolve the SMTP host before connecting so DNS problems
            are reported as such rather than as connection failures.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, verify_dns: bool = True) -> None:
        self.timeout = timeout
        self.verify_dns = verify_dns

    async def send(
        self,
        sender: Account,
        recipients: list[Account],
        subject: str,
        body: str,
        thread_parent_id: str | None = None,
        references: list[str] | None = None,
    ) -> DispatchReceipt:
        """Send one message.

        Args:
            sender: Account sending the message; must have SMTP credentials.
            recipients: Accounts receiving the message.
            subject: Subject line.
            body: Plain-text body.
            thread_parent_id: ``Message-ID`` this message replies to.
            references: Earlier ``Message-ID`` values in the thread.

        Returns:
            DispatchReceipt carrying the new message's ``Message-ID``.

        Raises:
            DispatchError: Missing configuration or a transport failure.
        """
        config = sender.email_config
        if config is None or not config.is_complete:
            raise DispatchError(
                "SMTP configuration is incomplete. Host, port, user, and "
                "password are required.",
                kind=DispatchErrorKind.CONFIGURATION,
            )
        if not recipients:
            raise DispatchError(
                "At least one recipient is required.",
                kind=DispatchErrorKind.CONFIGURATION,
            )

        host = config.smtp_host.strip()
        if self.verify_dns:
            await self._resolve_host(host, config.smtp_port)

        message_id = make_msgid(domain=_domain_of(sender.email))
        msg = self.build_message(
            sender, recipients, subject, body, message_id, thread_parent_id, references
        )
        to_addresses = [r.email for r in recipients]
        use_tls, start_tls = resolve_tls_mode(config)

        logger.debug(
            f"Connecting to {host}:{config.smtp_port} as {sender.email} "
            f"(use_tls={use_tls}, start_tls={start_tls})"
        )
        smtp = aiosmtplib.SMTP(
            hostname=host,
            port=config.smtp_port,
            use_tls=use_tls,
            start_tls=start_tls,
            timeout=self.timeout,
            validate_certs=False,
        )
        try:
            await smtp.connect()
            await smtp.login(
                config.smtp_user.strip(), config.smtp_password.get_secret_value()
            )
            await smtp.sendmail(sender.email, to_addresses, msg.as_string())
        except aiosmtplib.SMTPAuthenticationError as e:
            raise DispatchError(
                "Authentication failed. Please check your email credentials.",
                kind=DispatchErrorKind.AUTH_FAILURE,
                host=host,
            ) from e
        except (aiosmtplib.SMTPTimeoutError, asyncio.TimeoutError) as e:
            raise DispatchError(
                f"Connection to {host}:{config.smtp_port} timed out.",
                kind=DispatchErrorKind.TIMEOUT,
                host=host,
            ) from e
        except (aiosmtplib.SMTPConnectError, aiosmtplib.SMTPServerDisconnected) as e:
            raise DispatchError(
                f"Connection to {host}:{config.smtp_port} failed: {e}",
                kind=DispatchErrorKind.CONNECTION_FAILURE,
                host=host,
            ) from e
        except aiosmtplib.SMTPException as e:
            raise DispatchError(
                f"SMTP error: {e}", kind=DispatchErrorKind.OTHER, host=host
            ) from e
        except UnicodeError as e:
            raise DispatchError(
                f'Invalid SMTP host "{host}": {e}',
                kind=DispatchErrorKind.DNS_FAILURE,
                host=host,
            ) from e
        except OSError as e:
            raise DispatchError(
                f"Connection to {host}:{config.smtp_port} failed: {e}",
                kind=DispatchErrorKind.CONNECTION_FAILURE,
                host=host,
            ) from e
        finally:
            await self._disconnect(smtp, host)

        logger.info(
            f"Sent {message_id} from {sender.email} "
            f"to {len(to_addresses)} recipient(s)"
        )
        return DispatchReceipt(
            transport_message_id=message_id, recipients=tuple(to_addresses)
        )

    @staticmethod
    def build_message(
        sender: Account,
        recipients: list[Account],
        subject: str,
        body: str,
        message_id: str,
        thread_parent_id: str | None = None,
        references: list[str] | None = None,
    ) -> MIMEMultipart:
        """Build the multipart/alternative email with threading headers."""
        msg = MIMEMultipart("alternative")
        msg.attach(MIMEText(body, "plain"))
        msg.attach(MIMEText(render_html(body), "html"))

        msg["Message-ID"] = message_id
        if thread_parent_id:
            msg["In-Reply-To"] = thread_parent_id
            chain = list(references or [])
            if thread_parent_id not in chain:
                chain.append(thread_parent_id)
            msg["References"] = " ".join(chain)

        msg["Subject"] = subject
        msg["From"] = formataddr((sender.name, sender.email))
        msg["To"] = ", ".join(formataddr((r.name, r.email)) for r in recipients)
        return msg

    async def _resolve_host(self, host: str, port: int) -> None:
        """Resolve ``host`` over IPv4 first, then any address family."""
        loop = asyncio.get_running_loop()
        try:
            await loop.getaddrinfo(host, port, family=socket.AF_INET)
            return
        except (socket.gaierror, UnicodeError):
            logger.debug(f"IPv4 lookup failed for {host}, retrying any family")
        try:
            await loop.getaddrinfo(host, port)
        except (socket.gaierror, UnicodeError) as e:
            raise DispatchError(
                f'DNS resolution failed for "{host}": {e}',
                kind=DispatchErrorKind.DNS_FAILURE,
                host=host,
            ) from e

    async def _disconnect(self, smtp: aiosmtplib.SMTP, host: str) -> None:
        """Close ``smtp`` if still connected, dropping the transport on error."""
        if not smtp.is_connected:
            return
        try:
            await smtp.quit()
        except (aiosmtplib.SMTPException, asyncio.TimeoutError, OSError) as e:
            logger.debug(f"Ignoring error closing connection to {host}: {e}")
            smtp.close()
