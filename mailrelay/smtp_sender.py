"""Per-message SMTP submission over implicit TLS using aiosmtplib.

Each send opens its own connection, authenticates, runs a single
MAIL FROM / RCPT TO / DATA transaction and quits.  No connection is reused
between messages.
"""

from __future__ import annotations

import aiosmtplib
import structlog

from .config import AccountConfig, RetryConfig
from .errors import SendError
from .models import ForwardMessage
from .retry import with_retry

logger = structlog.get_logger()


class MailSender:
    """Submits :class:`ForwardMessage` envelopes to an account's SMTP server."""

    def __init__(self, *, timeout: float = 60.0, retry: RetryConfig | None = None) -> None:
        self._timeout = timeout
        self._retry = retry

    async def send(self, message: ForwardMessage, account: AccountConfig) -> None:
        """Transmit *message*.  Any failure raises :class:`SendError`."""
        host, port = account.smtp_domain, account.smtp_port
        try:
            smtp = await self._connect(account)
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise SendError(f"cannot connect to {host}:{port}: {exc}", reason="connection") from exc

        try:
            await smtp.login(account.smtp_username, account.smtp_password.get_secret_value())
            await smtp.sendmail(message.sender, [message.recipient], message.body)
        except aiosmtplib.SMTPAuthenticationError as exc:
            raise SendError(
                f"SMTP login rejected for {account.smtp_username}: {exc}",
                reason="auth",
            ) from exc
        except (aiosmtplib.SMTPServerDisconnected, aiosmtplib.SMTPTimeoutError, OSError) as exc:
            raise SendError(f"connection to {host}:{port} lost: {exc}", reason="connection") from exc
        except aiosmtplib.SMTPException as exc:
            raise SendError(f"message refused by {host}: {exc}", reason="rejected") from exc
        finally:
            await self._quit(smtp)

        logger.debug(
            "smtp_message_sent",
            host=host,
            recipient=message.recipient,
            size_bytes=len(message.body),
        )

    async def _connect(self, account: AccountConfig) -> aiosmtplib.SMTP:
        connect = self._open_connection
        if self._retry is not None:
            connect = with_retry(
                self._retry,
                retryable_exceptions=(aiosmtplib.SMTPConnectError, OSError),
            )(connect)
        return await connect(account)

    async def _open_connection(self, account: AccountConfig) -> aiosmtplib.SMTP:
        smtp = aiosmtplib.SMTP(
            hostname=account.smtp_domain,
            port=account.smtp_port,
            use_tls=True,
            start_tls=False,
            timeout=self._timeout,
        )
        await smtp.connect()
        return smtp

    async def _quit(self, smtp: aiosmtplib.SMTP) -> None:
        if not smtp.is_connected:
            return
        try:
            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.warning("smtp_quit_failed", error=str(exc))
            smtp.close()
