"""Error hierarchy for the relay agent.

``ConfigError`` is fatal at startup.  Every ``CycleError`` subclass aborts
only the current account's cycle; the scheduler logs it and moves on to the
next account.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all relay errors."""


class ConfigError(RelayError):
    """The accounts file is missing, unreadable, or invalid."""


class CycleError(RelayError):
    """An unrecoverable error inside one account's cycle."""

    kind = "cycle"

    def __init__(
        self,
        message: str,
        *,
        mailbox: str | None = None,
        uid: str | None = None,
    ) -> None:
        super().__init__(message)
        self.mailbox = mailbox
        self.uid = uid

    def __str__(self) -> str:
        text = super().__str__()
        context = []
        if self.mailbox is not None:
            context.append(f"mailbox={self.mailbox}")
        if self.uid is not None:
            context.append(f"uid={self.uid}")
        if context:
            return f"{text} ({', '.join(context)})"
        return text


class RelayConnectionError(CycleError):
    """Network or TLS failure reaching a mail server."""

    kind = "connection"


class AuthError(CycleError):
    """The server rejected the account credentials."""

    kind = "auth"


class MailboxError(CycleError):
    """The mailbox does not exist or selection was refused."""

    kind = "mailbox"


class FetchError(CycleError):
    """Searching or fetching unseen messages failed."""

    kind = "fetch"


class ParseError(CycleError):
    """A fetched message could not be parsed."""

    kind = "parse"


class SendError(CycleError):
    """Forwarding over SMTP failed.

    ``reason`` is one of ``"connection"``, ``"auth"`` or ``"rejected"``.
    """

    kind = "send"

    def __init__(
        self,
        message: str,
        *,
        reason: str,
        mailbox: str | None = None,
        uid: str | None = None,
    ) -> None:
        super().__init__(message, mailbox=mailbox, uid=uid)
        self.reason = reason


class StoreError(CycleError):
    """Setting the seen flag on a forwarded message failed."""

    kind = "store"
