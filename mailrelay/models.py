"""Data carried through one account cycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .errors import CycleError


class CycleState(str, Enum):
    """Where an account cycle currently is."""

    IDLE = "idle"
    SESSION_OPEN = "session_open"
    MAILBOX_SELECTED = "mailbox_selected"
    DRAINING = "draining"
    LOGGED_OUT = "logged_out"


@dataclass
class MailboxInfo:
    """Result of selecting a mailbox."""

    name: str
    exists: int
    unseen: int | None


@dataclass
class UnseenRecord:
    """Raw email data fetched from IMAP."""

    uid: str
    raw_bytes: bytes


@dataclass(frozen=True)
class ForwardMessage:
    """Outbound SMTP envelope wrapping the original message bytes."""

    sender: str
    recipient: str
    body: bytes


@dataclass
class CycleReport:
    """Outcome of one account cycle."""

    account: str
    state: CycleState = CycleState.IDLE
    mailboxes_processed: list[str] = field(default_factory=list)
    forwarded: int = 0
    error: CycleError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RoundReport:
    """Outcome of one scheduler pass over every account."""

    number: int
    cycles: list[CycleReport] = field(default_factory=list)

    @property
    def failed(self) -> list[str]:
        return [c.account for c in self.cycles if not c.ok]

    @property
    def forwarded(self) -> int:
        return sum(c.forwarded for c in self.cycles)
