"""mailrelay: relay unread IMAP mail to a fixed address over SMTP.

Public API re-exported here for convenience::

    from mailrelay import Scheduler, MailSender, load_accounts
"""

__version__ = "0.1.0"

from .config import AccountConfig, RelaySettings, RetryConfig, load_accounts
from .cycle import CycleOrchestrator
from .errors import (
    AuthError,
    ConfigError,
    CycleError,
    FetchError,
    MailboxError,
    ParseError,
    RelayConnectionError,
    RelayError,
    SendError,
    StoreError,
)
from .forward import build_forward_message
from .imap_client import MailSession
from .logging import setup_logging
from .models import (
    CycleReport,
    CycleState,
    ForwardMessage,
    MailboxInfo,
    RoundReport,
    UnseenRecord,
)
from .parser import MessageParser, ParsedMessage
from .retry import with_retry
from .scheduler import Scheduler
from .shutdown import install_signal_handlers
from .smtp_sender import MailSender

__all__ = [
    "AccountConfig",
    "AuthError",
    "ConfigError",
    "CycleError",
    "CycleOrchestrator",
    "CycleReport",
    "CycleState",
    "FetchError",
    "ForwardMessage",
    "MailSender",
    "MailSession",
    "MailboxError",
    "MailboxInfo",
    "MessageParser",
    "ParseError",
    "ParsedMessage",
    "RelayConnectionError",
    "RelayError",
    "RelaySettings",
    "RetryConfig",
    "RoundReport",
    "Scheduler",
    "SendError",
    "StoreError",
    "UnseenRecord",
    "build_forward_message",
    "install_signal_handlers",
    "load_accounts",
    "setup_logging",
    "with_retry",
]
