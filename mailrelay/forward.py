"""Build the outbound envelope for a relayed message."""

from __future__ import annotations

from .config import AccountConfig
from .models import ForwardMessage
from .parser import ParsedMessage


def build_forward_message(parsed: ParsedMessage, account: AccountConfig) -> ForwardMessage:
    """Wrap the original bytes in an envelope from the account to its target.

    The body is never re-serialized from the parsed structure, so headers,
    MIME layout, and transfer encodings reach the target exactly as received.
    """
    return ForwardMessage(
        sender=account.smtp_username,
        recipient=account.forward_target,
        body=parsed.raw_bytes,
    )
