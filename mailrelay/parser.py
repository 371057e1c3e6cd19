"""MIME parser that decides whether a fetched message is fit to forward.

The parsed view is only a gate: forwarding always uses the untouched raw
bytes, so body decoding here is lenient while header parsing is strict.
"""

from __future__ import annotations

import email
import email.message
import email.policy
import email.utils
from dataclasses import dataclass, field

from .errors import ParseError


@dataclass
class ParsedMessage:
    """Structured view over one raw RFC 822 message.

    ``headers`` maps each field name to all of its values in message order,
    so repeated fields such as ``Received`` are kept.
    """

    raw_bytes: bytes
    message_id: str
    subject: str
    from_address: str
    to_addresses: list[str]
    date: str
    content_type: str
    body_text: str | None
    part_count: int
    headers: dict[str, list[str]] = field(default_factory=dict)
    defects: int = 0


class MessageParser:
    """Stateless parser: raw RFC 822 bytes → ParsedMessage."""

    def parse(self, raw_bytes: bytes) -> ParsedMessage:
        if not raw_bytes or not raw_bytes.strip():
            raise ParseError("empty message")

        # The header registry can raise almost anything on hostile input
        # (AttributeError from address groups, among others).
        try:
            msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)
            headers: dict[str, list[str]] = {}
            for name, value in msg.items():
                headers.setdefault(name, []).append(str(value))
            if not headers:
                raise ParseError("no header fields found")

            parts = list(msg.walk())
            parsed = ParsedMessage(
                raw_bytes=raw_bytes,
                message_id=str(msg.get("Message-ID", "")),
                subject=str(msg.get("Subject", "")),
                from_address=str(msg.get("From", "")),
                to_addresses=self._parse_address_list(msg.get("To")),
                date=str(msg.get("Date", "")),
                content_type=msg.get_content_type(),
                body_text=self._extract_text(parts),
                part_count=len(parts),
                headers=headers,
                defects=sum(len(part.defects) for part in parts),
            )
        except ParseError:
            raise
        except Exception as exc:
            raise ParseError(f"malformed headers: {exc!r}") from exc
        return parsed

    def _extract_text(self, parts: list[email.message.Message]) -> str | None:
        """Return the first inline text/plain part, decoded leniently."""
        for part in parts:
            if part.get_content_maintype() == "multipart":
                continue
            if part.get_content_type() != "text/plain":
                continue
            if "attachment" in str(part.get("Content-Disposition", "")):
                continue
            payload = part.get_payload(decode=True)
            if not isinstance(payload, bytes):
                continue
            charset = part.get_content_charset() or "utf-8"
            try:
                return payload.decode(charset, errors="replace")
            except LookupError:
                return payload.decode("utf-8", errors="replace")
        return None

    def _parse_address_list(self, header_value: object) -> list[str]:
        if not header_value:
            return []
        return [addr for _, addr in email.utils.getaddresses([str(header_value)]) if addr]
