"""Shared test fixtures for the mailrelay test suite."""

from __future__ import annotations

from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email import encoders

import pytest

from mailrelay.config import AccountConfig
from mailrelay.errors import MailboxError, SendError
from mailrelay.models import ForwardMessage, MailboxInfo, UnseenRecord


# ------------------------------------------------------------------
# Accounts
# ------------------------------------------------------------------


def make_account(name: str, mailboxes: list[str] | None = None, **overrides) -> AccountConfig:
    fields = dict(
        imap_domain=f"imap.{name}.example",
        imap_username=f"me@{name}.example",
        imap_password="imap-secret",
        smtp_domain=f"smtp.{name}.example",
        smtp_username=f"me@{name}.example",
        smtp_password="smtp-secret",
        mailboxes=["INBOX"] if mailboxes is None else mailboxes,
        forward_target="target@relay.example",
    )
    fields.update(overrides)
    return AccountConfig(**fields)


@pytest.fixture
def work_account() -> AccountConfig:
    return make_account("work", ["INBOX", "Lists"])


@pytest.fixture
def personal_account() -> AccountConfig:
    return make_account("personal")


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "sender@example.com",
    to_addr: str = "recipient@example.com",
    body: str = "Hello, World!",
    message_id: str = "<test-001@example.com>",
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Message-ID"] = message_id
    msg["Date"] = "Mon, 01 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _build_multipart_email(
    *,
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
    attachments: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart email with text, HTML, and optional attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Multipart Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<multi-001@example.com>"
    msg["Date"] = "Mon, 01 Jun 2025 12:00:00 +0000"

    alt = MIMEMultipart("alternative")
    alt.attach(MIMEText(body_text, "plain"))
    alt.attach(MIMEText(body_html, "html"))
    msg.attach(alt)

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg.as_bytes()


def email_for(uid: str) -> bytes:
    return _build_plain_email(
        subject=f"Message {uid}",
        message_id=f"<msg-{uid}@example.com>",
        body=f"Body of {uid}",
    )


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return _build_multipart_email(
        attachments=[
            ("report.pdf", "application/pdf", b"%PDF-1.4 fake pdf content"),
        ],
    )


# ------------------------------------------------------------------
# In-memory IMAP server and SMTP sender
# ------------------------------------------------------------------


class FakeImapServer:
    """Mailboxes of ``{uid: raw}`` plus a seen set, recording every command."""

    def __init__(self, host: str, mailboxes: dict[str, dict[str, bytes]], events: list) -> None:
        self.host = host
        self.mailboxes = mailboxes
        self.events = events
        self.seen: set[tuple[str, str]] = set()
        self.fail_open: BaseException | None = None
        self.fail_select: dict[str, BaseException] = {}
        self.fail_store: dict[str, BaseException] = {}

    def unseen(self, mailbox: str) -> list[str]:
        return [uid for uid in self.mailboxes[mailbox] if (mailbox, uid) not in self.seen]

    def session(self, _account: AccountConfig | None = None) -> FakeSession:
        return FakeSession(self)


class FakeSession:
    def __init__(self, server: FakeImapServer) -> None:
        self._server = server
        self._selected: str | None = None

    async def open(self) -> None:
        self._server.events.append(("open", self._server.host))
        if self._server.fail_open is not None:
            raise self._server.fail_open

    async def select(self, mailbox: str) -> MailboxInfo:
        server = self._server
        server.events.append(("select", server.host, mailbox))
        if mailbox in server.fail_select:
            raise server.fail_select[mailbox]
        if mailbox not in server.mailboxes:
            raise MailboxError("no such mailbox", mailbox=mailbox)
        self._selected = mailbox
        return MailboxInfo(
            name=mailbox,
            exists=len(server.mailboxes[mailbox]),
            unseen=len(server.unseen(mailbox)),
        )

    async def search_unseen(self) -> list[str]:
        self._server.events.append(("search", self._server.host, self._selected))
        return self._server.unseen(self._selected)

    async def fetch_bodies(self, uids: list[str]) -> list[UnseenRecord]:
        self._server.events.append(("fetch", self._server.host, self._selected, list(uids)))
        box = self._server.mailboxes[self._selected]
        return [UnseenRecord(uid=uid, raw_bytes=box[uid]) for uid in uids]

    async def mark_seen(self, uid: str) -> None:
        server = self._server
        server.events.append(("mark", server.host, self._selected, uid))
        if uid in server.fail_store:
            raise server.fail_store[uid]
        server.seen.add((self._selected, uid))

    async def logout(self) -> None:
        self._server.events.append(("logout", self._server.host))


class FakeSender:
    """Records sends; raises SendError for bodies listed in ``fail_bodies``."""

    def __init__(self, events: list, fail_bodies: set[bytes] | None = None) -> None:
        self.events = events
        self.fail_bodies = fail_bodies or set()
        self.sent: list[ForwardMessage] = []

    async def send(self, message: ForwardMessage, account: AccountConfig) -> None:
        self.events.append(("send", account.smtp_username, message.body))
        if message.body in self.fail_bodies:
            raise SendError("552 message refused", reason="rejected")
        self.sent.append(message)


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def work_server(events: list) -> FakeImapServer:
    return FakeImapServer(
        "imap.work.example",
        {
            "INBOX": {"101": email_for("101"), "102": email_for("102")},
            "Lists": {"201": email_for("201")},
        },
        events,
    )


@pytest.fixture
def personal_server(events: list) -> FakeImapServer:
    return FakeImapServer(
        "imap.personal.example",
        {"INBOX": {"301": email_for("301")}},
        events,
    )


@pytest.fixture
def sender(events: list) -> FakeSender:
    return FakeSender(events)


@pytest.fixture
def session_factory(work_server: FakeImapServer, personal_server: FakeImapServer):
    servers = {s.host: s for s in (work_server, personal_server)}

    def _factory(account: AccountConfig) -> FakeSession:
        return servers[account.imap_domain].session(account)

    return _factory
