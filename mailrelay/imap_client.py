"""Async IMAP session wrapping stdlib imaplib with asyncio.to_thread.

One :class:`MailSession` lives for exactly one account cycle.  It covers
session setup, unseen discovery, the batched body fetch, and the seen-flag
update.  All commands are UID-based.
"""

from __future__ import annotations

import asyncio
import imaplib
import re
import ssl
from types import TracebackType

import structlog

from .config import AccountConfig, RetryConfig
from .errors import (
    AuthError,
    FetchError,
    MailboxError,
    RelayConnectionError,
    StoreError,
)
from .models import MailboxInfo, UnseenRecord
from .retry import with_retry

logger = structlog.get_logger()

_UID_RE = re.compile(rb"UID (\d+)")
_UNSEEN_RE = re.compile(rb"UNSEEN (\d+)")
_NEEDS_QUOTING = set(' "\\(){%*')


def quote_mailbox(name: str) -> str:
    """Quote a mailbox name for imaplib, which sends arguments verbatim."""
    if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
        return name
    if not name or _NEEDS_QUOTING.intersection(name):
        escaped = name.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return name


def _describe(data: list | None) -> str:
    if not data:
        return "no response text"
    first = data[0]
    if isinstance(first, bytes):
        return first.decode(errors="replace")
    return str(first)


def _parse_unseen(data: list) -> int | None:
    for item in data:
        if isinstance(item, bytes):
            match = _UNSEEN_RE.search(item)
            if match:
                return int(match.group(1))
    return None


def _collect_bodies(data: list) -> dict[str, bytes]:
    """Pair each returned literal with its UID.

    imaplib yields ``(meta, literal)`` tuples followed by a closing bytes
    chunk.  Most servers put ``UID n`` in the meta; some send it after the
    literal, in the closing chunk.
    """
    bodies: dict[str, bytes] = {}
    pending: bytes | None = None
    for item in data:
        if isinstance(item, tuple) and len(item) == 2:
            meta, literal = item
            match = _UID_RE.search(meta)
            if match:
                bodies[match.group(1).decode()] = literal
                pending = None
            else:
                pending = literal
        elif isinstance(item, bytes) and pending is not None:
            match = _UID_RE.search(item)
            if match:
                bodies[match.group(1).decode()] = pending
            pending = None
    return bodies


class MailSession:
    """One authenticated, TLS-secured IMAP connection for one account.

    Blocking ``imaplib`` calls run through ``asyncio.to_thread()`` and are
    awaited one at a time; the session is never shared between accounts.
    Use as an async context manager to guarantee logout::

        async with MailSession(account) as session:
            info = await session.select("INBOX")
    """

    def __init__(
        self,
        account: AccountConfig,
        *,
        timeout: float | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self._account = account
        self._timeout = timeout
        self._retry = retry
        self._conn: imaplib.IMAP4_SSL | None = None
        self._selected: str | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def selected(self) -> str | None:
        return self._selected

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Connect over TLS and log in."""
        await asyncio.to_thread(self._open_sync)
        logger.info(
            "imap_connected",
            host=self._account.imap_domain,
            username=self._account.imap_username,
        )

    def _open_sync(self) -> None:
        connect = self._connect_sync
        if self._retry is not None:
            connect = with_retry(
                self._retry,
                retryable_exceptions=(RelayConnectionError,),
            )(connect)
        conn = connect()

        account = self._account
        try:
            conn.login(account.imap_username, account.imap_password.get_secret_value())
        except imaplib.IMAP4.abort as exc:
            _shutdown_quietly(conn)
            raise RelayConnectionError(f"connection lost during login: {exc}") from exc
        except imaplib.IMAP4.error as exc:
            _shutdown_quietly(conn)
            raise AuthError(f"IMAP login rejected for {account.imap_username}: {exc}") from exc
        except OSError as exc:
            _shutdown_quietly(conn)
            raise RelayConnectionError(f"connection lost during login: {exc}") from exc
        except UnicodeEncodeError as exc:
            # imaplib sends LOGIN arguments as ASCII.
            _shutdown_quietly(conn)
            raise AuthError(
                f"IMAP credentials for {account.imap_username} are not ASCII: {exc}"
            ) from exc
        self._conn = conn

    def _connect_sync(self) -> imaplib.IMAP4_SSL:
        host, port = self._account.imap_domain, self._account.imap_port
        # The default context verifies the certificate chain and host name.
        context = ssl.create_default_context()
        try:
            return imaplib.IMAP4_SSL(host, port, ssl_context=context, timeout=self._timeout)
        except (OSError, imaplib.IMAP4.error) as exc:
            raise RelayConnectionError(f"cannot connect to {host}:{port}: {exc}") from exc

    async def logout(self) -> None:
        """Close the session.  Failures are logged, never raised."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        self._selected = None
        try:
            await asyncio.to_thread(conn.logout)
        except (imaplib.IMAP4.error, OSError) as exc:
            logger.warning(
                "imap_logout_failed",
                host=self._account.imap_domain,
                error=str(exc),
            )
        else:
            logger.info("imap_disconnected", host=self._account.imap_domain)

    async def __aenter__(self) -> MailSession:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.logout()

    def _require_conn(self) -> imaplib.IMAP4_SSL:
        if self._conn is None:
            raise RuntimeError("IMAP session is not open")
        return self._conn

    # ------------------------------------------------------------------
    # Mailbox selection
    # ------------------------------------------------------------------

    async def select(self, mailbox: str) -> MailboxInfo:
        """Make *mailbox* the active mailbox and report its unseen count."""
        conn = self._require_conn()
        info = await asyncio.to_thread(self._select_sync, conn, mailbox)
        self._selected = mailbox
        logger.debug(
            "imap_mailbox_selected",
            mailbox=mailbox,
            exists=info.exists,
            unseen=info.unseen,
        )
        return info

    def _select_sync(self, conn: imaplib.IMAP4_SSL, mailbox: str) -> MailboxInfo:
        quoted = quote_mailbox(mailbox)
        try:
            status, data = conn.status(quoted, "(UNSEEN)")
            if status != "OK":
                raise MailboxError(f"STATUS refused: {_describe(data)}", mailbox=mailbox)
            unseen = _parse_unseen(data)

            status, data = conn.select(quoted)
            if status != "OK":
                raise MailboxError(f"SELECT refused: {_describe(data)}", mailbox=mailbox)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise MailboxError(f"cannot select mailbox: {exc}", mailbox=mailbox) from exc
        except UnicodeEncodeError as exc:
            raise MailboxError(f"mailbox name is not ASCII: {exc}", mailbox=mailbox) from exc

        first = data[0] if data else None
        exists = int(first) if isinstance(first, bytes) and first.isdigit() else 0
        return MailboxInfo(name=mailbox, exists=exists, unseen=unseen)

    # ------------------------------------------------------------------
    # Unseen discovery and fetch
    # ------------------------------------------------------------------

    async def search_unseen(self) -> list[str]:
        """Return UIDs without the seen flag, in the server's order."""
        conn = self._require_conn()
        return await asyncio.to_thread(self._search_sync, conn)

    def _search_sync(self, conn: imaplib.IMAP4_SSL) -> list[str]:
        try:
            status, data = conn.uid("SEARCH", None, "UNSEEN")
        except (imaplib.IMAP4.error, OSError) as exc:
            raise FetchError(f"UID SEARCH failed: {exc}", mailbox=self._selected) from exc
        if status != "OK":
            raise FetchError(f"UID SEARCH refused: {_describe(data)}", mailbox=self._selected)
        if not data or not data[0]:
            return []
        return [uid.decode() for uid in data[0].split()]

    async def fetch_bodies(self, uids: list[str]) -> list[UnseenRecord]:
        """Fetch full raw messages for *uids* in one round trip.

        ``BODY.PEEK[]`` leaves the seen flag untouched; the flag is only set
        by :meth:`mark_seen` once the message has been forwarded.
        """
        if not uids:
            return []
        conn = self._require_conn()
        records = await asyncio.to_thread(self._fetch_sync, conn, uids)
        logger.debug(
            "imap_fetch_complete",
            mailbox=self._selected,
            fetched=len(records),
            size_bytes=sum(len(r.raw_bytes) for r in records),
        )
        return records

    def _fetch_sync(self, conn: imaplib.IMAP4_SSL, uids: list[str]) -> list[UnseenRecord]:
        try:
            status, data = conn.uid("FETCH", ",".join(uids), "(BODY.PEEK[])")
        except (imaplib.IMAP4.error, OSError) as exc:
            raise FetchError(f"UID FETCH failed: {exc}", mailbox=self._selected) from exc
        if status != "OK":
            raise FetchError(f"UID FETCH refused: {_describe(data)}", mailbox=self._selected)

        bodies = _collect_bodies(data or [])
        records: list[UnseenRecord] = []
        for uid in uids:
            raw = bodies.get(uid)
            if raw is None:
                raise FetchError("server returned no body", mailbox=self._selected, uid=uid)
            records.append(UnseenRecord(uid=uid, raw_bytes=raw))
        return records

    # ------------------------------------------------------------------
    # Seen flag
    # ------------------------------------------------------------------

    async def mark_seen(self, uid: str) -> None:
        """Add ``\\Seen`` to *uid* in the selected mailbox."""
        conn = self._require_conn()
        await asyncio.to_thread(self._store_sync, conn, uid)

    def _store_sync(self, conn: imaplib.IMAP4_SSL, uid: str) -> None:
        try:
            status, data = conn.uid("STORE", uid, "+FLAGS", "(\\Seen)")
        except (imaplib.IMAP4.error, OSError) as exc:
            raise StoreError(f"UID STORE failed: {exc}", mailbox=self._selected, uid=uid) from exc
        if status != "OK":
            raise StoreError(
                f"UID STORE refused: {_describe(data)}",
                mailbox=self._selected,
                uid=uid,
            )


def _shutdown_quietly(conn: imaplib.IMAP4) -> None:
    try:
        conn.shutdown()
    except OSError:
        logger.debug("imap_socket_close_failed")
