"""CycleOrchestrator: drive one account through all its mailboxes.

A cycle is fail-fast.  The first error at any step (select, search, fetch,
parse, send, mark) logs the session out and skips every remaining message
and mailbox of that account until the next round.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from .config import AccountConfig
from .errors import CycleError
from .forward import build_forward_message
from .imap_client import MailSession
from .models import CycleReport, CycleState, UnseenRecord
from .parser import MessageParser
from .smtp_sender import MailSender

logger = structlog.get_logger()

SessionFactory = Callable[[AccountConfig], MailSession]


class CycleOrchestrator:
    """Runs exactly one cycle for one account.

    The IMAP session is created, used, and logged out inside :meth:`run`.
    Expected failures are recorded on the returned :class:`CycleReport`;
    anything else still logs the session out and then propagates.
    """

    def __init__(
        self,
        name: str,
        account: AccountConfig,
        *,
        sender: MailSender,
        parser: MessageParser | None = None,
        session_factory: SessionFactory = MailSession,
    ) -> None:
        self.name = name
        self._account = account
        self._sender = sender
        self._parser = parser or MessageParser()
        self._session_factory = session_factory
        self.report = CycleReport(account=name)

    @property
    def state(self) -> CycleState:
        return self.report.state

    async def run(self) -> CycleReport:
        session = self._session_factory(self._account)
        try:
            await session.open()
        except CycleError as exc:
            self.report.error = exc
            self.report.state = CycleState.LOGGED_OUT
            return self.report
        self.report.state = CycleState.SESSION_OPEN

        try:
            for mailbox in self._account.mailboxes:
                await self._drain_mailbox(session, mailbox)
        except CycleError as exc:
            self.report.error = exc
        finally:
            await session.logout()
            self.report.state = CycleState.LOGGED_OUT
        return self.report

    async def _drain_mailbox(self, session: MailSession, mailbox: str) -> None:
        try:
            info = await session.select(mailbox)
            self.report.state = CycleState.MAILBOX_SELECTED
            if info.unseen == 0:
                logger.info("mailbox_empty", mailbox=mailbox)
                self.report.mailboxes_processed.append(mailbox)
                return

            uids = await session.search_unseen()
            if not uids:
                logger.info("mailbox_empty", mailbox=mailbox)
                self.report.mailboxes_processed.append(mailbox)
                return

            records = await session.fetch_bodies(uids)
            logger.info("mailbox_unseen", mailbox=mailbox, count=len(records))
            self.report.state = CycleState.DRAINING
            for record in records:
                await self._forward_one(session, mailbox, record)
        except CycleError as exc:
            if exc.mailbox is None:
                exc.mailbox = mailbox
            raise
        self.report.mailboxes_processed.append(mailbox)

    async def _forward_one(self, session: MailSession, mailbox: str, record: UnseenRecord) -> None:
        try:
            parsed = self._parser.parse(record.raw_bytes)
            message = build_forward_message(parsed, self._account)
            await self._sender.send(message, self._account)
            # Only a completed send may set the flag.
            await session.mark_seen(record.uid)
        except CycleError as exc:
            if exc.uid is None:
                exc.uid = record.uid
            raise
        self.report.forwarded += 1
        logger.info(
            "message_forwarded",
            mailbox=mailbox,
            uid=record.uid,
            message_id=parsed.message_id,
            target=message.recipient,
        )
