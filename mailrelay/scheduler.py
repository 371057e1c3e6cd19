"""Scheduler: run one cycle per account, then sleep and repeat (or stop).

Accounts are isolated from each other: a failed account is logged and the
next one starts regardless.  ``interval <= 0`` means oneshot.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping

import structlog

from .config import AccountConfig
from .cycle import CycleOrchestrator, SessionFactory
from .errors import CycleError
from .imap_client import MailSession
from .models import CycleReport, RoundReport
from .parser import MessageParser
from .smtp_sender import MailSender

logger = structlog.get_logger()


class Scheduler:
    """Holds ``{accounts, interval}`` and steps through rounds.

    :meth:`run_round` is the per-round step; :meth:`run` loops it.  No state
    survives between rounds apart from the round counter: each cycle
    re-derives its work from the IMAP server.
    """

    def __init__(
        self,
        accounts: Mapping[str, AccountConfig],
        *,
        interval: float,
        sender: MailSender,
        parser: MessageParser | None = None,
        session_factory: SessionFactory = MailSession,
        shutdown_event: asyncio.Event | None = None,
    ) -> None:
        self._accounts = accounts
        self._interval = interval
        self._sender = sender
        self._parser = parser or MessageParser()
        self._session_factory = session_factory
        self._shutdown = shutdown_event or asyncio.Event()
        self.rounds_completed: int = 0

    @property
    def oneshot(self) -> bool:
        return self._interval <= 0

    async def run(self) -> None:
        """Run rounds until oneshot completes or shutdown is requested."""
        if self.oneshot:
            logger.info("oneshot_mode", accounts=len(self._accounts))
        else:
            logger.info(
                "polling_started",
                interval_seconds=self._interval,
                accounts=len(self._accounts),
            )

        while not self._shutdown.is_set():
            await self.run_round()
            if self.oneshot or await self._sleep():
                break

        logger.info("scheduler_stopped", rounds=self.rounds_completed)

    async def run_round(self) -> RoundReport:
        """Run one cycle for every account, in mapping order."""
        report = RoundReport(number=self.rounds_completed + 1)
        for name, account in self._accounts.items():
            if self._shutdown.is_set():
                logger.info("round_interrupted", skipped_from=name)
                break
            report.cycles.append(await self._run_account(name, account))

        self.rounds_completed += 1
        logger.info(
            "round_complete",
            round=report.number,
            accounts=len(report.cycles),
            forwarded=report.forwarded,
            failed=report.failed,
        )
        return report

    async def _run_account(self, name: str, account: AccountConfig) -> CycleReport:
        with structlog.contextvars.bound_contextvars(account=name):
            logger.info("account_cycle_started", imap_username=account.imap_username)
            orchestrator = CycleOrchestrator(
                name,
                account,
                sender=self._sender,
                parser=self._parser,
                session_factory=self._session_factory,
            )
            try:
                cycle = await orchestrator.run()
            except Exception as exc:
                logger.exception("account_failed", error=repr(exc), kind="unexpected")
                cycle = orchestrator.report
                cycle.error = CycleError(f"unexpected error: {exc!r}")
                return cycle

            if cycle.error is None:
                logger.info(
                    "account_processed",
                    forwarded=cycle.forwarded,
                    mailboxes=len(cycle.mailboxes_processed),
                )
            else:
                logger.error(
                    "account_failed",
                    error=str(cycle.error),
                    kind=cycle.error.kind,
                    forwarded=cycle.forwarded,
                )
            return cycle

    async def _sleep(self) -> bool:
        """Wait out the interval.  Returns True if shutdown was requested."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=self._interval)
        except TimeoutError:
            return False
        return True
