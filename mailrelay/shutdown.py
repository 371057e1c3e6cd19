"""Graceful shutdown handling via SIGTERM / SIGINT."""

from __future__ import annotations

import asyncio
import signal

import structlog

logger = structlog.get_logger()


def install_signal_handlers(
    shutdown_event: asyncio.Event,
    signals: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT),
) -> None:
    """Register handlers for *signals* that set *shutdown_event*.

    Call this once from the running event loop.  The scheduler checks the
    event between accounts and waits on it while sleeping, so a cycle that
    is already running always finishes its current message.
    """
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        if shutdown_event.is_set():
            logger.info("shutdown_already_requested", signal=sig.name)
            return
        logger.info("shutdown_requested", signal=sig.name)
        shutdown_event.set()

    for sig in signals:
        loop.add_signal_handler(sig, _handle, sig)
