"""Entry point for the relay agent.

Usage::

    python -m mailrelay --config accounts.toml               # poll every 600s
    python -m mailrelay --config accounts.toml --interval 0  # oneshot
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Mapping, Sequence
from functools import partial

import structlog
from pydantic import ValidationError

from . import __version__
from .config import AccountConfig, RelaySettings, load_accounts
from .errors import ConfigError
from .imap_client import MailSession
from .logging import setup_logging
from .scheduler import Scheduler
from .shutdown import install_signal_handlers
from .smtp_sender import MailSender

logger = structlog.get_logger()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailrelay",
        description=(
            "A mail retrieval agent that retrieves email using IMAP and "
            "forwards it to a different address using SMTP."
        ),
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        help="Path to the config file with login information",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=int,
        default=600,
        help="The interval in seconds to check for new emails. Use 0 for oneshot.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level name (overrides MAILRELAY_LOG_LEVEL)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit JSON log lines (overrides MAILRELAY_LOG_JSON)",
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def serve(
    accounts: Mapping[str, AccountConfig],
    interval: int,
    settings: RelaySettings,
) -> None:
    shutdown_event = asyncio.Event()
    install_signal_handlers(shutdown_event)
    scheduler = Scheduler(
        accounts,
        interval=interval,
        sender=MailSender(timeout=settings.smtp_timeout_seconds, retry=settings.retry),
        session_factory=partial(
            MailSession,
            timeout=settings.imap_timeout_seconds,
            retry=settings.retry,
        ),
        shutdown_event=shutdown_event,
    )
    await scheduler.run()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        settings = RelaySettings()
    except ValidationError as exc:
        print(f"invalid MAILRELAY_* environment: {exc}", file=sys.stderr)
        return 1

    setup_logging(
        json=settings.log_json if args.json_logs is None else args.json_logs,
        level=args.log_level or settings.log_level,
    )

    try:
        accounts = load_accounts(args.config)
    except ConfigError as exc:
        logger.error("config_invalid", path=args.config, error=str(exc))
        return 1

    if not accounts:
        logger.warning("no_accounts_configured", path=args.config)

    asyncio.run(serve(accounts, args.interval, settings))
    return 0


if __name__ == "__main__":
    sys.exit(main())
