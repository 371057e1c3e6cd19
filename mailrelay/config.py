"""Relay configuration.

Accounts come from a TOML file (one table per account).  Process-wide
runtime settings use pydantic-settings so every field can be overridden via
``MAILRELAY_*`` environment variables.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings

from .errors import ConfigError


class AccountConfig(BaseModel):
    """Credentials, servers, and mailboxes for one relayed account."""

    model_config = {"frozen": True, "extra": "forbid"}

    imap_domain: str = Field(min_length=1, description="IMAP server hostname")
    imap_port: int = Field(default=993, description="IMAP implicit-TLS port")
    imap_username: str = Field(min_length=1, description="IMAP login username")
    imap_password: SecretStr = Field(description="IMAP login password")
    smtp_domain: str = Field(min_length=1, description="SMTP submission hostname")
    smtp_port: int = Field(default=465, description="SMTP implicit-TLS port")
    smtp_username: str = Field(
        min_length=1,
        description="SMTP login username, also used as the envelope sender",
    )
    smtp_password: SecretStr = Field(description="SMTP login password")
    mailboxes: list[str] = Field(description="Mailboxes to drain, in order")
    forward_target: str = Field(min_length=1, description="Address every message is forwarded to")


class RetryConfig(BaseSettings):
    """Connection retry settings driven by Tenacity.

    The default of a single attempt means nothing is retried within a cycle.
    """

    model_config = {"env_prefix": "MAILRELAY_RETRY_"}

    max_attempts: int = Field(default=1, ge=1, description="Connection attempts per server")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=30.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class RelaySettings(BaseSettings):
    """Process-wide runtime settings."""

    model_config = {"env_prefix": "MAILRELAY_"}

    log_level: str = Field(default="INFO", description="Root log level name")
    log_json: bool = Field(default=False, description="Emit JSON log lines instead of console output")
    imap_timeout_seconds: float | None = Field(
        default=None,
        description="Socket timeout for IMAP connections (None = transport default)",
    )
    smtp_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for each SMTP command",
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)


def load_accounts(path: str | Path) -> dict[str, AccountConfig]:
    """Read the accounts file at *path*.

    Returns a mapping of account name to :class:`AccountConfig` in file
    order.  Any problem raises :class:`ConfigError`.
    """
    path = Path(path)
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"cannot parse config file {path}: {exc}") from exc

    accounts: dict[str, AccountConfig] = {}
    for name, table in data.items():
        if not isinstance(table, dict):
            raise ConfigError(f"account {name!r} must be a table, got {type(table).__name__}")
        try:
            accounts[name] = AccountConfig.model_validate(table)
        except ValidationError as exc:
            raise ConfigError(f"invalid account {name!r}: {exc}") from exc
    return accounts
