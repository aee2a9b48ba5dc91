"""Configuration management for Ease Core."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Iterable, Mapping

from .constants import (
    BACKUP_RETENTION_DAYS,
    DEFAULT_AUDIT_FILE,
    DEFAULT_BACKUP_DIR,
    DEFAULT_CURRENCY_SYMBOL,
    DEFAULT_DATA_DIR,
    DEFAULT_LEDGER_FILE,
    DEFAULT_PORT,
    DEFAULT_RANKS,
    DEFAULT_SIGNATURE_HEADER,
    WEBHOOK_RATE_LIMIT_MAX_REQUESTS,
    WEBHOOK_RATE_LIMIT_WINDOW_SECONDS,
)

CONFIG_PATH = Path("config.json")


@dataclass(frozen=True)
class RankTier:
    threshold: Decimal
    role_id: int
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or f"{self.threshold}+"


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int = WEBHOOK_RATE_LIMIT_MAX_REQUESTS
    window_seconds: int = WEBHOOK_RATE_LIMIT_WINDOW_SECONDS


@dataclass(frozen=True)
class StorageSettings:
    data_dir: Path = Path(DEFAULT_DATA_DIR)
    ledger_file: str = DEFAULT_LEDGER_FILE
    audit_file: str = DEFAULT_AUDIT_FILE
    backup_dir: str = DEFAULT_BACKUP_DIR
    backup_retention_days: int = BACKUP_RETENTION_DAYS

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / self.ledger_file

    @property
    def audit_path(self) -> Path:
        return self.data_dir / self.audit_file

    @property
    def backup_path(self) -> Path:
        return self.data_dir / self.backup_dir


@dataclass
class Config:
    token: str
    guild_id: int | None
    promotion_channel_id: int | None
    audit_channel_id: int | None = None
    error_channel_id: int | None = None
    admin_role_id: int | None = None
    webhook_secret: str = ""
    port: int = DEFAULT_PORT
    allow_test_commands: bool = True
    signature_header: str = DEFAULT_SIGNATURE_HEADER
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL
    ranks: list[RankTier] = field(default_factory=list)
    rate_limit: RateLimitRule = field(default_factory=RateLimitRule)
    storage: StorageSettings = field(default_factory=StorageSettings)


def _optional_id(value: Any, *, field_name: str) -> int | None:
    if value in (None, "", 0, "0"):
        return None
    try:
        snowflake = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be an integer ID (got {value!r})") from exc
    if snowflake <= 0:
        raise ValueError(f"{field_name} must be a positive integer (got {snowflake})")
    return snowflake


def _coerce_port(value: Any) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"port must be an integer (got {value!r})") from exc
    if not 1 <= port <= 65535:
        raise ValueError(f"port must be between 1 and 65535 (got {port})")
    return port


def _coerce_flag(value: Any) -> bool:
    # Only an explicit "false" disables a flag, matching the deployment .env files.
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() != "false"


def _parse_ranks(payload: Iterable[Mapping[str, Any]] | None) -> list[RankTier]:
    if payload is None:
        return [RankTier(threshold=Decimal(threshold), role_id=role_id) for threshold, role_id in DEFAULT_RANKS]

    tiers: list[RankTier] = []
    for index, item in enumerate(payload):
        if not isinstance(item, Mapping):
            raise ValueError(f"ranks[{index}] must be an object with threshold and role_id")
        name = str(item.get("name", ""))

        try:
            threshold = Decimal(str(item["threshold"]))
        except (KeyError, InvalidOperation) as exc:
            raise ValueError(f"ranks[{index}]: threshold must be a number (got {item.get('threshold')!r})") from exc
        if not threshold.is_finite() or threshold <= 0:
            raise ValueError(f"ranks[{index}]: threshold must be a positive number (got {threshold})")

        try:
            role_id = int(item["role_id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"ranks[{index}]: role_id must be an integer (got {item.get('role_id')!r})") from exc
        if role_id <= 0:
            raise ValueError(f"ranks[{index}]: role_id must be a positive integer (got {role_id})")

        tiers.append(RankTier(threshold=threshold, role_id=role_id, name=name))
    return tiers


def _parse_rate_limit(payload: Mapping[str, Any] | None) -> RateLimitRule:
    if not payload:
        return RateLimitRule()
    if not isinstance(payload, Mapping):
        raise ValueError("rate_limit must be an object with max_requests and window_seconds")
    try:
        max_requests = int(payload.get("max_requests", WEBHOOK_RATE_LIMIT_MAX_REQUESTS))
        window_seconds = int(payload.get("window_seconds", WEBHOOK_RATE_LIMIT_WINDOW_SECONDS))
    except (TypeError, ValueError) as exc:
        raise ValueError("rate_limit.max_requests and rate_limit.window_seconds must be integers") from exc
    if max_requests <= 0 or window_seconds <= 0:
        raise ValueError("rate_limit values must be positive")
    return RateLimitRule(max_requests=max_requests, window_seconds=window_seconds)


def _parse_storage(payload: Mapping[str, Any] | None) -> StorageSettings:
    if not payload:
        return StorageSettings()
    if not isinstance(payload, Mapping):
        raise ValueError("storage must be an object")

    retention = payload.get("backup_retention_days", BACKUP_RETENTION_DAYS)
    try:
        retention = int(retention)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"storage.backup_retention_days must be an integer (got {retention!r})") from exc
    if retention < 0:
        raise ValueError(f"storage.backup_retention_days must be non-negative (got {retention})")

    return StorageSettings(
        data_dir=Path(payload.get("data_dir", DEFAULT_DATA_DIR)),
        ledger_file=str(payload.get("ledger_file", DEFAULT_LEDGER_FILE)),
        audit_file=str(payload.get("audit_file", DEFAULT_AUDIT_FILE)),
        backup_dir=str(payload.get("backup_dir", DEFAULT_BACKUP_DIR)),
        backup_retention_days=retention,
    )


def parse_config(data: Mapping[str, Any]) -> Config:
    """Build a :class:`Config` from an already decoded JSON object."""
    return Config(
        token=str(data.get("token", "")),
        guild_id=_optional_id(data.get("guild_id"), field_name="guild_id"),
        promotion_channel_id=_optional_id(data.get("promotion_channel_id"), field_name="promotion_channel_id"),
        audit_channel_id=_optional_id(data.get("audit_channel_id"), field_name="audit_channel_id"),
        error_channel_id=_optional_id(data.get("error_channel_id"), field_name="error_channel_id"),
        admin_role_id=_optional_id(data.get("admin_role_id"), field_name="admin_role_id"),
        webhook_secret=str(data.get("webhook_secret", "")),
        port=_coerce_port(data.get("port", DEFAULT_PORT)),
        allow_test_commands=_coerce_flag(data.get("allow_test_commands", True)),
        signature_header=str(data.get("signature_header", DEFAULT_SIGNATURE_HEADER)),
        currency_symbol=str(data.get("currency_symbol", DEFAULT_CURRENCY_SYMBOL)),
        ranks=_parse_ranks(data.get("ranks")),
        rate_limit=_parse_rate_limit(data.get("rate_limit")),
        storage=_parse_storage(data.get("storage")),
    )


def load_config(config_path: str | Path = CONFIG_PATH) -> Config:
    """Load and parse configuration from JSON file."""
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {path}\n"
            "Please copy config.example.json to config.json and fill in your values."
        )

    with path.open("r", encoding="utf-8") as file:
        data: dict[str, Any] = json.load(file)

    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a JSON object")

    return parse_config(data)


def apply_env_overrides(config: Config, environ: Mapping[str, str] | None = None) -> Config:
    """
    Overlay deployment secrets and identifiers from the environment.

    Recognized variables: DISCORD_TOKEN, WEBHOOK_SECRET, GUILD_ID,
    PROMOTION_CHANNEL_ID, LOG_CHANNEL_ID, PORT and ALLOW_TEST_COMMANDS.
    """
    env = os.environ if environ is None else environ
    updates: dict[str, Any] = {}

    if env.get("DISCORD_TOKEN"):
        updates["token"] = env["DISCORD_TOKEN"]
    if env.get("WEBHOOK_SECRET"):
        updates["webhook_secret"] = env["WEBHOOK_SECRET"]
    if env.get("GUILD_ID"):
        updates["guild_id"] = _optional_id(env["GUILD_ID"], field_name="GUILD_ID")
    if env.get("PROMOTION_CHANNEL_ID"):
        updates["promotion_channel_id"] = _optional_id(env["PROMOTION_CHANNEL_ID"], field_name="PROMOTION_CHANNEL_ID")
    if env.get("LOG_CHANNEL_ID"):
        updates["audit_channel_id"] = _optional_id(env["LOG_CHANNEL_ID"], field_name="LOG_CHANNEL_ID")
    if env.get("PORT"):
        updates["port"] = _coerce_port(env["PORT"])
    if "ALLOW_TEST_COMMANDS" in env:
        updates["allow_test_commands"] = _coerce_flag(env["ALLOW_TEST_COMMANDS"])

    return replace(config, **updates) if updates else config
