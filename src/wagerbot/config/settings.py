"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import os
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Any

from wagerbot.ingestion.backoff import BackoffPolicy
from wagerbot.settlement.ledger import LedgerPolicy
from wagerbot.units import to_wei

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"

ACCESS_TOKEN_ENV = "WAGERBOT_TWITTER_ACCESS_TOKEN"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = directory / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        storage: dict[str, Any] | None = None,
        bot: dict[str, Any] | None = None,
        twitter: dict[str, Any] | None = None,
        ledger: dict[str, Any] | None = None,
        polling: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.storage = storage or {}
        self.bot = bot or {}
        self.twitter = twitter or {}
        self.ledger = ledger or {}
        self.polling = polling or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            storage=raw.get("storage"),
            bot=raw.get("bot"),
            twitter=raw.get("twitter"),
            ledger=raw.get("ledger"),
            polling=raw.get("polling"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/wagerbot.duckdb")

    @property
    def bot_username(self) -> str:
        return str(self.bot.get("username", "wagerbot")).lstrip("@")

    @property
    def bot_id(self) -> str:
        """Cursor key; one cursor per bot account."""
        return str(self.bot.get("id") or self.bot_username)

    @property
    def twitter_api_base(self) -> str:
        return self.twitter.get("api_base", "https://api.twitter.com")

    @property
    def twitter_access_token(self) -> str:
        return os.environ.get(ACCESS_TOKEN_ENV) or self.twitter.get("access_token", "")

    @property
    def twitter_timeout_sec(self) -> float:
        return float(self.twitter.get("timeout_sec", 30.0))

    @property
    def mentions_page_size(self) -> int:
        return int(self.twitter.get("max_results", 10))

    @property
    def min_bet(self) -> Decimal:
        return Decimal(str(self.ledger.get("min_bet", "0.001")))

    @property
    def max_bet(self) -> Decimal:
        return Decimal(str(self.ledger.get("max_bet", "10")))

    @property
    def default_market_duration_days(self) -> int:
        return int(self.ledger.get("default_duration_days", 30))

    @property
    def fee_rate_bps(self) -> int:
        return int(self.ledger.get("fee_rate_bps", 200))

    @property
    def platform_account(self) -> str:
        return self.ledger.get("platform_account", "platform")

    @property
    def resolver_account(self) -> str:
        return self.ledger.get("resolver_account", "operator")

    @property
    def base_interval_sec(self) -> float:
        return float(self.polling.get("base_interval_sec", 60.0))

    @property
    def first_idle_interval_sec(self) -> float:
        return float(self.polling.get("first_idle_interval_sec", 300.0))

    @property
    def max_interval_sec(self) -> float:
        return float(self.polling.get("max_interval_sec", 900.0))

    @property
    def cooldown_interval_sec(self) -> float:
        return float(self.polling.get("cooldown_interval_sec", 900.0))

    @property
    def growth_factor(self) -> float:
        return float(self.polling.get("growth_factor", 2.0))

    @property
    def empty_threshold(self) -> int:
        return int(self.polling.get("empty_threshold", 3))

    @property
    def dispatch_delay_sec(self) -> float:
        return float(self.polling.get("dispatch_delay_sec", 1.0))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)

    def ledger_policy(self) -> LedgerPolicy:
        return LedgerPolicy(
            min_bet=to_wei(self.min_bet),
            max_bet=to_wei(self.max_bet),
            fee_rate_bps=self.fee_rate_bps,
            platform_account=self.platform_account,
            resolver_account=self.resolver_account,
        )

    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            base_interval=self.base_interval_sec,
            first_idle_interval=self.first_idle_interval_sec,
            max_interval=self.max_interval_sec,
            cooldown_interval=self.cooldown_interval_sec,
            growth_factor=self.growth_factor,
            empty_threshold=self.empty_threshold,
        )


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
