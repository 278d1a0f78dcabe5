"""
Core Module - Settings.

============================================================
RESPONSIBILITY
============================================================
Static configuration read from the environment.

- `.env` is loaded through python-dotenv before reading
- Risk thresholds here are DEFAULTS; persisted overrides in the
  config table take precedence (see risk_management.runtime_config)
- Invalid values fail fast with ConfigurationError

============================================================
"""

import os
import logging
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)


# ============================================================
# ENV PARSING
# ============================================================

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def env_bool(key: str, default: bool) -> bool:
    """Read a boolean flag from the environment."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Invalid boolean for {key}: {raw!r}", config_key=key)


def env_decimal(key: str, default: str) -> Decimal:
    """Read a decimal number from the environment."""
    raw = os.getenv(key, default)
    try:
        value = Decimal(raw.strip())
    except (InvalidOperation, AttributeError) as e:
        raise ConfigurationError(f"Invalid number for {key}: {raw!r}", config_key=key, cause=e)
    if not value.is_finite():
        raise ConfigurationError(f"Invalid number for {key}: {raw!r}", config_key=key)
    return value


def env_int(key: str, default: int) -> int:
    """Read an integer from the environment."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid integer for {key}: {raw!r}", config_key=key, cause=e)


# ============================================================
# TRADING SETTINGS
# ============================================================

@dataclass(frozen=True)
class TradingSettings:
    """
    Risk and sizing thresholds.

    Every field may be overridden at runtime through the config table.
    """

    trading_enabled: bool = True
    """Master switch for automatic execution."""

    default_position_size_percent: Decimal = Decimal("2")
    """Share of free balance used when a signal has no quantity."""

    max_position_size_percent: Decimal = Decimal("5")
    """Maximum single order notional as % of free balance."""

    max_total_exposure_percent: Decimal = Decimal("50")
    """Maximum open notional plus new order as % of free balance."""

    max_daily_loss: Decimal = Decimal("1000")
    """Maximum absolute realized loss for the current UTC day."""

    enable_stop_loss: bool = True
    """Derive a stop-loss price for new positions when none is supplied."""

    default_stop_loss_percent: Decimal = Decimal("2")
    """Distance of the derived stop-loss from entry, in percent."""

    @classmethod
    def from_env(cls) -> "TradingSettings":
        return cls(
            trading_enabled=env_bool("TRADING_ENABLED", True),
            default_position_size_percent=env_decimal("DEFAULT_POSITION_SIZE_PERCENT", "2"),
            max_position_size_percent=env_decimal("MAX_POSITION_SIZE_PERCENT", "5"),
            max_total_exposure_percent=env_decimal("MAX_TOTAL_EXPOSURE_PERCENT", "50"),
            max_daily_loss=env_decimal("MAX_DAILY_LOSS", "1000"),
            enable_stop_loss=env_bool("ENABLE_STOP_LOSS", True),
            default_stop_loss_percent=env_decimal("DEFAULT_STOP_LOSS_PERCENT", "2"),
        )

    @classmethod
    def keys(cls):
        return [f.name for f in fields(cls)]

    def with_overrides(self, overrides: Dict[str, Any]) -> "TradingSettings":
        """
        Return a copy with persisted overrides applied.

        Raises:
            ConfigurationError if an override has the wrong type
        """
        changes: Dict[str, Any] = {}
        for f in fields(self):
            if f.name not in overrides:
                continue
            value = overrides[f.name]
            default = getattr(self, f.name)
            if isinstance(default, bool):
                if not isinstance(value, bool):
                    raise ConfigurationError(
                        f"Override for {f.name} must be a boolean", config_key=f.name
                    )
                changes[f.name] = value
            else:
                try:
                    number = Decimal(str(value))
                except InvalidOperation as e:
                    raise ConfigurationError(
                        f"Override for {f.name} must be numeric", config_key=f.name, cause=e
                    )
                if not number.is_finite():
                    raise ConfigurationError(
                        f"Override for {f.name} must be a finite number", config_key=f.name
                    )
                changes[f.name] = number
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[f.name] = float(value) if isinstance(value, Decimal) else value
        return result


# ============================================================
# APPLICATION SETTINGS
# ============================================================

@dataclass
class Settings:
    """Process-level settings."""

    trading: TradingSettings = field(default_factory=TradingSettings)

    duplicate_window_ms: int = 30000
    """Identical signals inside this window are rejected."""

    webhook_secret: str = ""
    """Shared secret expected in the X-Webhook-Secret header."""

    admin_api_key: str = ""
    """Bearer token for the admin API."""

    database_url: str = "sqlite:///data/trading.db"

    host: str = "0.0.0.0"
    port: int = 3000

    log_level: str = "INFO"
    log_format: str = "text"

    queue_size: int = 100
    """Maximum queued execution jobs before the webhook answers 503."""

    queue_workers: int = 2

    paper_trading: bool = False
    """Use the in-process mock gateway instead of Binance."""


_settings: Optional[Settings] = None


def load_settings() -> Settings:
    """Build settings from the environment (and .env)."""
    load_dotenv()

    settings = Settings(
        trading=TradingSettings.from_env(),
        duplicate_window_ms=env_int("PREVENT_DUPLICATES_WINDOW_MS", 30000),
        webhook_secret=os.getenv("TRADINGVIEW_WEBHOOK_SECRET", ""),
        admin_api_key=os.getenv("ADMIN_API_KEY", ""),
        database_url=os.getenv("DATABASE_URL", "sqlite:///data/trading.db"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=env_int("PORT", 3000),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=os.getenv("LOG_FORMAT", "text"),
        queue_size=env_int("EXECUTION_QUEUE_SIZE", 100),
        queue_workers=env_int("EXECUTION_WORKERS", 2),
        paper_trading=env_bool("PAPER_TRADING", False),
    )

    if not settings.webhook_secret:
        logger.warning("TRADINGVIEW_WEBHOOK_SECRET not set, webhook requests will be refused")
    if not settings.admin_api_key:
        logger.warning("ADMIN_API_KEY not set, admin API requests will be refused")

    return settings


def get_settings() -> Settings:
    """Get cached settings, loading on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
