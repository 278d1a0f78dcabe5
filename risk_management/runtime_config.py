"""
Risk Management - Runtime Configuration.

============================================================
RESPONSIBILITY
============================================================
Merges persisted key/value overrides over the static
TradingSettings defaults.

- current() reads the config table on every call; callers
  must not cache the result across checks
- Only risk keys can be overridden
- Values are stored as JSON

============================================================
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from core.exceptions import ConfigurationError, ValidationError
from core.settings import TradingSettings
from database.repositories import ConfigRepository


logger = logging.getLogger(__name__)


# Keys the admin API may write and their descriptions
OVERRIDABLE_KEYS: Dict[str, str] = {
    "trading_enabled": "Master switch for automatic execution",
    "default_position_size_percent": "Share of free balance used when a signal has no quantity",
    "max_position_size_percent": "Maximum single order notional as % of free balance",
    "max_total_exposure_percent": "Maximum total open notional as % of free balance",
    "max_daily_loss": "Maximum absolute realized loss for the current UTC day",
    "enable_stop_loss": "Derive stop-loss prices for new positions",
    "default_stop_loss_percent": "Derived stop-loss distance from entry, in percent",
}


class RuntimeConfig:
    """Live view of the risk configuration."""

    def __init__(
        self,
        defaults: Optional[TradingSettings] = None,
        repository: Optional[ConfigRepository] = None,
    ):
        self._defaults = defaults or TradingSettings()
        self._repository = repository or ConfigRepository()

    @property
    def defaults(self) -> TradingSettings:
        return self._defaults

    def overrides(self) -> Dict[str, Any]:
        """Persisted risk overrides as stored."""
        return {k: v for k, v in self._repository.all().items() if k in OVERRIDABLE_KEYS}

    def current(self) -> TradingSettings:
        """Defaults with every persisted override applied."""
        overrides = self.overrides()
        try:
            return self._defaults.with_overrides(overrides)
        except ConfigurationError as e:
            logger.error(f"Invalid persisted risk override ignored: {e.message}")
            valid = {}
            for key, value in overrides.items():
                try:
                    self._defaults.with_overrides({key: value})
                except ConfigurationError:
                    continue
                valid[key] = value
            return self._defaults.with_overrides(valid)

    def set(self, key: str, value: Any) -> TradingSettings:
        """
        Persist one override.

        Raises:
            ValidationError for unknown keys or invalid values
        """
        return self.update({key: value})

    def update(self, values: Dict[str, Any]) -> TradingSettings:
        """Persist several overrides; nothing is written unless every value is valid."""
        validated = {key: self._validate(key, value) for key, value in values.items()}

        for key, value in validated.items():
            self._repository.set(key, value, OVERRIDABLE_KEYS[key])
            logger.info(f"Risk config override set: {key}={value}")
        return self.current()

    def _validate(self, key: str, value: Any) -> Any:
        """Checked value in its stored form."""
        if key not in OVERRIDABLE_KEYS:
            raise ValidationError(
                f"Unknown config key: {key}",
                details={"allowed": sorted(OVERRIDABLE_KEYS)},
            )

        try:
            updated = self._defaults.with_overrides({key: value})
        except ConfigurationError as e:
            raise ValidationError(e.message, details={"key": key})

        stored = getattr(updated, key)
        if isinstance(stored, Decimal):
            if stored < 0:
                raise ValidationError(f"{key} must not be negative", details={"key": key})
            # JSON has no decimal type; keep the exact text
            return str(stored)
        return value

    def reset(self, key: str) -> TradingSettings:
        """Drop an override so the static default applies again."""
        if self._repository.delete(key):
            logger.info(f"Risk config override removed: {key}")
        return self.current()
