"""
Runtime Configuration Tests.
"""

from decimal import Decimal

import pytest

from core.exceptions import ValidationError
from core.settings import TradingSettings
from database.repositories import ConfigRepository
from risk_management import OVERRIDABLE_KEYS, RuntimeConfig


class TestRuntimeConfig:
    """Tests for persisted overrides over static defaults."""

    def test_defaults_without_overrides(self, runtime_config):
        """Test an empty config table yields the defaults."""
        current = runtime_config.current()

        assert current == TradingSettings()
        assert runtime_config.overrides() == {}

    def test_set_persists_exact_decimal(self, runtime_config, session_factory):
        """Test numeric overrides are stored as exact text."""
        runtime_config.set("max_daily_loss", 250.5)

        assert runtime_config.current().max_daily_loss == Decimal("250.5")
        assert ConfigRepository(session_factory).get("max_daily_loss").value == "250.5"

    def test_overrides_survive_new_instance(self, runtime_config, session_factory):
        """Test a fresh RuntimeConfig reads the same overrides."""
        runtime_config.set("trading_enabled", False)

        reloaded = RuntimeConfig(TradingSettings(), ConfigRepository(session_factory))

        assert reloaded.current().trading_enabled is False

    def test_unknown_key_rejected(self, runtime_config):
        """Test only risk keys can be overridden."""
        with pytest.raises(ValidationError, match="Unknown config key"):
            runtime_config.set("webhook_secret", "x")

    def test_wrong_type_rejected(self, runtime_config):
        """Test a boolean key refuses non-boolean values."""
        with pytest.raises(ValidationError):
            runtime_config.set("trading_enabled", "yes")
        with pytest.raises(ValidationError):
            runtime_config.set("max_daily_loss", "lots")

    def test_negative_rejected(self, runtime_config):
        """Test negative limits are refused."""
        with pytest.raises(ValidationError, match="must not be negative"):
            runtime_config.set("max_position_size_percent", -1)

    def test_update_is_all_or_nothing(self, runtime_config):
        """Test one invalid key prevents every write."""
        with pytest.raises(ValidationError):
            runtime_config.update({"max_daily_loss": 10, "bogus": 1})

        assert runtime_config.overrides() == {}

    def test_update_negative_value_writes_nothing(self, runtime_config):
        """Test a negative value later in the batch leaves earlier keys unwritten."""
        with pytest.raises(ValidationError, match="must not be negative"):
            runtime_config.update({"max_position_size_percent": "10", "max_daily_loss": "-1"})

        assert runtime_config.overrides() == {}
        assert runtime_config.current().max_position_size_percent == Decimal("5")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-Infinity", "sNaN"])
    def test_non_finite_rejected(self, runtime_config, value):
        """Test non-finite numbers are refused as validation errors."""
        with pytest.raises(ValidationError, match="finite"):
            runtime_config.set("max_daily_loss", value)

        assert runtime_config.overrides() == {}

    def test_reset_restores_default(self, runtime_config):
        """Test removing an override."""
        runtime_config.set("default_position_size_percent", 3)
        assert runtime_config.current().default_position_size_percent == Decimal("3")

        runtime_config.reset("default_position_size_percent")

        assert runtime_config.current().default_position_size_percent == Decimal("2")

    def test_corrupt_override_ignored(self, runtime_config, session_factory):
        """Test an invalid stored value falls back to the default for that key only."""
        repo = ConfigRepository(session_factory)
        repo.set("trading_enabled", "maybe")
        repo.set("max_daily_loss", "50")

        current = runtime_config.current()

        assert current.trading_enabled is True
        assert current.max_daily_loss == Decimal("50")

    def test_every_setting_overridable(self):
        """Test each trading setting has a description."""
        assert set(OVERRIDABLE_KEYS) == set(TradingSettings.keys())
