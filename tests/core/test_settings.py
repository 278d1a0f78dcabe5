"""
Settings and Error Envelope Tests.
"""

from decimal import Decimal

import pytest

from core.exceptions import (
    ConfigurationError,
    DuplicateSignalError,
    ExchangeApiError,
    StrategyInUseError,
    ValidationError,
)
from core.settings import TradingSettings, load_settings


class TestLoadSettings:
    """Tests for environment-based settings."""

    def test_reads_environment(self, monkeypatch):
        """Test values are taken from the environment."""
        monkeypatch.setenv("TRADINGVIEW_WEBHOOK_SECRET", "s3cret")
        monkeypatch.setenv("MAX_POSITION_SIZE_PERCENT", "7.5")
        monkeypatch.setenv("TRADING_ENABLED", "false")
        monkeypatch.setenv("PREVENT_DUPLICATES_WINDOW_MS", "1000")
        monkeypatch.setenv("PORT", "8080")

        settings = load_settings()

        assert settings.webhook_secret == "s3cret"
        assert settings.trading.max_position_size_percent == Decimal("7.5")
        assert settings.trading.trading_enabled is False
        assert settings.duplicate_window_ms == 1000
        assert settings.port == 8080

    def test_invalid_values_fail_fast(self, monkeypatch):
        """Test malformed values raise ConfigurationError."""
        monkeypatch.setenv("TRADING_ENABLED", "sometimes")

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings()

        assert exc_info.value.details["config_key"] == "TRADING_ENABLED"

    def test_invalid_number(self, monkeypatch):
        """Test malformed decimals raise ConfigurationError."""
        monkeypatch.setenv("MAX_DAILY_LOSS", "a lot")

        with pytest.raises(ConfigurationError):
            load_settings()

    def test_non_finite_number(self, monkeypatch):
        """Test NaN and infinity are refused at startup."""
        monkeypatch.setenv("MAX_DAILY_LOSS", "Infinity")

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings()

        assert exc_info.value.details["config_key"] == "MAX_DAILY_LOSS"


class TestTradingSettings:
    """Tests for override merging."""

    def test_with_overrides(self):
        """Test overrides are typed like the defaults."""
        merged = TradingSettings().with_overrides({"max_daily_loss": "250", "enable_stop_loss": False})

        assert merged.max_daily_loss == Decimal("250")
        assert merged.enable_stop_loss is False
        assert merged.max_position_size_percent == Decimal("5")

    def test_non_finite_override_rejected(self):
        """Test a NaN override raises ConfigurationError with its key."""
        with pytest.raises(ConfigurationError) as exc_info:
            TradingSettings().with_overrides({"max_daily_loss": "NaN"})

        assert exc_info.value.details["config_key"] == "max_daily_loss"

    def test_to_dict_is_json_safe(self):
        """Test decimals are exported as floats."""
        data = TradingSettings().to_dict()

        assert data["max_total_exposure_percent"] == 50.0
        assert data["trading_enabled"] is True


class TestErrorEnvelope:
    """Tests for error serialization."""

    def test_envelope(self):
        """Test the public error shape."""
        error = ValidationError("Quantity must be positive")

        assert error.to_dict() == {
            "error": {"type": "VALIDATION_ERROR", "message": "Quantity must be positive"}
        }
        assert error.status_code == 400

    def test_status_codes(self):
        """Test each error maps to its HTTP status."""
        assert DuplicateSignalError("buy-BTCUSDT-market", 30000).status_code == 409
        assert StrategyInUseError(1, 2).status_code == 409
        assert ExchangeApiError("down").status_code == 502

    def test_details_included(self):
        """Test details are carried in the envelope."""
        body = DuplicateSignalError("buy-BTCUSDT-market", 30000).to_dict()["error"]

        assert body["type"] == "DUPLICATE_SIGNAL"
        assert body["details"]["fingerprint"] == "buy-BTCUSDT-market"
