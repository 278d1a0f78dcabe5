"""
Risk Engine Tests.

============================================================
TEST CATEGORIES
============================================================
- Sizing from balance and price
- Each gate, in order, at and beyond its limit
- Runtime overrides take effect on the next check

============================================================
"""

from decimal import Decimal

import pytest

from core.exceptions import ValidationError
from database.models import OrderSide, SignalAction
from execution_engine.types import TradeSignal


def signal(quantity=None, symbol="BTCUSDT") -> TradeSignal:
    return TradeSignal(
        action=SignalAction.BUY,
        symbol=symbol,
        quantity=Decimal(quantity) if quantity is not None else None,
    )


class TestSizing:
    """Tests for RiskEngine.size."""

    @pytest.mark.asyncio
    async def test_signal_quantity_used_verbatim(self, risk_engine):
        """Test an explicit quantity is not resized."""
        assert await risk_engine.size(signal("0.123")) == Decimal("0.123")

    @pytest.mark.asyncio
    async def test_size_from_balance(self, risk_engine, gateway):
        """Test default percent of free balance divided by price, floored."""
        gateway.set_price("BTCUSDT", "30000")

        quantity = await risk_engine.size(signal())

        # 10000 * 2% / 30000 = 0.00666666...
        assert quantity == Decimal("0.00666666")

    @pytest.mark.asyncio
    async def test_zero_size_rejected(self, risk_engine, gateway):
        """Test an empty balance cannot be sized."""
        gateway.set_balance("USDT", "0")

        with pytest.raises(ValidationError, match="zero"):
            await risk_engine.size(signal())


class TestGates:
    """Tests for RiskEngine.check_limits."""

    @pytest.mark.asyncio
    async def test_position_size_at_limit_passes(self, risk_engine):
        """Test 5% of balance is allowed."""
        result = await risk_engine.check_limits(signal("5"), Decimal("5"))

        assert result.allowed is True
        assert result.order_value == Decimal("500")
        assert result.current_price == Decimal("100")

    @pytest.mark.asyncio
    async def test_position_size_over_limit_rejected(self, risk_engine):
        """Test anything above 5% is rejected."""
        result = await risk_engine.check_limits(signal("5.0001"), Decimal("5.0001"))

        assert result.allowed is False
        assert "Position size" in result.reason
        assert "exceeds max" in result.reason

    @pytest.mark.asyncio
    async def test_trading_disabled_first(self, risk_engine, runtime_config, gateway):
        """Test the master switch is checked before any exchange call."""
        runtime_config.set("trading_enabled", False)
        gateway.fail_price("BTCUSDT")

        result = await risk_engine.check_limits(signal("1"), Decimal("1"))

        assert result.allowed is False
        assert result.reason == "Trading is disabled"

    @pytest.mark.asyncio
    async def test_bypass_skips_enabled_check(self, risk_engine, runtime_config):
        """Test human-approved signals ignore the master switch."""
        runtime_config.set("trading_enabled", False)

        result = await risk_engine.check_limits(signal("1"), Decimal("1"), bypass_enabled_check=True)

        assert result.allowed is True

    @pytest.mark.asyncio
    async def test_total_exposure(self, risk_engine, ledger, runtime_config):
        """Test open positions count towards exposure."""
        runtime_config.set("max_total_exposure_percent", "10")
        ledger.on_fill(None, OrderSide.BUY, "ETHUSDT", Decimal("6"), Decimal("100"))

        result = await risk_engine.check_limits(signal("5"), Decimal("5"))

        assert result.allowed is False
        assert "Total exposure" in result.reason
        assert await risk_engine.current_exposure() == Decimal("600")

    @pytest.mark.asyncio
    async def test_exposure_skips_unpriced_positions(self, risk_engine, ledger, gateway):
        """Test a position without a price is excluded from exposure."""
        ledger.on_fill(None, OrderSide.BUY, "ETHUSDT", Decimal("6"), Decimal("100"))
        gateway.fail_price("ETHUSDT")

        assert await risk_engine.current_exposure() == Decimal("0")

    @pytest.mark.asyncio
    async def test_daily_loss(self, risk_engine, ledger):
        """Test realized losses today beyond the limit block trading."""
        ledger.on_fill(None, OrderSide.BUY, "ETHUSDT", Decimal("50"), Decimal("100"))
        ledger.on_fill(None, OrderSide.SELL, "ETHUSDT", Decimal("50"), Decimal("70"))

        result = await risk_engine.check_limits(signal("1"), Decimal("1"))

        assert result.allowed is False
        assert result.reason.startswith("Daily loss $1500.00")

    @pytest.mark.asyncio
    async def test_daily_loss_resets_next_day(self, risk_engine, ledger, clock):
        """Test yesterday's losses do not count."""
        ledger.on_fill(None, OrderSide.BUY, "ETHUSDT", Decimal("50"), Decimal("100"))
        ledger.on_fill(None, OrderSide.SELL, "ETHUSDT", Decimal("50"), Decimal("70"))
        clock.advance(days=1)

        result = await risk_engine.check_limits(signal("1"), Decimal("1"))

        assert result.allowed is True

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, risk_engine, runtime_config, gateway):
        """Test balance gate when percentage limits are relaxed."""
        runtime_config.update({"max_position_size_percent": "500", "max_total_exposure_percent": "500"})
        gateway.set_balance("USDT", "100")

        result = await risk_engine.check_limits(signal("2"), Decimal("2"))

        assert result.allowed is False
        assert result.insufficient_balance is True
        assert result.reason == "Insufficient balance. Required: 200.00, Available: 100.00"

    @pytest.mark.asyncio
    async def test_override_applies_to_next_check(self, risk_engine, runtime_config):
        """Test a raised limit is honored without restart."""
        assert (await risk_engine.check_limits(signal("8"), Decimal("8"))).allowed is False

        runtime_config.set("max_position_size_percent", 10)

        assert (await risk_engine.check_limits(signal("8"), Decimal("8"))).allowed is True


class TestStatus:
    """Tests for the status snapshot."""

    @pytest.mark.asyncio
    async def test_status(self, risk_engine, ledger):
        """Test the snapshot reports positions and limits."""
        ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("1"), Decimal("100"))

        status = await risk_engine.status()

        assert status["trading_enabled"] is True
        assert status["open_positions"] == 1
        assert status["current_exposure"] == 100.0
        assert status["limits"]["max_position_size_percent"] == 5.0
