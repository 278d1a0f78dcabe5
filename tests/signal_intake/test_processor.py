"""
Signal Intake Tests.

============================================================
TEST CATEGORIES
============================================================
- Payload parsing and normalization
- Duplicate rejection inside the window
- Value validation
- Strategy routing
- Every rejected signal is still recorded

============================================================
"""

from decimal import Decimal

import pytest

from core.exceptions import DuplicateSignalError, ValidationError
from database.models import OrderKind, SignalAction
from database.repositories import SignalRepository
from execution_engine.types import TradeSignal
from signal_intake import (
    DEFAULT_AUTOMATIC,
    InMemoryDedupStore,
    SignalIntake,
    StrategyService,
    validate_signal,
)


@pytest.fixture
def strategies(session_factory, clock):
    service = StrategyService(session_factory, clock)
    service.seed_defaults()
    return service


@pytest.fixture
def intake(strategies, session_factory, clock):
    return SignalIntake(strategies, InMemoryDedupStore(30000, clock), session_factory, clock)


class TestValidateSignal:
    """Tests for value rules."""

    def test_limit_requires_price(self):
        """Test limit orders must carry a price."""
        signal = TradeSignal(action=SignalAction.BUY, symbol="BTCUSDT", order_type=OrderKind.LIMIT)

        with pytest.raises(ValidationError, match="Price is required for limit orders"):
            validate_signal(signal)

    def test_non_positive_values(self):
        """Test quantity, price and stop-loss must be positive."""
        for field, message in (
            ("quantity", "Quantity must be positive"),
            ("price", "Price must be positive"),
            ("stop_loss", "Stop loss must be positive"),
        ):
            signal = TradeSignal(action=SignalAction.BUY, symbol="BTCUSDT", **{field: Decimal("0")})
            with pytest.raises(ValidationError, match=message):
                validate_signal(signal)

    def test_close_skips_value_checks(self):
        """Test close signals are not value-checked."""
        validate_signal(TradeSignal(action=SignalAction.CLOSE, symbol="BTCUSDT", quantity=Decimal("0")))


class TestSubmit:
    """Tests for SignalIntake.submit."""

    def test_accepts_and_records(self, intake, session_factory):
        """Test a valid alert is normalized, routed and stored."""
        result = intake.submit({
            "action": "buy",
            "symbol": " btcusdt ",
            "orderType": "market",
            "quantity": 0.5,
            "stopLoss": "49000",
        })

        assert result.signal.symbol == "BTCUSDT"
        assert result.signal.quantity == Decimal("0.5")
        assert result.strategy.name == DEFAULT_AUTOMATIC
        assert result.requires_approval is False

        row = SignalRepository(session_factory).get(result.signal_id)
        assert row.symbol == "BTCUSDT"
        assert row.stop_loss == Decimal("49000")
        assert row.strategy_id == result.strategy_id
        assert row.error_message is None
        assert row.raw_payload["orderType"] == "market"

    def test_duplicate_rejected_and_recorded(self, intake, session_factory, clock):
        """Test the same fingerprint twice inside the window."""
        payload = {"action": "buy", "symbol": "BTCUSDT"}
        intake.submit(payload)

        clock.advance(seconds=10)
        with pytest.raises(DuplicateSignalError):
            intake.submit(payload)

        rows = SignalRepository(session_factory).list_recent()
        assert len(rows) == 2
        assert rows[0].error_message.startswith("Duplicate signal detected")
        assert rows[0].processed is False

    def test_duplicate_allowed_after_window(self, intake, clock):
        """Test the fingerprint is accepted again after 30 seconds."""
        payload = {"action": "buy", "symbol": "BTCUSDT"}
        intake.submit(payload)

        clock.advance(seconds=30)

        assert intake.submit(payload).signal_id is not None

    def test_rejected_signal_not_marked(self, intake):
        """Test an invalid signal does not block the next valid one."""
        with pytest.raises(ValidationError):
            intake.submit({"action": "buy", "symbol": "BTCUSDT", "quantity": -1})

        assert intake.submit({"action": "buy", "symbol": "BTCUSDT", "quantity": 1}).signal_id

    def test_malformed_payload_recorded(self, intake, session_factory):
        """Test a schema failure is stored with what could be read."""
        with pytest.raises(ValidationError, match="action"):
            intake.submit({"action": "hold", "symbol": "ethusdt", "strategy": "x"})

        row = SignalRepository(session_factory).list_recent()[0]
        assert row.action == "hold"
        assert row.symbol == "ETHUSDT"
        assert row.strategy_id is None
        assert row.error_message

    def test_missing_symbol(self, intake):
        """Test symbol is required."""
        with pytest.raises(ValidationError, match="symbol"):
            intake.submit({"action": "sell"})

    def test_manual_strategy_requires_approval(self, intake, strategies):
        """Test a named manual strategy routes to review."""
        strategies.create(name="Swing", type="manual")

        result = intake.submit({"action": "buy", "symbol": "BTCUSDT", "strategy": "Swing"})

        assert result.strategy.name == "Swing"
        assert result.strategy_type == "manual"
        assert result.requires_approval is True

    def test_unknown_strategy_falls_back(self, intake):
        """Test an unknown strategy name uses the default."""
        result = intake.submit({"action": "buy", "symbol": "BTCUSDT", "strategy": "Nope"})

        assert result.strategy.name == DEFAULT_AUTOMATIC

    def test_update_signal_status(self, intake, session_factory):
        """Test recording an outcome after dispatch."""
        result = intake.submit({"action": "buy", "symbol": "BTCUSDT"})

        intake.update_signal_status(result.signal_id, None, "Execution queue is full, retry later")

        row = intake.get_signal(result.signal_id)
        assert row.processed is False
        assert row.error_message == "Execution queue is full, retry later"
        assert row.processed_at is not None
