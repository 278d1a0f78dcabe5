"""
Order Manager Tests.

============================================================
TEST CATEGORIES
============================================================
- Successful execution: order row, signal outcome, ledger
- Risk rejection audit rows
- Gateway failure audit rule (automatic vs manual approval)
- Leveraged strategies
- Throwing execute_from_signal form
- Admin cancel and close

============================================================
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from core.exceptions import (
    ExchangeApiError,
    InsufficientBalanceError,
    NotFoundError,
    RiskLimitExceededError,
    ValidationError,
)
from database.models import OrderKind, OrderStatus, PositionStatus, SignalAction, VenueKind
from database.repositories import OrderRepository, PositionRepository, SignalRepository
from execution_engine.order_manager import stop_loss_for
from execution_engine.types import Err, ErrorKind, Ok, PositionSide, TradeSignal
from signal_intake.strategies import StrategyService


def buy(symbol="BTCUSDT", quantity="5", **kwargs) -> TradeSignal:
    return TradeSignal(
        action=SignalAction.BUY,
        symbol=symbol,
        quantity=Decimal(quantity) if quantity is not None else None,
        **kwargs,
    )


class TestStopLoss:
    """Tests for the derived stop-loss helper."""

    def test_long_and_short(self):
        """Test stop sits below a LONG entry and above a SHORT entry."""
        assert stop_loss_for(PositionSide.LONG, Decimal("100"), Decimal("2")) == Decimal("98")
        assert stop_loss_for(PositionSide.SHORT, Decimal("100"), Decimal("2")) == Decimal("102")


class TestSuccessfulExecution:
    """Tests for orders that reach the exchange."""

    @pytest.mark.asyncio
    async def test_market_buy_filled(self, order_manager, make_signal_row, session_factory):
        """Test a filled market BUY persists the order and opens a position."""
        row = make_signal_row()

        result = await order_manager.execute(row.id, buy())

        assert isinstance(result, Ok)
        order = OrderRepository(session_factory).get(result.order_id)
        assert order.status == OrderStatus.FILLED.value
        assert order.risk_passed is True
        assert order.quantity == Decimal("5")
        assert order.avg_fill_price == Decimal("100")
        assert order.signal_id == row.id

        signal = SignalRepository(session_factory).get(row.id)
        assert signal.processed is True
        assert signal.order_id == order.id
        assert signal.error_message is None

        position = PositionRepository(session_factory).get_open("BTCUSDT")
        assert position.quantity == Decimal("5")
        assert position.entry_order_id == order.id
        assert position.stop_loss_price == Decimal("98")

    @pytest.mark.asyncio
    async def test_signal_stop_loss_wins(self, order_manager, session_factory):
        """Test an explicit stop-loss is used instead of the derived one."""
        await order_manager.execute(None, buy(stop_loss=Decimal("95")))

        assert PositionRepository(session_factory).get_open("BTCUSDT").stop_loss_price == Decimal("95")

    @pytest.mark.asyncio
    async def test_size_from_balance(self, order_manager, session_factory):
        """Test quantity defaults to 2% of free balance at market price."""
        result = await order_manager.execute(None, buy(quantity=None))

        order = OrderRepository(session_factory).get(result.order_id)
        assert order.quantity == Decimal("2")

    @pytest.mark.asyncio
    async def test_limit_order_rests(self, order_manager, gateway, session_factory):
        """Test a limit order is stored NEW and does not touch the ledger."""
        signal = buy(order_type=OrderKind.LIMIT, price=Decimal("95"))

        result = await order_manager.execute(None, signal)

        order = OrderRepository(session_factory).get(result.order_id)
        assert order.status == OrderStatus.NEW.value
        assert order.type == "LIMIT"
        assert order.price == Decimal("95")
        assert gateway.placed_requests[0].price == Decimal("95")
        assert PositionRepository(session_factory).get_open("BTCUSDT") is None

    @pytest.mark.asyncio
    async def test_ledger_failure_keeps_order(self, order_manager, ledger, session_factory):
        """Test a ledger error after placement is logged, not returned."""
        ledger.on_fill = MagicMock(side_effect=RuntimeError("ledger down"))

        result = await order_manager.execute(None, buy())

        assert isinstance(result, Ok)
        assert OrderRepository(session_factory).count() == 1


class TestRiskRejection:
    """Tests for risk-rejected executions."""

    @pytest.mark.asyncio
    async def test_position_size_boundary(self, order_manager, make_signal_row, session_factory):
        """Test exactly 5% passes and anything above is rejected."""
        assert isinstance(await order_manager.execute(None, buy(quantity="5")), Ok)

        row = make_signal_row()
        result = await order_manager.execute(row.id, buy(quantity="5.0001"))

        assert isinstance(result, Err)
        assert result.kind == ErrorKind.RISK_REJECTED
        assert "exceeds max" in result.detail

        order = OrderRepository(session_factory).get(result.order_id)
        assert order.status == OrderStatus.REJECTED.value
        assert order.risk_passed is False
        assert order.error_message == result.detail
        assert order.price == Decimal("100")

        signal = SignalRepository(session_factory).get(row.id)
        assert signal.processed is False
        assert signal.order_id == order.id
        assert signal.error_message == result.detail

    @pytest.mark.asyncio
    async def test_trading_disabled(self, order_manager, runtime_config, gateway):
        """Test the master switch blocks automatic execution only."""
        runtime_config.set("trading_enabled", False)

        rejected = await order_manager.execute(None, buy())
        assert rejected.kind == ErrorKind.RISK_REJECTED
        assert rejected.detail == "Trading is disabled"
        assert gateway.placed_requests == []

        approved = await order_manager.execute(None, buy(), bypass_enabled_check=True, is_manual_approval=True)
        assert isinstance(approved, Ok)

    @pytest.mark.asyncio
    async def test_exactly_one_row_per_outcome(self, order_manager, gateway, session_factory):
        """Test each execution writes exactly one order row."""
        orders = OrderRepository(session_factory)

        await order_manager.execute(None, buy(quantity="1"))
        assert orders.count() == 1

        await order_manager.execute(None, buy(quantity="60"))
        assert orders.count() == 2

        gateway.fail_next()
        await order_manager.execute(None, buy(quantity="1"))
        assert orders.count() == 3

        await order_manager.execute(None, buy(order_type=OrderKind.LIMIT))
        assert orders.count() == 4


class TestGatewayFailure:
    """Tests for exchange failures."""

    @pytest.mark.asyncio
    async def test_automatic_failure_recorded(self, order_manager, gateway, make_signal_row, session_factory):
        """Test an automatic execution failure leaves a REJECTED row."""
        row = make_signal_row()
        gateway.fail_next()

        result = await order_manager.execute(row.id, buy())

        assert result.kind == ErrorKind.GATEWAY_FAILED
        order = OrderRepository(session_factory).get(result.order_id)
        assert order.status == OrderStatus.REJECTED.value
        assert order.risk_passed is True
        assert order.error_message == "Injected exchange failure"
        assert PositionRepository(session_factory).get_open("BTCUSDT") is None

    @pytest.mark.asyncio
    async def test_manual_failure_leaves_no_row(self, order_manager, gateway, make_signal_row, session_factory):
        """Test a manual approval failure writes no order row."""
        row = make_signal_row()
        gateway.fail_next()

        result = await order_manager.execute(row.id, buy(), bypass_enabled_check=True, is_manual_approval=True)

        assert result == Err(ErrorKind.GATEWAY_FAILED, "Injected exchange failure")
        assert OrderRepository(session_factory).count() == 0
        signal = SignalRepository(session_factory).get(row.id)
        assert signal.processed is False
        assert signal.error_message == "Injected exchange failure"

    @pytest.mark.asyncio
    async def test_price_failure_before_placement(self, order_manager, gateway, session_factory):
        """Test a failed price read is a gateway failure."""
        gateway.fail_price("BTCUSDT")

        result = await order_manager.execute(None, buy())

        assert result.kind == ErrorKind.GATEWAY_FAILED
        assert gateway.placed_requests == []
        assert OrderRepository(session_factory).count() == 1

    @pytest.mark.asyncio
    async def test_limit_without_price(self, order_manager, session_factory):
        """Test a limit order without price fails validation."""
        result = await order_manager.execute(None, buy(order_type=OrderKind.LIMIT))

        assert result.kind == ErrorKind.VALIDATION
        order = OrderRepository(session_factory).get(result.order_id)
        assert order.risk_passed is False


class TestLeveragedExecution:
    """Tests for strategies on the leveraged venue."""

    @pytest.mark.asyncio
    async def test_leverage_set_before_order(self, order_manager, gateway, session_factory, clock):
        """Test leverage is applied and the position carries it."""
        strategy = StrategyService(session_factory, clock).create(
            name="Perp Scalper", trading_type="future", leverage=10
        )

        result = await order_manager.execute(None, buy(quantity="1"), strategy)

        assert isinstance(result, Ok)
        assert gateway.leverage_calls == [("BTCUSDT", 10)]
        assert gateway.placed_requests[0].venue == VenueKind.FUTURE

        order = OrderRepository(session_factory).get(result.order_id)
        assert order.trading_type == VenueKind.FUTURE.value
        assert order.strategy_id == strategy.id

        position = PositionRepository(session_factory).get_open("BTCUSDT")
        assert position.leverage == 10
        assert position.liquidation_price == Decimal("90")

    @pytest.mark.asyncio
    async def test_sell_with_nothing_open_creates_no_position(self, order_manager, session_factory, clock):
        """Test a leveraged SELL with no open position fills but opens nothing."""
        strategy = StrategyService(session_factory, clock).create(name="Shorts", trading_type="FUTURE")
        signal = TradeSignal(action=SignalAction.SELL, symbol="ETHUSDT", quantity=Decimal("1"))

        result = await order_manager.execute(None, signal, strategy)

        assert isinstance(result, Ok)
        assert OrderRepository(session_factory).get(result.order_id).status == OrderStatus.FILLED.value
        assert PositionRepository(session_factory).get_open("ETHUSDT") is None


class TestExecuteFromSignal:
    """Tests for the throwing form."""

    @pytest.mark.asyncio
    async def test_returns_order_id(self, order_manager):
        """Test success returns the order id."""
        order_id = await order_manager.execute_from_signal(None, buy())

        assert isinstance(order_id, int)

    @pytest.mark.asyncio
    async def test_risk_limit_raised(self, order_manager):
        """Test a risk rejection raises with the order id."""
        with pytest.raises(RiskLimitExceededError) as exc_info:
            await order_manager.execute_from_signal(None, buy(quantity="10"))

        assert exc_info.value.details["order_id"] is not None
        assert not isinstance(exc_info.value, InsufficientBalanceError)

    @pytest.mark.asyncio
    async def test_insufficient_balance_raised(self, order_manager, gateway):
        """Test an empty balance raises InsufficientBalanceError."""
        gateway.set_balance("USDT", "0")

        with pytest.raises(InsufficientBalanceError):
            await order_manager.execute_from_signal(None, buy())

    @pytest.mark.asyncio
    async def test_gateway_error_raised(self, order_manager, gateway):
        """Test a gateway failure raises ExchangeApiError."""
        gateway.fail_next()

        with pytest.raises(ExchangeApiError):
            await order_manager.execute_from_signal(None, buy())

    @pytest.mark.asyncio
    async def test_validation_raised(self, order_manager):
        """Test a validation failure raises ValidationError."""
        with pytest.raises(ValidationError, match="Limit orders require a price"):
            await order_manager.execute_from_signal(None, buy(order_type=OrderKind.LIMIT))


class TestAdminOperations:
    """Tests for cancel and close."""

    @pytest.mark.asyncio
    async def test_cancel_resting_order(self, order_manager):
        """Test cancelling a NEW limit order."""
        result = await order_manager.execute(None, buy(order_type=OrderKind.LIMIT, price=Decimal("90")))

        order = await order_manager.cancel_order(result.order_id)

        assert order.status == OrderStatus.CANCELED.value

    @pytest.mark.asyncio
    async def test_cancel_final_order_rejected(self, order_manager):
        """Test filled and rejected orders cannot be cancelled."""
        filled = await order_manager.execute(None, buy())
        rejected = await order_manager.execute(None, buy(quantity="100"))

        with pytest.raises(ValidationError):
            await order_manager.cancel_order(filled.order_id)
        with pytest.raises(ValidationError):
            await order_manager.cancel_order(rejected.order_id)
        with pytest.raises(NotFoundError):
            await order_manager.cancel_order(9999)

    @pytest.mark.asyncio
    async def test_close_position(self, order_manager, gateway, session_factory):
        """Test closing a LONG sells its quantity at market."""
        await order_manager.execute(None, buy())
        position = PositionRepository(session_factory).get_open("BTCUSDT")
        gateway.set_price("BTCUSDT", "110")

        closed = await order_manager.close_position(position.id)

        assert closed.status == PositionStatus.CLOSED.value
        assert closed.realized_pnl == Decimal("50")
        assert closed.exit_price == Decimal("110")
        assert gateway.placed_requests[-1].side.value == "SELL"
        assert OrderRepository(session_factory).count() == 2

    @pytest.mark.asyncio
    async def test_close_missing_or_closed(self, order_manager, gateway, session_factory):
        """Test closing twice is refused."""
        with pytest.raises(NotFoundError):
            await order_manager.close_position(42)

        await order_manager.execute(None, buy())
        position = PositionRepository(session_factory).get_open("BTCUSDT")
        await order_manager.close_position(position.id)

        with pytest.raises(ValidationError, match="already closed"):
            await order_manager.close_position(position.id)
