"""
Position Ledger Tests.

============================================================
TEST CATEGORIES
============================================================
- Opening and re-averaging
- Partial and full reduction with realized P&L
- Short positions on the leveraged venue
- Conflict guards leave the ledger untouched

============================================================
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from core.exceptions import PositionConflictError, PositionSideMismatchError, ValidationError
from database.models import OrderSide, PositionSide, PositionStatus, VenueKind
from database.repositories import PositionRepository
from execution_engine.position_ledger import liquidation_price, realized_pnl


class TestPnlMath:
    """Tests for the pure arithmetic helpers."""

    def test_realized_pnl_long_and_short(self):
        """Test P&L sign follows the position side."""
        assert realized_pnl(PositionSide.LONG, Decimal("100"), Decimal("110"), Decimal("2")) == Decimal("20")
        assert realized_pnl(PositionSide.SHORT, Decimal("100"), Decimal("110"), Decimal("2")) == Decimal("-20")

    def test_liquidation_price(self):
        """Test simplified liquidation estimate."""
        assert liquidation_price(PositionSide.LONG, Decimal("100"), 5) == Decimal("80")
        assert liquidation_price(PositionSide.SHORT, Decimal("100"), 5) == Decimal("120")
        assert liquidation_price(PositionSide.LONG, Decimal("30000"), 3) == Decimal("20000.00000000")


class TestLongLifecycle:
    """Tests for a LONG position from open to close."""

    def test_open_average_reduce_close(self, ledger):
        """Test re-averaging, partial reduce and full close."""
        ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("1"), Decimal("100"))
        position = ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("1"), Decimal("110"))

        assert position.side == PositionSide.LONG.value
        assert position.quantity == Decimal("2")
        assert position.entry_price == Decimal("105")

        position = ledger.on_fill(None, OrderSide.SELL, "BTCUSDT", Decimal("0.5"), Decimal("120"))
        assert position.status == PositionStatus.OPEN.value
        assert position.quantity == Decimal("1.5")
        assert position.realized_pnl == Decimal("7.5")

        position = ledger.on_fill(None, OrderSide.SELL, "BTCUSDT", Decimal("1.5"), Decimal("100"))
        assert position.status == PositionStatus.CLOSED.value
        assert position.quantity == Decimal("0")
        assert position.realized_pnl == Decimal("0")
        assert position.exit_price == Decimal("100")
        assert position.closed_at is not None
        assert ledger.get_open("BTCUSDT") is None

    def test_over_close_is_capped(self, ledger):
        """Test a closing fill larger than the position only closes it."""
        ledger.on_fill(None, OrderSide.BUY, "ETHUSDT", Decimal("1"), Decimal("2000"))

        position = ledger.on_fill(None, OrderSide.SELL, "ETHUSDT", Decimal("3"), Decimal("2100"))

        assert position.status == PositionStatus.CLOSED.value
        assert position.realized_pnl == Decimal("100")

    def test_spot_sell_without_position_ignored(self, ledger, session_factory):
        """Test a spot SELL with nothing open leaves the ledger empty."""
        result = ledger.on_fill(None, OrderSide.SELL, "BTCUSDT", Decimal("1"), Decimal("100"))

        assert result is None
        assert PositionRepository(session_factory).list() == []

    def test_new_position_after_close(self, ledger, clock):
        """Test a closed symbol can be reopened as a fresh row."""
        first = ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("1"), Decimal("100"))
        ledger.on_fill(None, OrderSide.SELL, "BTCUSDT", Decimal("1"), Decimal("100"))
        clock.advance(minutes=5)

        second = ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("2"), Decimal("90"))

        assert second.id != first.id
        assert second.entry_price == Decimal("90")
        assert second.opened_at == clock.utcnow()

    def test_stop_loss_kept_on_open(self, ledger):
        """Test the supplied stop-loss is stored at creation."""
        position = ledger.on_fill(
            None, OrderSide.BUY, "BTCUSDT", Decimal("1"), Decimal("100"), stop_loss_price=Decimal("98")
        )

        assert position.stop_loss_price == Decimal("98")
        assert position.liquidation_price is None
        assert position.leverage is None


class TestShortLifecycle:
    """Tests for SHORT positions on the leveraged venue."""

    def test_sell_with_nothing_open_ignored_on_future(self, ledger):
        """Test a leveraged SELL with nothing open leaves the ledger unchanged."""
        result = ledger.on_fill(
            None, OrderSide.SELL, "BTCUSDT", Decimal("1"), Decimal("100"),
            venue=VenueKind.FUTURE, leverage=5,
        )

        assert result is None
        assert ledger.get_open("BTCUSDT") is None
        assert ledger.list_positions() == []

    def test_explicit_open_short_on_future(self, ledger):
        """Test an explicit SHORT open carries leverage and liquidation price."""
        position = ledger.open_or_extend(
            None, PositionSide.SHORT, "BTCUSDT", Decimal("1"), Decimal("100"),
            venue=VenueKind.FUTURE, leverage=5,
        )

        assert position.side == PositionSide.SHORT.value
        assert position.trading_type == VenueKind.FUTURE.value
        assert position.leverage == 5
        assert position.liquidation_price == Decimal("120")

    def test_liquidation_not_recomputed_on_extend(self, ledger):
        """Test re-averaging keeps the creation-time liquidation price."""
        ledger.open_or_extend(
            None, PositionSide.SHORT, "BTCUSDT", Decimal("1"), Decimal("100"),
            venue=VenueKind.FUTURE, leverage=5,
        )
        position = ledger.open_or_extend(
            None, PositionSide.SHORT, "BTCUSDT", Decimal("1"), Decimal("200"),
            venue=VenueKind.FUTURE, leverage=5,
        )

        assert position.entry_price == Decimal("150")
        assert position.liquidation_price == Decimal("120")

    def test_buy_back_closes_short(self, ledger):
        """Test explicit reduce with BUY closes a SHORT at a profit."""
        ledger.open_or_extend(
            None, PositionSide.SHORT, "BTCUSDT", Decimal("2"), Decimal("100"),
            venue=VenueKind.FUTURE, leverage=10,
        )

        position = ledger.reduce(None, OrderSide.BUY, "BTCUSDT", Decimal("2"), Decimal("90"))

        assert position.status == PositionStatus.CLOSED.value
        assert position.realized_pnl == Decimal("20")


class TestLedgerGuards:
    """Tests for conflict guards."""

    def test_buy_against_short_conflicts(self, ledger):
        """Test BUY fill while SHORT is open raises and mutates nothing."""
        ledger.open_or_extend(
            None, PositionSide.SHORT, "BTCUSDT", Decimal("1"), Decimal("100"),
            venue=VenueKind.FUTURE, leverage=5,
        )

        with pytest.raises(PositionConflictError):
            ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("1"), Decimal("110"))

        position = ledger.get_open("BTCUSDT")
        assert position.side == PositionSide.SHORT.value
        assert position.quantity == Decimal("1")
        assert position.entry_price == Decimal("100")

    def test_sell_against_short_mismatch(self, ledger):
        """Test SELL fill cannot reduce a SHORT."""
        ledger.open_or_extend(
            None, PositionSide.SHORT, "BTCUSDT", Decimal("1"), Decimal("100"),
            venue=VenueKind.FUTURE, leverage=5,
        )

        with pytest.raises(PositionSideMismatchError):
            ledger.on_fill(None, OrderSide.SELL, "BTCUSDT", Decimal("1"), Decimal("90"))

        assert ledger.get_open("BTCUSDT").quantity == Decimal("1")

    def test_non_positive_fill_rejected(self, ledger):
        """Test zero quantity or price is rejected."""
        with pytest.raises(ValidationError):
            ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("0"), Decimal("100"))
        with pytest.raises(ValidationError):
            ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("1"), Decimal("-1"))

    def test_one_open_position_per_symbol(self, ledger, session_factory):
        """Test repeated BUY fills never create a second OPEN row."""
        for price in ("100", "101", "102"):
            ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("1"), Decimal(price))

        open_rows = PositionRepository(session_factory).list(status=PositionStatus.OPEN.value)
        assert len(open_rows) == 1
        assert open_rows[0].quantity == Decimal("3")


class TestDailyPnl:
    """Tests for realized P&L aggregation by close day."""

    def test_realized_pnl_on_close_day(self, ledger, session_factory, clock):
        """Test only positions closed on the day are counted."""
        ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("1"), Decimal("100"))
        ledger.on_fill(None, OrderSide.SELL, "BTCUSDT", Decimal("1"), Decimal("90"))
        repo = PositionRepository(session_factory)

        assert repo.realized_pnl_on(clock.today()) == Decimal("-10")
        assert repo.realized_pnl_on(clock.today() + timedelta(days=1)) == Decimal("0")

    def test_partial_close_counted_when_position_closes(self, ledger, session_factory, clock):
        """Test P&L of a partial close joins the daily sum only once the position is closed."""
        ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("2"), Decimal("100"))
        ledger.on_fill(None, OrderSide.SELL, "BTCUSDT", Decimal("1"), Decimal("90"))
        repo = PositionRepository(session_factory)

        assert repo.realized_pnl_on(clock.today()) == Decimal("0")

        ledger.on_fill(None, OrderSide.SELL, "BTCUSDT", Decimal("1"), Decimal("100"))

        assert repo.realized_pnl_on(clock.today()) == Decimal("-10")


class TestListPositions:
    """Tests for position listing."""

    def test_filter_by_status(self, ledger):
        """Test closed and open positions are listed separately."""
        ledger.on_fill(None, OrderSide.BUY, "BTCUSDT", Decimal("1"), Decimal("100"))
        ledger.on_fill(None, OrderSide.SELL, "BTCUSDT", Decimal("1"), Decimal("100"))
        ledger.on_fill(None, OrderSide.BUY, "ETHUSDT", Decimal("1"), Decimal("100"))

        assert [p.symbol for p in ledger.list_positions(PositionStatus.OPEN.value)] == ["ETHUSDT"]
        assert [p.symbol for p in ledger.list_positions(PositionStatus.CLOSED.value)] == ["BTCUSDT"]
        assert len(ledger.list_positions()) == 2
