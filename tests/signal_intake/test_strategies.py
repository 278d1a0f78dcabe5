"""
Strategy Service Tests.
"""

import pytest

from core.exceptions import NotFoundError, StrategyInUseError, ValidationError
from database.models import SignalAction
from execution_engine.types import TradeSignal
from signal_intake.strategies import DEFAULT_AUTOMATIC, DEFAULT_MANUAL, StrategyService


@pytest.fixture
def strategies(session_factory, clock):
    return StrategyService(session_factory, clock)


class TestStrategyCrud:
    """Tests for create, update, toggle and delete."""

    def test_seed_defaults_once(self, strategies):
        """Test defaults are only seeded into an empty table."""
        assert strategies.seed_defaults() == 2
        assert strategies.seed_defaults() == 0

        assert strategies.get_by_name(DEFAULT_AUTOMATIC).enabled is True
        assert strategies.get_by_name(DEFAULT_MANUAL).enabled is False

    def test_create_defaults(self, strategies):
        """Test field defaults on create."""
        strategy = strategies.create(name="  Breakout  ")

        assert strategy.name == "Breakout"
        assert strategy.type == "automatic"
        assert strategy.trading_type == "SPOT"
        assert strategy.leverage == 5

    def test_duplicate_name_rejected(self, strategies):
        """Test names are unique."""
        strategies.create(name="Breakout")

        with pytest.raises(ValidationError, match="already exists"):
            strategies.create(name="Breakout")

    def test_invalid_fields(self, strategies):
        """Test type, venue and leverage validation."""
        with pytest.raises(ValidationError):
            strategies.create(name="")
        with pytest.raises(ValidationError):
            strategies.create(name="A", type="semi")
        with pytest.raises(ValidationError):
            strategies.create(name="B", trading_type="MARGIN")
        with pytest.raises(ValidationError):
            strategies.create(name="C", leverage=126)

    def test_partial_update(self, strategies):
        """Test None values leave fields unchanged."""
        strategy = strategies.create(name="Breakout", description="old")

        updated = strategies.update(strategy.id, description="new", leverage=None, trading_type="future")

        assert updated.description == "new"
        assert updated.leverage == 5
        assert updated.trading_type == "FUTURE"
        assert updated.is_leveraged is True

    def test_update_rename_conflict(self, strategies):
        """Test renaming onto an existing name is refused."""
        strategies.create(name="A")
        b = strategies.create(name="B")

        with pytest.raises(ValidationError, match="already exists"):
            strategies.update(b.id, name="A")
        with pytest.raises(ValidationError, match="Unknown strategy field"):
            strategies.update(b.id, colour="red")
        with pytest.raises(NotFoundError):
            strategies.update(999, name="Z")

    def test_toggle(self, strategies):
        """Test toggling flips enabled."""
        strategy = strategies.create(name="A")

        assert strategies.toggle(strategy.id).enabled is False
        assert strategies.toggle(strategy.id).enabled is True

    def test_delete_blocked_by_pending(self, strategies, order_manager, session_factory, clock):
        """Test a strategy with pending signals cannot be deleted."""
        from human_review.service import PendingSignalService

        strategy = strategies.create(name="Swing", type="manual")
        pending = PendingSignalService(order_manager, None, session_factory, clock)
        pending.create(None, strategy.id, TradeSignal(action=SignalAction.BUY, symbol="BTCUSDT"))

        with pytest.raises(StrategyInUseError):
            strategies.delete(strategy.id)

    def test_delete(self, strategies):
        """Test deleting an unused strategy."""
        strategy = strategies.create(name="A")

        assert strategies.delete(strategy.id) is True
        assert strategies.get(strategy.id) is None
        assert strategies.delete(strategy.id) is False


class TestResolve:
    """Tests for signal routing."""

    def test_named_enabled_strategy(self, strategies):
        """Test a named enabled strategy wins."""
        strategies.seed_defaults()
        strategies.create(name="Swing", type="manual")

        assert strategies.resolve("Swing").name == "Swing"

    def test_disabled_named_falls_back(self, strategies):
        """Test a disabled named strategy falls back to the default."""
        strategies.seed_defaults()

        assert strategies.resolve(DEFAULT_MANUAL).name == DEFAULT_AUTOMATIC

    def test_first_enabled_automatic(self, strategies):
        """Test fallback when the default automatic is disabled."""
        strategies.seed_defaults()
        strategies.toggle(strategies.get_by_name(DEFAULT_AUTOMATIC).id)
        strategies.create(name="Other")

        assert strategies.resolve(None).name == "Other"

    def test_no_strategy(self, strategies):
        """Test None when nothing is enabled."""
        assert strategies.resolve("anything") is None
