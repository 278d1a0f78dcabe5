"""
Shared test fixtures.

Every test gets a fresh in-memory SQLite database, a mock
exchange with deterministic prices and a controllable clock.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.clock import MockClock
from core.settings import Settings, TradingSettings
from database.engine import create_all_tables, create_database_engine, create_session_factory
from database.models import Signal
from database.repositories import ConfigRepository, PositionRepository, SignalRepository
from execution_engine.adapters import MockConfig, MockExchangeGateway
from execution_engine.order_manager import OrderManager
from execution_engine.position_ledger import PositionLedger
from risk_management import RiskEngine, RuntimeConfig


START_TIME = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory():
    engine = create_database_engine("sqlite:///:memory:")
    create_all_tables(engine)
    factory = create_session_factory(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def clock():
    return MockClock(START_TIME)


@pytest.fixture
def gateway():
    return MockExchangeGateway(MockConfig(
        initial_balance=Decimal("10000"),
        default_price=Decimal("100"),
        commission_rate=Decimal("0"),
    ))


@pytest.fixture
def trading_settings():
    return TradingSettings()


@pytest.fixture
def runtime_config(session_factory, trading_settings):
    return RuntimeConfig(trading_settings, ConfigRepository(session_factory))


@pytest.fixture
def risk_engine(gateway, runtime_config, session_factory, clock):
    return RiskEngine(gateway, runtime_config, PositionRepository(session_factory), clock)


@pytest.fixture
def ledger(session_factory, clock):
    return PositionLedger(session_factory, clock)


@pytest.fixture
def order_manager(gateway, risk_engine, ledger, runtime_config, session_factory, clock):
    return OrderManager(gateway, risk_engine, ledger, runtime_config, session_factory, clock)


@pytest.fixture
def settings():
    return Settings(
        webhook_secret="hook-secret",
        admin_api_key="admin-key",
        database_url="sqlite:///:memory:",
        queue_size=10,
        queue_workers=1,
        paper_trading=True,
    )


@pytest.fixture
def make_signal_row(session_factory):
    """Insert a Signal row to reference from orders."""
    repo = SignalRepository(session_factory)

    def _make(action="buy", symbol="BTCUSDT", **fields) -> Signal:
        return repo.create(
            action=action,
            symbol=symbol,
            order_type=fields.pop("order_type", "market"),
            raw_payload=fields.pop("raw_payload", {"action": action, "symbol": symbol}),
            **fields,
        )

    return _make
