"""
Database Package Initialization.

============================================================
SIGNAL EXECUTION PERSISTENCE LAYER
============================================================

Durable tables for signals, strategies, pending signals,
orders, positions and runtime config overrides.

REQUIRED:
- Every failure raises hard exceptions
- All transactions are explicit with commit/rollback
- Components receive a session factory, never a global session

============================================================
"""

from .engine import (
    Base,
    DEFAULT_DATABASE_URL,
    create_database_engine,
    create_session_factory,
    configure_database,
    get_engine,
    get_session,
    get_session_factory,
    transaction_scope,
    initialize_database,
    verify_database_connection,
    create_all_tables,
    DatabasePersistenceError,
    DatabaseConnectionError,
    DatabaseInitializationError,
)

from .models import (
    Signal,
    Strategy,
    PendingSignal,
    Order,
    Position,
    ConfigEntry,
    SignalAction,
    OrderKind,
    StrategyType,
    VenueKind,
    PendingSignalStatus,
    OrderSide,
    OrderType,
    OrderStatus,
    PositionSide,
    PositionStatus,
)

from .repositories import (
    SignalRepository,
    StrategyRepository,
    PendingSignalRepository,
    OrderRepository,
    PositionRepository,
    ConfigRepository,
)
