"""
Execution Engine Package.

============================================================
PURPOSE
============================================================
Turns accepted signals into exchange orders and keeps the
position ledger in step with fills.

AUTHORITY BOUNDARIES:
    CAN:
        - Size orders and place them after risk approval
        - Cancel orders and close positions on admin request
        - Record every execution attempt as an Order row

    MUST NOT:
        - Place an order the Risk Engine rejected
        - Flip a position to the opposite side
        - Let one failed job stop other signals

============================================================
MODULES
============================================================
- types: Signal, gateway values, Ok/Err execution results
- config: Exchange, retry and timeout configuration
- adapters: Exchange gateways (Binance, Mock)
- order_manager: Signal execution and audit rows
- position_ledger: Fill-driven position bookkeeping
- work_queue: Bounded background execution queue

============================================================
"""

from .types import (
    to_decimal,
    TradeSignal,
    Balance,
    OrderRequest,
    Fill,
    OrderAck,
    ErrorKind,
    Ok,
    Err,
    ExecutionResult,
    OrderKind,
    OrderSide,
    OrderStatus,
    OrderType,
    PositionSide,
    SignalAction,
    VenueKind,
)

from .config import (
    RetryConfig,
    TimeoutConfig,
    ExchangeConfig,
)

from .adapters import (
    ExchangeGateway,
    BinanceGateway,
    MockExchangeGateway,
    MockConfig,
    create_gateway,
)

from .position_ledger import PositionLedger, liquidation_price, realized_pnl, unrealized_pnl
from .order_manager import OrderManager, stop_loss_for
from .work_queue import ExecutionQueue


__all__ = [
    # Types
    "to_decimal",
    "TradeSignal",
    "Balance",
    "OrderRequest",
    "Fill",
    "OrderAck",
    "ErrorKind",
    "Ok",
    "Err",
    "ExecutionResult",
    "OrderKind",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "PositionSide",
    "SignalAction",
    "VenueKind",
    # Config
    "RetryConfig",
    "TimeoutConfig",
    "ExchangeConfig",
    # Adapters
    "ExchangeGateway",
    "BinanceGateway",
    "MockExchangeGateway",
    "MockConfig",
    "create_gateway",
    # Components
    "PositionLedger",
    "liquidation_price",
    "realized_pnl",
    "unrealized_pnl",
    "OrderManager",
    "stop_loss_for",
    "ExecutionQueue",
]
