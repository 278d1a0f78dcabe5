"""
Execution Engine - Types.

============================================================
PURPOSE
============================================================
Value types shared by intake, risk and execution.

- TradeSignal: normalized alert, serializable to the JSON
  payload stored with signals and pending signals
- Gateway request/response values
- Explicit execution results: Ok(order_id) | Err(kind, detail)

============================================================
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from database.models import (
    OrderKind,
    OrderSide,
    OrderStatus,
    OrderType,
    PositionSide,
    SignalAction,
    VenueKind,
)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert JSON/float/str numbers without binary float noise."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# ============================================================
# SIGNAL
# ============================================================

@dataclass
class TradeSignal:
    """Normalized inbound alert."""

    action: SignalAction
    symbol: str
    order_type: OrderKind = OrderKind.MARKET
    price: Optional[Decimal] = None
    quantity: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = None
    strategy: Optional[str] = None
    message: Optional[str] = None

    @property
    def side(self) -> OrderSide:
        """buy -> BUY; sell and close -> SELL."""
        return OrderSide.BUY if self.action == SignalAction.BUY else OrderSide.SELL

    @property
    def fingerprint(self) -> str:
        return f"{self.action.value}-{self.symbol}-{self.order_type.value}"

    @property
    def quote_asset(self) -> str:
        for quote in ("USDT", "BUSD", "BTC", "ETH", "BNB"):
            if self.symbol.endswith(quote) and self.symbol != quote:
                return quote
        return "USDT"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation using the webhook field names."""
        data: Dict[str, Any] = {
            "action": self.action.value,
            "symbol": self.symbol,
            "orderType": self.order_type.value,
        }
        for key, value in (
            ("price", self.price),
            ("quantity", self.quantity),
            ("stopLoss", self.stop_loss),
        ):
            if value is not None:
                data[key] = str(value)
        if self.strategy is not None:
            data["strategy"] = self.strategy
        if self.message is not None:
            data["message"] = self.message
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeSignal":
        return cls(
            action=SignalAction(data["action"]),
            symbol=str(data["symbol"]).upper(),
            order_type=OrderKind(data.get("orderType") or OrderKind.MARKET.value),
            price=to_decimal(data.get("price")),
            quantity=to_decimal(data.get("quantity")),
            stop_loss=to_decimal(data.get("stopLoss")),
            strategy=data.get("strategy"),
            message=data.get("message"),
        )


# ============================================================
# GATEWAY VALUES
# ============================================================

@dataclass
class Balance:
    """Free and locked amount of one asset."""

    asset: str
    free: Decimal = Decimal("0")
    locked: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.free + self.locked


@dataclass
class OrderRequest:
    """Order to place on a venue."""

    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: Decimal
    price: Optional[Decimal] = None
    venue: VenueKind = VenueKind.SPOT


@dataclass
class Fill:
    price: Decimal
    quantity: Decimal
    commission: Decimal = Decimal("0")
    commission_asset: Optional[str] = None


@dataclass
class OrderAck:
    """Exchange answer to an order placement or query."""

    exchange_order_id: str
    symbol: str
    status: OrderStatus
    executed_qty: Decimal = Decimal("0")
    avg_fill_price: Optional[Decimal] = None
    commission: Decimal = Decimal("0")
    commission_asset: Optional[str] = None
    fills: List[Fill] = field(default_factory=list)

    @property
    def is_filled(self) -> bool:
        return self.status == OrderStatus.FILLED


# ============================================================
# EXECUTION RESULTS
# ============================================================

class ErrorKind(Enum):
    """Expected, auditable failure outcomes of an execution."""

    VALIDATION = "VALIDATION"
    """Signal cannot be turned into an order (e.g. limit without price)."""

    RISK_REJECTED = "RISK_REJECTED"
    """Risk gating blocked the order."""

    GATEWAY_FAILED = "GATEWAY_FAILED"
    """Exchange call failed."""


@dataclass(frozen=True)
class Ok:
    order_id: int

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str
    order_id: Optional[int] = None

    @property
    def ok(self) -> bool:
        return False


ExecutionResult = Union[Ok, Err]


__all__ = [
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
]
