"""
Execution Engine - Mock Exchange Gateway.

============================================================
PURPOSE
============================================================
In-process gateway for tests and paper trading.

FEATURES:
- Configurable prices and balances per venue
- Market orders fill immediately at the configured price
- Limit orders rest as NEW until cancelled
- Error injection for the next call or for a symbol
- Call recording for assertions

============================================================
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from core.exceptions import ExchangeApiError

from ..types import (
    Balance,
    Fill,
    OrderAck,
    OrderRequest,
    OrderStatus,
    OrderType,
    VenueKind,
)
from .base import ExchangeGateway
from .errors import ErrorCategory


logger = logging.getLogger(__name__)


# ============================================================
# MOCK CONFIGURATION
# ============================================================

@dataclass
class MockConfig:
    """Configuration for mock gateway."""

    latency_ms: float = 0.0
    """Simulated latency per call."""

    initial_balance: Decimal = Decimal("10000")
    """Initial free USDT balance on both venues."""

    default_price: Optional[Decimal] = Decimal("50000")
    """Price for symbols without an explicit price; None means unknown symbol."""

    commission_rate: Decimal = Decimal("0.001")
    """Commission charged on fills, in quote asset."""

    prices: Dict[str, Decimal] = field(default_factory=dict)
    """Explicit prices by symbol."""


# ============================================================
# MOCK EXCHANGE GATEWAY
# ============================================================

class MockExchangeGateway(ExchangeGateway):
    """
    Mock exchange gateway.

    Simulates exchange behavior including:
    - Order placement and immediate market fills
    - Balance reads per venue
    - Error injection
    """

    def __init__(self, config: Optional[MockConfig] = None):
        self._config = config or MockConfig()

        self._prices: Dict[str, Decimal] = dict(self._config.prices)
        self._balances: Dict[Tuple[VenueKind, str], Balance] = {
            (VenueKind.SPOT, "USDT"): Balance("USDT", free=self._config.initial_balance),
            (VenueKind.FUTURE, "USDT"): Balance("USDT", free=self._config.initial_balance),
        }
        self._orders: Dict[str, OrderAck] = {}
        self._order_venues: Dict[str, VenueKind] = {}

        # Error injection hooks
        self._force_next_error: Optional[Exception] = None
        self._price_errors: Dict[str, Exception] = {}

        # Call recording
        self.placed_requests: List[OrderRequest] = []
        self.leverage_calls: List[Tuple[str, int]] = []

    @property
    def exchange_id(self) -> str:
        return "mock"

    # --------------------------------------------------------
    # TEST CONTROLS
    # --------------------------------------------------------

    def set_price(self, symbol: str, price) -> None:
        self._prices[symbol] = Decimal(str(price))

    def set_balance(self, asset: str, free, locked=0, venue: VenueKind = VenueKind.SPOT) -> None:
        self._balances[(venue, asset)] = Balance(asset, Decimal(str(free)), Decimal(str(locked)))

    def fail_next(self, error: Optional[Exception] = None) -> None:
        """Make the next order/cancel call raise."""
        self._force_next_error = error or ExchangeApiError(
            "Injected exchange failure",
            category=ErrorCategory.EXCHANGE_ERROR.value,
            retryable=True,
        )

    def fail_price(self, symbol: str, error: Optional[Exception] = None) -> None:
        """Make every price lookup for a symbol raise."""
        self._price_errors[symbol] = error or ExchangeApiError(
            f"Price unavailable for {symbol}",
            category=ErrorCategory.NETWORK.value,
            retryable=True,
        )

    async def _simulate_latency(self) -> None:
        if self._config.latency_ms > 0:
            await asyncio.sleep(self._config.latency_ms / 1000)

    def _raise_injected(self) -> None:
        if self._force_next_error is not None:
            error = self._force_next_error
            self._force_next_error = None
            raise error

    # --------------------------------------------------------
    # MARKET DATA / ACCOUNT
    # --------------------------------------------------------

    def _price(self, symbol: str) -> Decimal:
        if symbol in self._price_errors:
            raise self._price_errors[symbol]
        if symbol in self._prices:
            return self._prices[symbol]
        if self._config.default_price is None:
            raise ExchangeApiError(
                f"Invalid symbol: {symbol}",
                category=ErrorCategory.SYMBOL_NOT_FOUND.value,
                exchange_code="-1121",
            )
        return self._config.default_price

    async def get_price(self, symbol: str, venue: VenueKind = VenueKind.SPOT) -> Decimal:
        await self._simulate_latency()
        return self._price(symbol)

    async def get_balance(self, asset: str, venue: VenueKind = VenueKind.SPOT) -> Balance:
        await self._simulate_latency()
        return self._balances.get((venue, asset), Balance(asset=asset))

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def create_market_order(self, request: OrderRequest) -> OrderAck:
        await self._simulate_latency()
        self._raise_injected()
        self.placed_requests.append(request)

        price = self._price(request.symbol)
        commission = (request.quantity * price * self._config.commission_rate).quantize(Decimal("0.00000001"))
        quote = "USDT" if request.symbol.endswith("USDT") else request.symbol[-3:]
        fill = Fill(price=price, quantity=request.quantity, commission=commission, commission_asset=quote)

        ack = OrderAck(
            exchange_order_id=uuid.uuid4().hex,
            symbol=request.symbol,
            status=OrderStatus.FILLED,
            executed_qty=request.quantity,
            avg_fill_price=price,
            commission=commission,
            commission_asset=quote,
            fills=[fill],
        )
        self._orders[ack.exchange_order_id] = ack
        self._order_venues[ack.exchange_order_id] = request.venue
        logger.debug(f"Mock fill: {request.side.value} {request.quantity} {request.symbol} @ {price}")
        return ack

    async def create_limit_order(self, request: OrderRequest) -> OrderAck:
        await self._simulate_latency()
        if request.price is None:
            raise ValueError("Limit order requires a price")
        self._raise_injected()
        self.placed_requests.append(request)

        ack = OrderAck(
            exchange_order_id=uuid.uuid4().hex,
            symbol=request.symbol,
            status=OrderStatus.NEW,
        )
        self._orders[ack.exchange_order_id] = ack
        self._order_venues[ack.exchange_order_id] = request.venue
        return ack

    async def cancel_order(
        self,
        symbol: str,
        exchange_order_id: str,
        venue: VenueKind = VenueKind.SPOT,
    ) -> OrderAck:
        await self._simulate_latency()
        self._raise_injected()

        ack = self._orders.get(exchange_order_id)
        if ack is None:
            raise ExchangeApiError(
                "Unknown order sent.",
                category=ErrorCategory.ORDER_NOT_FOUND.value,
                exchange_code="-2011",
            )
        ack.status = OrderStatus.CANCELED
        return ack

    async def get_order(
        self,
        symbol: str,
        exchange_order_id: str,
        venue: VenueKind = VenueKind.SPOT,
    ) -> OrderAck:
        await self._simulate_latency()
        ack = self._orders.get(exchange_order_id)
        if ack is None:
            raise ExchangeApiError(
                "Order does not exist.",
                category=ErrorCategory.ORDER_NOT_FOUND.value,
                exchange_code="-2013",
            )
        return ack

    async def get_open_orders(
        self,
        symbol: Optional[str] = None,
        venue: VenueKind = VenueKind.SPOT,
    ) -> List[OrderAck]:
        await self._simulate_latency()
        return [
            ack for oid, ack in self._orders.items()
            if ack.status == OrderStatus.NEW
            and self._order_venues.get(oid) == venue
            and (symbol is None or ack.symbol == symbol)
        ]

    # --------------------------------------------------------
    # LEVERAGED VENUE
    # --------------------------------------------------------

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        await self._simulate_latency()
        self.leverage_calls.append((symbol, leverage))

    async def ping(self) -> bool:
        return True
