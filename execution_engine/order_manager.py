"""
Execution Engine - Order Manager.

============================================================
PURPOSE
============================================================
Turns an accepted signal into an exchange order.

RESPONSIBILITIES:
- Sizing and risk gating through the Risk Engine
- Order placement through the Exchange Gateway
- One audit Order row per execution
- Handing full fills to the Position Ledger
- Resolving the originating Signal exactly once

============================================================
OUTCOMES
============================================================
Ok(order_id)                      order placed, row persisted
Err(RISK_REJECTED, reason, id)    REJECTED row, risk_passed=False
Err(GATEWAY_FAILED, msg, id?)     automatic: REJECTED row
                                  manual approval: no row
Err(VALIDATION, msg, id?)         same audit rule as gateway failure

Ledger failures after a placed order are logged only; the
exchange order stands.

============================================================
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy.orm import sessionmaker

from core.clock import ClockProtocol, get_clock
from core.exceptions import (
    ExchangeApiError,
    InsufficientBalanceError,
    NotFoundError,
    RiskLimitExceededError,
    TradingError,
    ValidationError,
)
from database.models import Order, Position, PositionStatus, Strategy
from database.repositories import OrderRepository, PositionRepository, SignalRepository

from .adapters.base import ExchangeGateway
from .position_ledger import CLOSING_SIDE, PositionLedger
from .types import (
    Err,
    ErrorKind,
    ExecutionResult,
    Ok,
    OrderAck,
    OrderKind,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    PositionSide,
    TradeSignal,
    VenueKind,
)

if TYPE_CHECKING:
    from risk_management.risk_engine import RiskEngine, RiskCheckResult
    from risk_management.runtime_config import RuntimeConfig


logger = logging.getLogger(__name__)

PRICE_STEP = Decimal("0.00000001")
INSUFFICIENT_BALANCE_PREFIX = "Insufficient balance"


def stop_loss_for(side: PositionSide, entry_price: Decimal, percent: Decimal) -> Decimal:
    """Derived stop-loss price at `percent` distance from entry."""
    distance = percent / Decimal("100")
    if side == PositionSide.LONG:
        price = entry_price * (Decimal("1") - distance)
    else:
        price = entry_price * (Decimal("1") + distance)
    return price.quantize(PRICE_STEP)


# ============================================================
# ORDER MANAGER
# ============================================================

class OrderManager:
    """
    Executes signals against the exchange.

    Every collaborator is injected; tests use the mock gateway
    and an in-memory session factory.
    """

    def __init__(
        self,
        gateway: ExchangeGateway,
        risk_engine: "RiskEngine",
        ledger: PositionLedger,
        runtime_config: "RuntimeConfig",
        session_factory: Optional[sessionmaker] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._gateway = gateway
        self._risk = risk_engine
        self._ledger = ledger
        self._config = runtime_config
        self._clock = clock or get_clock()

        self._orders = OrderRepository(session_factory)
        self._signals = SignalRepository(session_factory)
        self._positions = PositionRepository(session_factory)

    # --------------------------------------------------------
    # EXECUTION
    # --------------------------------------------------------

    async def execute(
        self,
        signal_id: Optional[int],
        signal: TradeSignal,
        strategy: Optional[Strategy] = None,
        bypass_enabled_check: bool = False,
        is_manual_approval: bool = False,
    ) -> ExecutionResult:
        """
        Size, gate, place and record one order.

        Args:
            signal_id: Originating Signal row
            signal: Normalized signal
            strategy: Resolved strategy, None for unrouted signals
            bypass_enabled_check: Skip the trading-enabled gate
            is_manual_approval: Signal was approved by a human;
                gateway failures leave no Order row

        Returns:
            Ok(order_id) or Err(kind, detail, order_id)
        """
        venue = VenueKind.FUTURE if strategy is not None and strategy.is_leveraged else VenueKind.SPOT
        leverage = strategy.leverage if venue == VenueKind.FUTURE else None
        strategy_id = strategy.id if strategy is not None else None

        logger.info(
            f"Executing signal {signal_id}: {signal.action.value} {signal.symbol} "
            f"type={signal.order_type.value} venue={venue.value} manual={is_manual_approval}"
        )

        if signal.order_type == OrderKind.LIMIT and signal.price is None:
            return self._fail(
                ErrorKind.VALIDATION, "Limit orders require a price",
                signal_id, signal, strategy_id, venue, None, is_manual_approval,
            )

        quantity: Optional[Decimal] = None
        try:
            quantity = await self._risk.size(signal, venue)
            check = await self._risk.check_limits(signal, quantity, bypass_enabled_check, venue)
        except ValidationError as e:
            return self._fail(
                ErrorKind.VALIDATION, e.message,
                signal_id, signal, strategy_id, venue, quantity, is_manual_approval,
            )
        except Exception as e:
            logger.error(f"Pre-trade checks failed for signal {signal_id}: {e}")
            return self._fail(
                ErrorKind.GATEWAY_FAILED, _message(e),
                signal_id, signal, strategy_id, venue, quantity, is_manual_approval,
            )

        if not check.allowed:
            return self._reject(signal_id, signal, strategy_id, venue, quantity, check)

        try:
            if leverage:
                await self._gateway.set_leverage(signal.symbol, leverage)
            ack = await self._place(signal, quantity, venue)
        except Exception as e:
            logger.error(f"Order placement failed for signal {signal_id}: {e}")
            return self._fail(
                ErrorKind.GATEWAY_FAILED, _message(e),
                signal_id, signal, strategy_id, venue, quantity, is_manual_approval,
            )

        order = self._orders.create(
            exchange_order_id=ack.exchange_order_id,
            symbol=signal.symbol,
            side=signal.side.value,
            type=OrderType.LIMIT.value if signal.order_type == OrderKind.LIMIT else OrderType.MARKET.value,
            quantity=quantity,
            price=signal.price if signal.order_type == OrderKind.LIMIT else ack.avg_fill_price,
            status=ack.status.value,
            filled_quantity=ack.executed_qty,
            avg_fill_price=ack.avg_fill_price,
            commission=ack.commission,
            commission_asset=ack.commission_asset,
            signal_id=signal_id,
            strategy_id=strategy_id,
            risk_passed=True,
            trading_type=venue.value,
        )
        self._resolve_signal(signal_id, order.id, None)

        logger.info(
            f"Order {order.id} placed: {signal.side.value} {quantity} {signal.symbol} "
            f"status={ack.status.value} exchange_id={ack.exchange_order_id}"
        )

        if ack.is_filled:
            self._apply_fill(order, ack, signal, venue, leverage)

        return Ok(order.id)

    async def execute_from_signal(
        self,
        signal_id: Optional[int],
        signal: TradeSignal,
        strategy: Optional[Strategy] = None,
        bypass_enabled_check: bool = False,
        is_manual_approval: bool = False,
    ) -> int:
        """
        Throwing form of execute().

        Returns:
            The Order id

        Raises:
            RiskLimitExceededError / InsufficientBalanceError on rejection
            ExchangeApiError on gateway failure
            ValidationError when no order could be built
        """
        result = await self.execute(
            signal_id, signal, strategy, bypass_enabled_check, is_manual_approval
        )
        if isinstance(result, Ok):
            return result.order_id

        if result.kind == ErrorKind.RISK_REJECTED:
            if result.detail.startswith(INSUFFICIENT_BALANCE_PREFIX):
                raise InsufficientBalanceError(result.detail, order_id=result.order_id)
            raise RiskLimitExceededError(result.detail, order_id=result.order_id)
        details = {"order_id": result.order_id} if result.order_id is not None else None
        if result.kind == ErrorKind.VALIDATION:
            raise ValidationError(result.detail, details=details)
        raise ExchangeApiError(result.detail, details=details)

    # --------------------------------------------------------
    # ADMIN OPERATIONS
    # --------------------------------------------------------

    async def cancel_order(self, order_id: int) -> Order:
        """
        Cancel a resting order on the exchange.

        Raises:
            NotFoundError if the order does not exist
            ValidationError if it was never placed or is already final
        """
        order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if not order.exchange_order_id:
            raise ValidationError(f"Order {order_id} has no exchange order id")
        if order.status in (OrderStatus.FILLED.value, OrderStatus.CANCELED.value, OrderStatus.REJECTED.value):
            raise ValidationError(f"Order {order_id} is already {order.status}")

        await self._gateway.cancel_order(
            order.symbol, order.exchange_order_id, VenueKind(order.trading_type)
        )
        updated = self._orders.update(order_id, status=OrderStatus.CANCELED.value)
        logger.info(f"Order {order_id} canceled ({order.symbol})")
        return updated

    def list_orders(
        self,
        symbol: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[Order]:
        return self._orders.list(symbol=symbol, status=status, limit=limit)

    def get_order(self, order_id: int) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def close_position(self, position_id: int) -> Position:
        """
        Close an open position with a market order on the closing side.

        Raises:
            NotFoundError if the position does not exist
            ValidationError if it is already closed
            ExchangeApiError if the exchange rejects the order
        """
        position = self._positions.get(position_id)
        if position is None:
            raise NotFoundError(f"Position {position_id} not found")
        if position.status != PositionStatus.OPEN.value:
            raise ValidationError(f"Position {position_id} is already closed")

        venue = VenueKind(position.trading_type)
        side = CLOSING_SIDE[PositionSide(position.side)]
        request = OrderRequest(
            symbol=position.symbol,
            side=side,
            order_type=OrderType.MARKET,
            quantity=position.quantity,
            venue=venue,
        )
        ack = await self._gateway.create_market_order(request)

        order = self._orders.create(
            exchange_order_id=ack.exchange_order_id,
            symbol=position.symbol,
            side=side.value,
            type=OrderType.MARKET.value,
            quantity=position.quantity,
            price=ack.avg_fill_price,
            status=ack.status.value,
            filled_quantity=ack.executed_qty,
            avg_fill_price=ack.avg_fill_price,
            commission=ack.commission,
            commission_asset=ack.commission_asset,
            risk_passed=True,
            trading_type=venue.value,
        )

        fill_price = ack.avg_fill_price or await self._gateway.get_price(position.symbol, venue)
        closed = self._ledger.reduce(order.id, side, position.symbol, ack.executed_qty or position.quantity, fill_price)
        logger.info(f"Position {position_id} closed by order {order.id}")
        return closed

    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------

    async def _place(self, signal: TradeSignal, quantity: Decimal, venue: VenueKind) -> OrderAck:
        if signal.order_type == OrderKind.LIMIT:
            request = OrderRequest(
                symbol=signal.symbol,
                side=signal.side,
                order_type=OrderType.LIMIT,
                quantity=quantity,
                price=signal.price,
                venue=venue,
            )
            return await self._gateway.create_limit_order(request)

        request = OrderRequest(
            symbol=signal.symbol,
            side=signal.side,
            order_type=OrderType.MARKET,
            quantity=quantity,
            venue=venue,
        )
        return await self._gateway.create_market_order(request)

    def _reject(
        self,
        signal_id: Optional[int],
        signal: TradeSignal,
        strategy_id: Optional[int],
        venue: VenueKind,
        quantity: Decimal,
        check: "RiskCheckResult",
    ) -> Err:
        order = self._orders.create(
            symbol=signal.symbol,
            side=signal.side.value,
            type=OrderType.LIMIT.value if signal.order_type == OrderKind.LIMIT else OrderType.MARKET.value,
            quantity=quantity,
            price=signal.price or check.current_price,
            status=OrderStatus.REJECTED.value,
            signal_id=signal_id,
            strategy_id=strategy_id,
            risk_passed=False,
            trading_type=venue.value,
            error_message=check.reason,
        )
        self._resolve_signal(signal_id, order.id, check.reason)
        logger.warning(f"Order {order.id} rejected by risk for signal {signal_id}: {check.reason}")
        return Err(ErrorKind.RISK_REJECTED, check.reason, order.id)

    def _fail(
        self,
        kind: ErrorKind,
        detail: str,
        signal_id: Optional[int],
        signal: TradeSignal,
        strategy_id: Optional[int],
        venue: VenueKind,
        quantity: Optional[Decimal],
        is_manual_approval: bool,
    ) -> Err:
        if is_manual_approval:
            # The pending signal carries the failure instead of an Order row
            self._resolve_signal(signal_id, None, detail)
            return Err(kind, detail)

        order = self._orders.create(
            symbol=signal.symbol,
            side=signal.side.value,
            type=OrderType.LIMIT.value if signal.order_type == OrderKind.LIMIT else OrderType.MARKET.value,
            quantity=quantity if quantity is not None else (signal.quantity or Decimal("0")),
            price=signal.price,
            status=OrderStatus.REJECTED.value,
            signal_id=signal_id,
            strategy_id=strategy_id,
            risk_passed=kind != ErrorKind.VALIDATION,
            trading_type=venue.value,
            error_message=detail,
        )
        self._resolve_signal(signal_id, order.id, detail)
        return Err(kind, detail, order.id)

    def _apply_fill(
        self,
        order: Order,
        ack: OrderAck,
        signal: TradeSignal,
        venue: VenueKind,
        leverage: Optional[int],
    ) -> None:
        fill_price = ack.avg_fill_price
        if fill_price is None or ack.executed_qty <= 0:
            logger.warning(f"Order {order.id} filled without price or quantity, ledger not updated")
            return

        try:
            settings = self._config.current()
            stop_loss = signal.stop_loss
            if stop_loss is None and settings.enable_stop_loss and signal.side == OrderSide.BUY:
                stop_loss = stop_loss_for(PositionSide.LONG, fill_price, settings.default_stop_loss_percent)

            self._ledger.on_fill(
                order.id,
                signal.side,
                signal.symbol,
                ack.executed_qty,
                fill_price,
                venue=venue,
                leverage=leverage,
                stop_loss_price=stop_loss,
            )
        except Exception:
            logger.exception(f"Position update failed for order {order.id} ({signal.symbol})")

    def _resolve_signal(self, signal_id: Optional[int], order_id: Optional[int], error: Optional[str]) -> None:
        if signal_id is None:
            return
        self._signals.resolve(signal_id, order_id, error, self._clock.utcnow())


def _message(error: Exception) -> str:
    if isinstance(error, TradingError):
        return error.message
    return str(error) or error.__class__.__name__
