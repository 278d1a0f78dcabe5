"""
Risk Management - Risk Engine.

============================================================
RESPONSIBILITY
============================================================
Computes order size and approves or rejects an order against
position, exposure and daily-loss limits.

============================================================
GATING ORDER (first failure wins)
============================================================
1. Trading enabled (skipped for human-approved signals)
2. Position size:  notional / free balance * 100 <= max %
3. Total exposure: (open notional + notional) / free * 100 <= max %
4. Daily loss:     |realized P&L closed today| <= max
5. Balance:        notional <= free balance

Thresholds are read from RuntimeConfig on EVERY check.
Arithmetic is Decimal so values exactly at a limit pass.

============================================================
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Dict, Optional

from core.clock import ClockProtocol, get_clock
from core.exceptions import ValidationError
from database.models import VenueKind
from database.repositories import PositionRepository
from execution_engine.adapters.base import ExchangeGateway
from execution_engine.types import TradeSignal

from .runtime_config import RuntimeConfig


logger = logging.getLogger(__name__)

QUANTITY_STEP = Decimal("0.00000001")


# ============================================================
# RESULT
# ============================================================

@dataclass
class RiskCheckResult:
    """Outcome of a risk check."""

    allowed: bool
    reason: Optional[str] = None
    current_price: Optional[Decimal] = None
    available_balance: Optional[Decimal] = None
    order_value: Optional[Decimal] = None
    insufficient_balance: bool = False
    """True when the failing gate was the balance check."""

    @classmethod
    def reject(cls, reason: str, **kwargs) -> "RiskCheckResult":
        return cls(allowed=False, reason=reason, **kwargs)


# ============================================================
# RISK ENGINE
# ============================================================

class RiskEngine:
    """Percentage-based pre-trade risk gating."""

    def __init__(
        self,
        gateway: ExchangeGateway,
        runtime_config: RuntimeConfig,
        positions: Optional[PositionRepository] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._gateway = gateway
        self._config = runtime_config
        self._positions = positions or PositionRepository()
        self._clock = clock or get_clock()

    # --------------------------------------------------------
    # SIZING
    # --------------------------------------------------------

    async def size(self, signal: TradeSignal, venue: VenueKind = VenueKind.SPOT) -> Decimal:
        """
        Order quantity for a signal.

        Uses the signal's quantity verbatim when present, otherwise
        (free balance * default % / 100) / current price, floored
        to 8 decimal places.

        Raises:
            ValidationError if the computed size is not positive
            ExchangeApiError if balance or price cannot be read
        """
        if signal.quantity is not None:
            logger.info(f"Using quantity from signal: {signal.quantity} {signal.symbol}")
            return signal.quantity

        settings = self._config.current()
        balance = await self._gateway.get_balance(signal.quote_asset, venue)
        price = await self._gateway.get_price(signal.symbol, venue)

        if price <= 0:
            raise ValidationError(f"Invalid price for {signal.symbol}: {price}")

        position_value = balance.free * settings.default_position_size_percent / Decimal("100")
        quantity = (position_value / price).quantize(QUANTITY_STEP, rounding=ROUND_FLOOR)

        logger.info(
            f"Calculated position size: {quantity} {signal.symbol} "
            f"(balance={balance.free} {signal.quote_asset}, price={price}, "
            f"size={settings.default_position_size_percent}%)"
        )

        if quantity <= 0:
            raise ValidationError(
                f"Calculated position size is zero for {signal.symbol}",
                details={"available_balance": str(balance.free), "price": str(price)},
            )
        return quantity

    # --------------------------------------------------------
    # GATING
    # --------------------------------------------------------

    async def check_limits(
        self,
        signal: TradeSignal,
        quantity: Decimal,
        bypass_enabled_check: bool = False,
        venue: VenueKind = VenueKind.SPOT,
    ) -> RiskCheckResult:
        """
        Evaluate every gate in order against the current configuration.

        Args:
            signal: Normalized signal
            quantity: Order quantity from size()
            bypass_enabled_check: Skip the trading-enabled gate
                (human-approved pending signals only)
            venue: Venue used for price and balance reads

        Returns:
            RiskCheckResult; reason is set when not allowed
        """
        settings = self._config.current()

        if not bypass_enabled_check and not settings.trading_enabled:
            logger.warning(f"Risk check failed for {signal.symbol}: trading is disabled")
            return RiskCheckResult.reject("Trading is disabled")

        current_price = await self._gateway.get_price(signal.symbol, venue)
        order_value = quantity * current_price

        balance = await self._gateway.get_balance(signal.quote_asset, venue)
        available = balance.free

        context = {
            "current_price": current_price,
            "available_balance": available,
            "order_value": order_value,
        }

        if available <= 0:
            reason = (
                f"Insufficient balance. Required: {order_value:.2f}, "
                f"Available: {available:.2f}"
            )
            logger.warning(f"Risk check failed for {signal.symbol}: {reason}")
            return RiskCheckResult.reject(reason, insufficient_balance=True, **context)

        # Position size
        position_percent = order_value / available * Decimal("100")
        if position_percent > settings.max_position_size_percent:
            reason = (
                f"Position size {position_percent:.2f}% exceeds max "
                f"{settings.max_position_size_percent}%"
            )
            logger.warning(f"Risk check failed for {signal.symbol}: {reason}")
            return RiskCheckResult.reject(reason, **context)

        # Total exposure
        exposure = await self.current_exposure()
        exposure_percent = (exposure + order_value) / available * Decimal("100")
        if exposure_percent > settings.max_total_exposure_percent:
            reason = (
                f"Total exposure {exposure_percent:.2f}% exceeds max "
                f"{settings.max_total_exposure_percent}%"
            )
            logger.warning(f"Risk check failed for {signal.symbol}: {reason}")
            return RiskCheckResult.reject(reason, **context)

        # Daily loss
        daily_pnl = self.daily_realized_pnl()
        if abs(daily_pnl) > settings.max_daily_loss:
            reason = f"Daily loss ${abs(daily_pnl):.2f} exceeds max ${settings.max_daily_loss}"
            logger.warning(f"Risk check failed for {signal.symbol}: {reason}")
            return RiskCheckResult.reject(reason, **context)

        # Balance
        if order_value > available:
            reason = (
                f"Insufficient balance. Required: {order_value:.2f}, "
                f"Available: {available:.2f}"
            )
            logger.warning(f"Risk check failed for {signal.symbol}: {reason}")
            return RiskCheckResult.reject(reason, insufficient_balance=True, **context)

        logger.info(
            f"Risk check passed for {signal.symbol}: position={position_percent:.2f}% "
            f"exposure={exposure_percent:.2f}% daily_pnl={daily_pnl:.2f}"
        )
        return RiskCheckResult(allowed=True, **context)

    # --------------------------------------------------------
    # AGGREGATES
    # --------------------------------------------------------

    async def current_exposure(self) -> Decimal:
        """
        Live notional of all open positions.

        Positions whose price cannot be read are skipped with a warning.
        """
        total = Decimal("0")
        for position in self._positions.list_open():
            venue = VenueKind(position.trading_type)
            try:
                price = await self._gateway.get_price(position.symbol, venue)
            except Exception as e:
                logger.warning(f"Failed to get price for {position.symbol}, excluded from exposure: {e}")
                continue
            total += position.quantity * price
        return total

    def daily_realized_pnl(self) -> Decimal:
        """Realized P&L of positions closed on the current UTC day."""
        return self._positions.realized_pnl_on(self._clock.today())

    async def status(self) -> Dict[str, Any]:
        """Snapshot for the admin status endpoint."""
        settings = self._config.current()
        open_positions = self._positions.list_open()
        return {
            "trading_enabled": settings.trading_enabled,
            "open_positions": len(open_positions),
            "today_pnl": float(self.daily_realized_pnl()),
            "current_exposure": float(await self.current_exposure()),
            "limits": settings.to_dict(),
        }
