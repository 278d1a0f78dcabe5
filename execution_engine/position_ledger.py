"""
Execution Engine - Position Ledger.

============================================================
PURPOSE
============================================================
Maintains at most one OPEN position per symbol from order
fills: opens, re-averages, partially reduces and closes.

============================================================
FILL ROUTING
============================================================
BUY  fill -> open/extend LONG
             (an open SHORT is a conflict: never flipped)
SELL fill -> reduce the open position when one exists
             (a SHORT reduced by SELL is a side mismatch)
          -> otherwise open/extend SHORT on a leveraged venue
          -> otherwise (spot, nothing open) ignored with a warning

Explicit closes (admin close) call reduce() with the closing
side, which is how SHORT positions are bought back.

============================================================
ARITHMETIC
============================================================
Re-average:   entry = (q0*e0 + q*p) / (q0 + q)
Realized P&L: LONG  (exit - entry) * reduced
              SHORT (entry - exit) * reduced
Liquidation:  LONG  entry * (1 - 1/leverage)
              SHORT entry * (1 + 1/leverage)
              computed once at creation, not on re-averaging

Every method runs in one transaction and raises before any
mutation, so a rejected fill leaves the ledger untouched.

============================================================
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session, sessionmaker

from core.clock import ClockProtocol, get_clock
from core.exceptions import PositionConflictError, PositionSideMismatchError, ValidationError
from database.engine import transaction_scope
from database.models import (
    OrderSide,
    Position,
    PositionSide,
    PositionStatus,
    VenueKind,
)


logger = logging.getLogger(__name__)

PRICE_STEP = Decimal("0.00000001")

# Fill side that reduces each position side
CLOSING_SIDE = {
    PositionSide.LONG: OrderSide.SELL,
    PositionSide.SHORT: OrderSide.BUY,
}


def liquidation_price(side: PositionSide, entry_price: Decimal, leverage: int) -> Decimal:
    """Simplified isolated-margin liquidation estimate."""
    factor = Decimal("1") / Decimal(leverage)
    if side == PositionSide.LONG:
        price = entry_price * (Decimal("1") - factor)
    else:
        price = entry_price * (Decimal("1") + factor)
    return price.quantize(PRICE_STEP)


def realized_pnl(side: PositionSide, entry_price: Decimal, exit_price: Decimal, quantity: Decimal) -> Decimal:
    if side == PositionSide.LONG:
        return (exit_price - entry_price) * quantity
    return (entry_price - exit_price) * quantity


def unrealized_pnl(position: Position, current_price: Decimal) -> Decimal:
    """Mark-to-market P&L of the open quantity."""
    return realized_pnl(
        PositionSide(position.side), position.entry_price, current_price, position.quantity
    )


# ============================================================
# POSITION LEDGER
# ============================================================

class PositionLedger:
    """Fill-driven position bookkeeping."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or get_clock()

    # --------------------------------------------------------
    # ENTRY POINT
    # --------------------------------------------------------

    def on_fill(
        self,
        order_id: Optional[int],
        side: OrderSide,
        symbol: str,
        quantity: Decimal,
        fill_price: Decimal,
        venue: VenueKind = VenueKind.SPOT,
        leverage: Optional[int] = None,
        stop_loss_price: Optional[Decimal] = None,
    ) -> Optional[Position]:
        """
        Apply a fully filled order to the ledger.

        BUY opens or extends a LONG. SELL reduces the open
        position and never opens a SHORT, on either venue.

        Returns:
            The created/updated position, or None when the fill
            does not affect the ledger

        Raises:
            PositionConflictError: BUY while a SHORT is open
            PositionSideMismatchError: SELL while a SHORT is open
        """
        self._validate_fill(quantity, fill_price)

        with transaction_scope(self._session_factory) as session:
            open_position = self._get_open(session, symbol)

            if side == OrderSide.SELL:
                if open_position is not None:
                    return self._reduce(session, open_position, order_id, side, quantity, fill_price)
                # SELL fills only close; SHORTs are opened explicitly via open_or_extend
                logger.warning(
                    f"SELL fill on {symbol} ({venue.value}) with no open position, ledger unchanged"
                )
                return None

            return self._open_or_extend(
                session, open_position, order_id, PositionSide.LONG, symbol,
                quantity, fill_price, venue, leverage, stop_loss_price,
            )

    # --------------------------------------------------------
    # EXPLICIT OPERATIONS
    # --------------------------------------------------------

    def open_or_extend(
        self,
        order_id: Optional[int],
        side: PositionSide,
        symbol: str,
        quantity: Decimal,
        fill_price: Decimal,
        venue: VenueKind = VenueKind.SPOT,
        leverage: Optional[int] = None,
        stop_loss_price: Optional[Decimal] = None,
    ) -> Position:
        """
        Open a position or add to the open one on the same side.

        Raises:
            PositionConflictError if the open position is on the other side
        """
        self._validate_fill(quantity, fill_price)
        with transaction_scope(self._session_factory) as session:
            return self._open_or_extend(
                session, self._get_open(session, symbol), order_id, side, symbol,
                quantity, fill_price, venue, leverage, stop_loss_price,
            )

    def reduce(
        self,
        order_id: Optional[int],
        fill_side: OrderSide,
        symbol: str,
        quantity: Decimal,
        fill_price: Decimal,
    ) -> Optional[Position]:
        """
        Reduce or close the open position with a closing fill.

        Raises:
            PositionSideMismatchError if fill_side does not close the position
        """
        self._validate_fill(quantity, fill_price)
        with transaction_scope(self._session_factory) as session:
            position = self._get_open(session, symbol)
            if position is None:
                logger.warning(f"No open position on {symbol} to reduce")
                return None
            return self._reduce(session, position, order_id, fill_side, quantity, fill_price)

    def get_open(self, symbol: str) -> Optional[Position]:
        with transaction_scope(self._session_factory) as session:
            return self._get_open(session, symbol)

    def list_positions(self, status: Optional[str] = None, limit: int = 100) -> List[Position]:
        """Positions newest first, optionally filtered by status."""
        with transaction_scope(self._session_factory) as session:
            query = session.query(Position)
            if status is not None:
                query = query.filter(Position.status == status)
            return query.order_by(desc(Position.opened_at), desc(Position.id)).limit(limit).all()

    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------

    @staticmethod
    def _validate_fill(quantity: Decimal, fill_price: Decimal) -> None:
        if quantity <= 0:
            raise ValidationError(f"Fill quantity must be positive, got {quantity}")
        if fill_price <= 0:
            raise ValidationError(f"Fill price must be positive, got {fill_price}")

    @staticmethod
    def _get_open(session: Session, symbol: str) -> Optional[Position]:
        return (
            session.query(Position)
            .filter(Position.symbol == symbol, Position.status == PositionStatus.OPEN.value)
            .first()
        )

    def _open_or_extend(
        self,
        session: Session,
        position: Optional[Position],
        order_id: Optional[int],
        side: PositionSide,
        symbol: str,
        quantity: Decimal,
        fill_price: Decimal,
        venue: VenueKind,
        leverage: Optional[int],
        stop_loss_price: Optional[Decimal],
    ) -> Position:
        if position is None:
            leveraged = venue == VenueKind.FUTURE and leverage
            position = Position(
                symbol=symbol,
                side=side.value,
                trading_type=venue.value,
                leverage=leverage if leveraged else None,
                quantity=quantity,
                entry_price=fill_price,
                liquidation_price=liquidation_price(side, fill_price, leverage) if leveraged else None,
                stop_loss_price=stop_loss_price,
                entry_order_id=order_id,
                realized_pnl=Decimal("0"),
                status=PositionStatus.OPEN.value,
                opened_at=self._clock.utcnow(),
            )
            session.add(position)
            session.flush()
            logger.info(
                f"Position opened: {side.value} {quantity} {symbol} @ {fill_price} "
                f"(id={position.id}, venue={venue.value})"
            )
            return position

        if position.side != side.value:
            raise PositionConflictError(symbol, position.side, side.value)

        old_qty = position.quantity
        old_entry = position.entry_price
        new_qty = old_qty + quantity
        new_entry = ((old_qty * old_entry + quantity * fill_price) / new_qty).quantize(PRICE_STEP)

        position.quantity = new_qty
        position.entry_price = new_entry
        session.flush()

        logger.info(
            f"Position extended: {side.value} {symbol} qty {old_qty} -> {new_qty}, "
            f"entry {old_entry} -> {new_entry} (id={position.id})"
        )
        return position

    def _reduce(
        self,
        session: Session,
        position: Position,
        order_id: Optional[int],
        fill_side: OrderSide,
        quantity: Decimal,
        fill_price: Decimal,
    ) -> Position:
        position_side = PositionSide(position.side)
        if CLOSING_SIDE[position_side] != fill_side:
            raise PositionSideMismatchError(position.symbol, position.side, fill_side.value)

        open_qty = position.quantity
        reduced = min(quantity, open_qty)
        if quantity > open_qty:
            logger.warning(
                f"Closing fill {quantity} exceeds open {open_qty} on {position.symbol}, "
                f"excess ignored by the ledger"
            )

        pnl = realized_pnl(position_side, position.entry_price, fill_price, reduced)
        position.realized_pnl = (position.realized_pnl or Decimal("0")) + pnl

        if quantity >= open_qty:
            position.quantity = Decimal("0")
            position.status = PositionStatus.CLOSED.value
            position.exit_price = fill_price
            position.exit_order_id = order_id
            position.closed_at = self._clock.utcnow()
            logger.info(
                f"Position closed: {position.side} {position.symbol} @ {fill_price}, "
                f"realized_pnl={position.realized_pnl} (id={position.id})"
            )
        else:
            position.quantity = open_qty - reduced
            logger.info(
                f"Position reduced: {position.side} {position.symbol} qty {open_qty} -> "
                f"{position.quantity}, pnl {pnl} (id={position.id})"
            )

        session.flush()
        return position
