"""
Database Repositories.

============================================================
PURPOSE
============================================================
Short-lived, one-transaction-per-call data access for the
signal execution tables.

RESPONSIBILITIES:
- CRUD over signals, strategies, pending signals, orders,
  positions and config overrides
- Derived aggregates: open positions, today's realized P&L,
  pending counts

Each repository is constructed with a session factory so a
component can be pointed at any database (tests use an
in-memory SQLite factory).

============================================================
"""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import sessionmaker

from .engine import transaction_scope
from .models import (
    ConfigEntry,
    Order,
    PendingSignal,
    PendingSignalStatus,
    Position,
    PositionStatus,
    Signal,
    Strategy,
)


logger = logging.getLogger(__name__)


class _Repository:
    """Shared session-factory plumbing."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    def _scope(self):
        return transaction_scope(self._session_factory)


# =============================================================
# SIGNALS
# =============================================================

class SignalRepository(_Repository):

    def create(self, **fields: Any) -> Signal:
        with self._scope() as session:
            signal = Signal(**fields)
            session.add(signal)
            session.flush()
            return signal

    def get(self, signal_id: int) -> Optional[Signal]:
        with self._scope() as session:
            return session.get(Signal, signal_id)

    def resolve(
        self,
        signal_id: int,
        order_id: Optional[int],
        error_message: Optional[str],
        processed_at: datetime,
    ) -> Optional[Signal]:
        """Write the outcome fields of a signal."""
        with self._scope() as session:
            signal = session.get(Signal, signal_id)
            if signal is None:
                logger.warning(f"Signal {signal_id} not found, outcome not recorded")
                return None
            signal.processed = error_message is None
            signal.order_id = order_id
            signal.error_message = error_message
            signal.processed_at = processed_at
            return signal

    def list_recent(self, limit: int = 50) -> List[Signal]:
        with self._scope() as session:
            return (
                session.query(Signal)
                .order_by(desc(Signal.received_at), desc(Signal.id))
                .limit(limit)
                .all()
            )


# =============================================================
# STRATEGIES
# =============================================================

class StrategyRepository(_Repository):

    def create(self, **fields: Any) -> Strategy:
        with self._scope() as session:
            strategy = Strategy(**fields)
            session.add(strategy)
            session.flush()
            return strategy

    def get(self, strategy_id: int) -> Optional[Strategy]:
        with self._scope() as session:
            return session.get(Strategy, strategy_id)

    def get_by_name(self, name: str) -> Optional[Strategy]:
        with self._scope() as session:
            return session.query(Strategy).filter(Strategy.name == name).first()

    def list(self, type: Optional[str] = None, enabled: Optional[bool] = None) -> List[Strategy]:
        with self._scope() as session:
            query = session.query(Strategy)
            if type is not None:
                query = query.filter(Strategy.type == type)
            if enabled is not None:
                query = query.filter(Strategy.enabled == enabled)
            return query.order_by(Strategy.created_at, Strategy.id).all()

    def update(self, strategy_id: int, **fields: Any) -> Optional[Strategy]:
        with self._scope() as session:
            strategy = session.get(Strategy, strategy_id)
            if strategy is None:
                return None
            for key, value in fields.items():
                setattr(strategy, key, value)
            return strategy

    def delete(self, strategy_id: int) -> bool:
        with self._scope() as session:
            strategy = session.get(Strategy, strategy_id)
            if strategy is None:
                return False
            session.delete(strategy)
            return True

    def count(self) -> int:
        with self._scope() as session:
            return session.query(func.count(Strategy.id)).scalar() or 0


# =============================================================
# PENDING SIGNALS
# =============================================================

class PendingSignalRepository(_Repository):

    def create(self, **fields: Any) -> PendingSignal:
        with self._scope() as session:
            pending = PendingSignal(**fields)
            session.add(pending)
            session.flush()
            return pending

    def get(self, pending_id: int) -> Optional[PendingSignal]:
        with self._scope() as session:
            return session.get(PendingSignal, pending_id)

    def list(
        self,
        status: Optional[str] = None,
        strategy_id: Optional[int] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Pending signals newest first, joined with their strategy name."""
        with self._scope() as session:
            query = (
                session.query(PendingSignal, Strategy.name)
                .outerjoin(Strategy, PendingSignal.strategy_id == Strategy.id)
            )
            if status is not None:
                query = query.filter(PendingSignal.status == status)
            if strategy_id is not None:
                query = query.filter(PendingSignal.strategy_id == strategy_id)
            rows = (
                query.order_by(desc(PendingSignal.created_at), desc(PendingSignal.id))
                .limit(limit)
                .all()
            )
            return [{"pending": pending, "strategy_name": name} for pending, name in rows]

    def transition(
        self,
        pending_id: int,
        from_status: str,
        **fields: Any,
    ) -> Optional[PendingSignal]:
        """
        Update a row only if it is still in `from_status`.

        Returns the updated row, or None when the row is missing or
        already moved on (compare-and-set).
        """
        with self._scope() as session:
            updated = (
                session.query(PendingSignal)
                .filter(PendingSignal.id == pending_id, PendingSignal.status == from_status)
                .update(fields, synchronize_session=False)
            )
            if not updated:
                return None
            return session.get(PendingSignal, pending_id)

    def update(self, pending_id: int, **fields: Any) -> Optional[PendingSignal]:
        with self._scope() as session:
            pending = session.get(PendingSignal, pending_id)
            if pending is None:
                return None
            for key, value in fields.items():
                setattr(pending, key, value)
            return pending

    def count(self, status: Optional[str] = None, strategy_id: Optional[int] = None) -> int:
        with self._scope() as session:
            query = session.query(func.count(PendingSignal.id))
            if status is not None:
                query = query.filter(PendingSignal.status == status)
            if strategy_id is not None:
                query = query.filter(PendingSignal.strategy_id == strategy_id)
            return query.scalar() or 0

    def delete_reviewed_before(self, cutoff: datetime) -> int:
        """Delete terminal rows reviewed before the cutoff."""
        terminal = [
            PendingSignalStatus.APPROVED.value,
            PendingSignalStatus.REJECTED.value,
            PendingSignalStatus.FAILED.value,
        ]
        with self._scope() as session:
            return (
                session.query(PendingSignal)
                .filter(
                    PendingSignal.status.in_(terminal),
                    PendingSignal.reviewed_at.isnot(None),
                    PendingSignal.reviewed_at < cutoff,
                )
                .delete(synchronize_session=False)
            )


# =============================================================
# ORDERS
# =============================================================

class OrderRepository(_Repository):

    def create(self, **fields: Any) -> Order:
        with self._scope() as session:
            order = Order(**fields)
            session.add(order)
            session.flush()
            return order

    def get(self, order_id: int) -> Optional[Order]:
        with self._scope() as session:
            return session.get(Order, order_id)

    def update(self, order_id: int, **fields: Any) -> Optional[Order]:
        with self._scope() as session:
            order = session.get(Order, order_id)
            if order is None:
                return None
            for key, value in fields.items():
                setattr(order, key, value)
            return order

    def list(
        self,
        symbol: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[Order]:
        with self._scope() as session:
            query = session.query(Order)
            if symbol is not None:
                query = query.filter(Order.symbol == symbol)
            if status is not None:
                query = query.filter(Order.status == status)
            return query.order_by(desc(Order.created_at), desc(Order.id)).limit(limit).all()

    def count(self) -> int:
        with self._scope() as session:
            return session.query(func.count(Order.id)).scalar() or 0


# =============================================================
# POSITIONS (read side)
# =============================================================

class PositionRepository(_Repository):

    def get(self, position_id: int) -> Optional[Position]:
        with self._scope() as session:
            return session.get(Position, position_id)

    def get_open(self, symbol: str) -> Optional[Position]:
        with self._scope() as session:
            return (
                session.query(Position)
                .filter(Position.symbol == symbol, Position.status == PositionStatus.OPEN.value)
                .first()
            )

    def list(self, status: Optional[str] = None, limit: int = 100) -> List[Position]:
        with self._scope() as session:
            query = session.query(Position)
            if status is not None:
                query = query.filter(Position.status == status)
            return query.order_by(desc(Position.opened_at), desc(Position.id)).limit(limit).all()

    def list_open(self) -> List[Position]:
        with self._scope() as session:
            return (
                session.query(Position)
                .filter(Position.status == PositionStatus.OPEN.value)
                .all()
            )

    def realized_pnl_on(self, day: date) -> Decimal:
        """Sum of realized P&L of positions closed on the given UTC date."""
        start = datetime.combine(day, time.min)
        end = start + timedelta(days=1)
        with self._scope() as session:
            total = (
                session.query(func.sum(Position.realized_pnl))
                .filter(
                    Position.closed_at.isnot(None),
                    Position.closed_at >= start,
                    Position.closed_at < end,
                )
                .scalar()
            )
            return Decimal(str(total)) if total is not None else Decimal("0")


# =============================================================
# CONFIG OVERRIDES
# =============================================================

class ConfigRepository(_Repository):

    def all(self) -> Dict[str, Any]:
        with self._scope() as session:
            return {entry.key: entry.value for entry in session.query(ConfigEntry).all()}

    def get(self, key: str) -> Optional[ConfigEntry]:
        with self._scope() as session:
            return session.get(ConfigEntry, key)

    def set(self, key: str, value: Any, description: Optional[str] = None) -> ConfigEntry:
        with self._scope() as session:
            entry = session.get(ConfigEntry, key)
            if entry is None:
                entry = ConfigEntry(key=key, value=value, description=description)
                session.add(entry)
            else:
                entry.value = value
                if description is not None:
                    entry.description = description
            session.flush()
            return entry

    def delete(self, key: str) -> bool:
        with self._scope() as session:
            entry = session.get(ConfigEntry, key)
            if entry is None:
                return False
            session.delete(entry)
            return True
