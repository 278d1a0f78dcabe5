"""
Database Models - Signal Execution Tables.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for the signal-to-order pipeline.

TABLES:
- signals: every inbound alert, accepted or not
- strategies: named routing rules
- pending_signals: manual-strategy signals awaiting review
- orders: every execution attempt (complete audit log)
- positions: aggregate exposure per symbol
- config: runtime key/value overrides

AUDIT REQUIREMENTS:
- Rejected signals are persisted with their error
- Risk-rejected and gateway-failed orders are persisted
- At most one OPEN position per symbol

============================================================
"""

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .engine import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================
# ENUMS
# =============================================================

class SignalAction(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"
    CLOSE = "close"


class OrderKind(str, enum.Enum):
    """Order kind requested by the alert."""
    MARKET = "market"
    LIMIT = "limit"


class StrategyType(str, enum.Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class VenueKind(str, enum.Enum):
    """Spot or leveraged (futures) trading."""
    SPOT = "SPOT"
    FUTURE = "FUTURE"


class PendingSignalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"


class OrderSide(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, enum.Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LOSS = "STOP_LOSS"
    STOP_LOSS_LIMIT = "STOP_LOSS_LIMIT"


class OrderStatus(str, enum.Enum):
    NEW = "NEW"
    FILLED = "FILLED"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class PositionSide(str, enum.Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class PositionStatus(str, enum.Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


# =============================================================
# SIGNALS
# =============================================================

class Signal(Base):
    """
    One inbound alert.

    Immutable once persisted except processed/order_id/error_message/
    processed_at, which are written once by the resolving component.
    """
    __tablename__ = "signals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(8), nullable=False)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    order_type: Mapped[str] = mapped_column(String(8), nullable=False, default=OrderKind.MARKET.value)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    stop_loss: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    strategy_name: Mapped[Optional[str]] = mapped_column(String(100))
    strategy_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("strategies.id", ondelete="SET NULL"))
    raw_payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    processed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order_id: Mapped[Optional[int]] = mapped_column(Integer)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    received_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False, index=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    def __repr__(self):
        return f"<Signal(id={self.id}, {self.action} {self.symbol} {self.order_type})>"


# =============================================================
# STRATEGIES
# =============================================================

class Strategy(Base):
    """Named routing rule: automatic or human-approved execution."""
    __tablename__ = "strategies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    trading_type: Mapped[str] = mapped_column(String(8), default=VenueKind.SPOT.value, nullable=False)
    leverage: Mapped[int] = mapped_column(Integer, default=5, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    @property
    def is_manual(self) -> bool:
        return self.type == StrategyType.MANUAL.value

    @property
    def is_leveraged(self) -> bool:
        return self.trading_type == VenueKind.FUTURE.value

    def __repr__(self):
        return f"<Strategy(id={self.id}, name={self.name!r}, type={self.type})>"


# =============================================================
# PENDING SIGNALS
# =============================================================

class PendingSignal(Base):
    """Manual-strategy signal awaiting a human decision."""
    __tablename__ = "pending_signals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    strategy_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("strategies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    signal_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("signals.id"))

    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    action: Mapped[str] = mapped_column(String(8), nullable=False)
    order_type: Mapped[str] = mapped_column(String(8), nullable=False, default=OrderKind.MARKET.value)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    signal_data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    status: Mapped[str] = mapped_column(
        String(16), default=PendingSignalStatus.PENDING.value, nullable=False, index=True
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    order_id: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(100))

    def __repr__(self):
        return f"<PendingSignal(id={self.id}, {self.action} {self.symbol}, status={self.status})>"


# =============================================================
# ORDERS
# =============================================================

class Order(Base):
    """
    One exchange order attempt, successful or not.

    Risk-rejected and gateway-failed attempts are stored with
    status REJECTED and an error message.
    """
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    exchange_order_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    side: Mapped[str] = mapped_column(String(4), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    stop_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    filled_quantity: Mapped[Decimal] = mapped_column(Numeric(24, 8), default=Decimal("0"), nullable=False)
    avg_fill_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    commission: Mapped[Decimal] = mapped_column(Numeric(24, 8), default=Decimal("0"), nullable=False)
    commission_asset: Mapped[Optional[str]] = mapped_column(String(16))

    signal_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("signals.id"))
    strategy_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("strategies.id", ondelete="SET NULL"))
    risk_passed: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    trading_type: Mapped[str] = mapped_column(String(8), default=VenueKind.SPOT.value, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<Order(id={self.id}, {self.side} {self.quantity} {self.symbol}, status={self.status})>"


# =============================================================
# POSITIONS
# =============================================================

class Position(Base):
    """
    Aggregate exposure to one symbol.

    Invariant: at most one OPEN row per symbol.
    """
    __tablename__ = "positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    side: Mapped[str] = mapped_column(String(8), nullable=False)
    trading_type: Mapped[str] = mapped_column(String(8), default=VenueKind.SPOT.value, nullable=False)
    leverage: Mapped[Optional[int]] = mapped_column(Integer)

    quantity: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    entry_price: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    exit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    liquidation_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    stop_loss_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    stop_loss_order_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("orders.id"))

    entry_order_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("orders.id"))
    exit_order_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("orders.id"))

    realized_pnl: Mapped[Decimal] = mapped_column(Numeric(24, 8), default=Decimal("0"), nullable=False)
    status: Mapped[str] = mapped_column(String(8), default=PositionStatus.OPEN.value, nullable=False)

    opened_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_positions_symbol_status", "symbol", "status"),
        Index(
            "uq_positions_open_symbol",
            "symbol",
            unique=True,
            sqlite_where=text("status = 'OPEN'"),
            postgresql_where=text("status = 'OPEN'"),
        ),
    )

    def __repr__(self):
        return f"<Position(id={self.id}, {self.side} {self.quantity} {self.symbol}, status={self.status})>"


# =============================================================
# RUNTIME CONFIG
# =============================================================

class ConfigEntry(Base):
    """Persisted runtime override, value stored as JSON."""
    __tablename__ = "config"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<ConfigEntry(key={self.key!r}, value={self.value!r})>"
