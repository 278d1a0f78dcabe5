"""
Pydantic Schemas for the admin API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================
# COMMON
# =============================================================

class BaseResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


# =============================================================
# ORDERS / POSITIONS
# =============================================================

class OrderResponse(BaseModel):
    id: int
    exchange_order_id: Optional[str] = None
    symbol: str
    side: str
    type: str
    quantity: float
    price: Optional[float] = None
    status: str
    filled_quantity: float
    avg_fill_price: Optional[float] = None
    commission: float
    commission_asset: Optional[str] = None
    signal_id: Optional[int] = None
    strategy_id: Optional[int] = None
    risk_passed: bool
    trading_type: str
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PositionResponse(BaseModel):
    id: int
    symbol: str
    side: str
    trading_type: str
    leverage: Optional[int] = None
    quantity: float
    entry_price: float
    exit_price: Optional[float] = None
    liquidation_price: Optional[float] = None
    stop_loss_price: Optional[float] = None
    entry_order_id: Optional[int] = None
    exit_order_id: Optional[int] = None
    realized_pnl: float
    unrealized_pnl: Optional[float] = None
    current_price: Optional[float] = None
    status: str
    opened_at: datetime
    closed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# =============================================================
# STRATEGIES
# =============================================================

class StrategyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: str = "automatic"
    description: Optional[str] = None
    enabled: bool = True
    trading_type: str = "SPOT"
    leverage: Optional[int] = None


class StrategyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[str] = None
    description: Optional[str] = None
    enabled: Optional[bool] = None
    trading_type: Optional[str] = None
    leverage: Optional[int] = None


class StrategyResponse(BaseModel):
    id: int
    name: str
    type: str
    description: Optional[str] = None
    enabled: bool
    trading_type: str
    leverage: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =============================================================
# RISK / ACCOUNT
# =============================================================

class RiskConfigResponse(BaseModel):
    success: bool = True
    config: Dict[str, Any]
    overrides: Dict[str, Any]


class BalanceResponse(BaseModel):
    success: bool = True
    asset: str
    venue: str
    free: float
    locked: float
    total: float


class StatusResponse(BaseModel):
    success: bool = True
    exchange: str
    exchange_reachable: bool
    risk: Dict[str, Any]
    pending_signals: int
    queue: Dict[str, Any]


class SignalList(BaseModel):
    success: bool = True
    count: int
    signals: List[Dict[str, Any]]
