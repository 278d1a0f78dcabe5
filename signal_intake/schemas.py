"""
Pydantic Schemas for the inbound webhook.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from database.models import OrderKind, SignalAction
from execution_engine.types import TradeSignal


# =============================================================
# REQUEST
# =============================================================

class WebhookSignal(BaseModel):
    """Alert body as sent by the charting platform."""
    action: SignalAction
    symbol: str = Field(..., min_length=1, max_length=32)
    strategy: Optional[str] = Field(None, max_length=100)
    order_type: OrderKind = Field(OrderKind.MARKET, alias="orderType")
    price: Optional[Decimal] = None
    quantity: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = Field(None, alias="stopLoss")
    message: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("Symbol is required")
        return v

    def to_signal(self) -> TradeSignal:
        return TradeSignal(
            action=self.action,
            symbol=self.symbol,
            order_type=self.order_type,
            price=self.price,
            quantity=self.quantity,
            stop_loss=self.stop_loss,
            strategy=self.strategy,
            message=self.message,
        )


# =============================================================
# RESPONSE
# =============================================================

class WebhookAck(BaseModel):
    """Acknowledgement returned before execution completes."""
    success: bool = True
    message: str
    signalId: int
    strategyType: Optional[str] = None
    requiresApproval: bool = False


class SignalResponse(BaseModel):
    id: int
    action: str
    symbol: str
    order_type: str
    price: Optional[float] = None
    quantity: Optional[float] = None
    stop_loss: Optional[float] = None
    strategy_name: Optional[str] = None
    strategy_id: Optional[int] = None
    processed: bool
    order_id: Optional[int] = None
    error_message: Optional[str] = None
    raw_payload: Dict[str, Any]
    received_at: Any
    processed_at: Optional[Any] = None

    model_config = ConfigDict(from_attributes=True)
