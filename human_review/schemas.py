"""
Pydantic Schemas for the pending signal review endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


# =============================================================
# ENUMS
# =============================================================

class PendingStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"


# =============================================================
# REQUESTS
# =============================================================

class ReviewDecision(BaseModel):
    """Body of approve / reject calls."""
    reviewed_by: Optional[str] = Field(None, max_length=100)


# =============================================================
# RESPONSES
# =============================================================

class PendingSignalResponse(BaseModel):
    """One pending signal."""
    id: int
    strategy_id: Optional[int] = None
    strategy_name: Optional[str] = None
    signal_id: Optional[int] = None
    symbol: str
    action: str
    order_type: str
    price: Optional[float] = None
    quantity: Optional[float] = None
    signal_data: Dict[str, Any]
    status: PendingStatusEnum
    error_message: Optional[str] = None
    order_id: Optional[int] = None
    created_at: datetime
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_row(cls, pending, strategy_name: Optional[str] = None) -> "PendingSignalResponse":
        response = cls.model_validate(pending)
        response.strategy_name = strategy_name
        return response


class PendingSignalList(BaseModel):
    success: bool = True
    count: int
    signals: List[PendingSignalResponse]


class PendingCountResponse(BaseModel):
    success: bool = True
    count: int


class ReviewResult(BaseModel):
    success: bool = True
    message: str
    signal: PendingSignalResponse
