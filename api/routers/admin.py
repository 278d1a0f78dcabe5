"""
Admin API: account, risk configuration, orders, positions,
signals and strategies. Thin pass-throughs to the services.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from api.dependencies import get_services, require_admin
from api.schemas import (
    BalanceResponse,
    BaseResponse,
    OrderResponse,
    PositionResponse,
    RiskConfigResponse,
    SignalList,
    StatusResponse,
    StrategyCreate,
    StrategyResponse,
    StrategyUpdate,
)
from core.exceptions import NotFoundError, ValidationError
from database.models import OrderStatus, PositionStatus, VenueKind
from execution_engine.position_ledger import unrealized_pnl
from signal_intake.schemas import SignalResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


def _venue(value: str) -> VenueKind:
    try:
        return VenueKind(value.upper())
    except ValueError:
        raise ValidationError(f"Venue must be SPOT or FUTURE, got {value!r}")


# =============================================================
# STATUS / ACCOUNT
# =============================================================

@router.get("/status", response_model=StatusResponse)
async def get_status(services=Depends(get_services)):
    return StatusResponse(
        exchange=services.gateway.exchange_id,
        exchange_reachable=await services.gateway.ping(),
        risk=await services.risk_engine.status(),
        pending_signals=services.pending.count_pending(),
        queue=services.queue.stats(),
    )


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    asset: str = Query("USDT", min_length=1, max_length=16),
    venue: str = Query("SPOT"),
    services=Depends(get_services),
):
    kind = _venue(venue)
    balance = await services.gateway.get_balance(asset.upper(), kind)
    return BalanceResponse(
        asset=balance.asset,
        venue=kind.value,
        free=float(balance.free),
        locked=float(balance.locked),
        total=float(balance.total),
    )


# =============================================================
# RISK CONFIGURATION
# =============================================================

@router.get("/risk-config", response_model=RiskConfigResponse)
def get_risk_config(services=Depends(get_services)):
    return RiskConfigResponse(
        config=services.runtime_config.current().to_dict(),
        overrides=services.runtime_config.overrides(),
    )


@router.put("/risk-config", response_model=RiskConfigResponse)
def update_risk_config(
    values: Dict[str, Any] = Body(...),
    services=Depends(get_services),
):
    """Persist overrides; takes effect on the next risk check."""
    if not values:
        raise ValidationError("No configuration values supplied")
    updated = services.runtime_config.update(values)
    logger.info(f"Risk config updated via admin API: {sorted(values)}")
    return RiskConfigResponse(config=updated.to_dict(), overrides=services.runtime_config.overrides())


# =============================================================
# POSITIONS
# =============================================================

@router.get("/positions", response_model=List[PositionResponse])
async def list_positions(
    status: Optional[str] = Query(PositionStatus.OPEN.value),
    limit: int = Query(100, ge=1, le=500),
    services=Depends(get_services),
):
    """Positions; open ones carry live unrealized P&L when a price is available."""
    if status is not None and status.upper() not in {s.value for s in PositionStatus}:
        raise ValidationError(f"Unknown position status: {status}")

    rows = services.ledger.list_positions(status=status.upper() if status else None, limit=limit)
    result = []
    for position in rows:
        response = PositionResponse.model_validate(position)
        if position.status == PositionStatus.OPEN.value:
            try:
                price = await services.gateway.get_price(position.symbol, VenueKind(position.trading_type))
            except Exception as e:
                logger.warning(f"No price for {position.symbol}, unrealized P&L omitted: {e}")
            else:
                response.current_price = float(price)
                response.unrealized_pnl = float(unrealized_pnl(position, Decimal(price)))
        result.append(response)
    return result


@router.post("/positions/{position_id}/close", response_model=PositionResponse)
async def close_position(position_id: int, services=Depends(get_services)):
    position = await services.order_manager.close_position(position_id)
    if position is None:
        raise NotFoundError(f"Position {position_id} not found")
    return PositionResponse.model_validate(position)


# =============================================================
# ORDERS
# =============================================================

@router.get("/orders", response_model=List[OrderResponse])
def list_orders(
    symbol: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    services=Depends(get_services),
):
    if status is not None and status.upper() not in {s.value for s in OrderStatus}:
        raise ValidationError(f"Unknown order status: {status}")
    orders = services.order_manager.list_orders(
        symbol=symbol.upper() if symbol else None,
        status=status.upper() if status else None,
        limit=limit,
    )
    return [OrderResponse.model_validate(o) for o in orders]


@router.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, services=Depends(get_services)):
    return OrderResponse.model_validate(services.order_manager.get_order(order_id))


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(order_id: int, services=Depends(get_services)):
    order = await services.order_manager.cancel_order(order_id)
    return OrderResponse.model_validate(order)


# =============================================================
# SIGNALS
# =============================================================

@router.get("/signals", response_model=SignalList)
def list_signals(
    limit: int = Query(100, ge=1, le=500),
    services=Depends(get_services),
):
    signals = [
        SignalResponse.model_validate(s).model_dump(mode="json")
        for s in services.intake.list_signals(limit)
    ]
    return SignalList(count=len(signals), signals=signals)


# =============================================================
# STRATEGIES
# =============================================================

@router.get("/strategies", response_model=List[StrategyResponse])
def list_strategies(
    type: Optional[str] = Query(None),
    enabled: Optional[bool] = Query(None),
    services=Depends(get_services),
):
    return [StrategyResponse.model_validate(s) for s in services.strategies.list(type=type, enabled=enabled)]


@router.post("/strategies", response_model=StrategyResponse, status_code=201)
def create_strategy(body: StrategyCreate, services=Depends(get_services)):
    strategy = services.strategies.create(**body.model_dump())
    return StrategyResponse.model_validate(strategy)


@router.get("/strategies/{strategy_id}", response_model=StrategyResponse)
def get_strategy(strategy_id: int, services=Depends(get_services)):
    return StrategyResponse.model_validate(services.strategies.get_or_raise(strategy_id))


@router.put("/strategies/{strategy_id}", response_model=StrategyResponse)
def update_strategy(strategy_id: int, body: StrategyUpdate, services=Depends(get_services)):
    strategy = services.strategies.update(strategy_id, **body.model_dump(exclude_unset=True))
    return StrategyResponse.model_validate(strategy)


@router.delete("/strategies/{strategy_id}", response_model=BaseResponse)
def delete_strategy(strategy_id: int, services=Depends(get_services)):
    if not services.strategies.delete(strategy_id):
        raise NotFoundError(f"Strategy {strategy_id} not found")
    return BaseResponse(message="Strategy deleted")


@router.post("/strategies/{strategy_id}/toggle", response_model=StrategyResponse)
def toggle_strategy(strategy_id: int, services=Depends(get_services)):
    return StrategyResponse.model_validate(services.strategies.toggle(strategy_id))
