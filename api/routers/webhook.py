"""
Inbound webhook and public health check.
"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text

from api.dependencies import get_services, verify_webhook_secret
from core.exceptions import ServiceBusyError, ValidationError
from database.engine import transaction_scope
from signal_intake.schemas import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhook"])


@router.post("/webhook", response_model=WebhookAck, dependencies=[Depends(verify_webhook_secret)])
async def receive_signal(request: Request, services=Depends(get_services)):
    """
    Accept a trading alert.

    The response only means the signal was accepted; the order is
    placed in the background.
    """
    try:
        raw = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be valid JSON")

    client = request.client.host if request.client else "unknown"
    logger.info(f"Webhook received from {client}")

    result = services.intake.submit(raw)

    try:
        services.dispatch(result)
    except ServiceBusyError as e:
        services.intake.update_signal_status(result.signal_id, None, e.message)
        raise

    return WebhookAck(
        message="Signal received and pending manual approval"
        if result.requires_approval
        else "Signal received and processing",
        signalId=result.signal_id,
        strategyType=result.strategy_type,
        requiresApproval=result.requires_approval,
    )


@router.get("/health")
async def health(services=Depends(get_services)):
    """Database and exchange reachability."""
    database_ok = True
    try:
        with transaction_scope(services.session_factory) as session:
            session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database failure: {e}")
        database_ok = False

    exchange_ok = await services.gateway.ping()
    return {
        "status": "ok" if database_ok and exchange_ok else "degraded",
        "database": database_ok,
        "exchange": exchange_ok,
        "timestamp": services.clock.now().isoformat(),
    }
