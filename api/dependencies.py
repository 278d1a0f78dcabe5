"""
FastAPI dependencies: service lookup and authentication.
"""

import hmac
import logging
from typing import Optional, TYPE_CHECKING

from fastapi import Depends, Header, Request

from core.exceptions import AuthenticationError

if TYPE_CHECKING:
    from api.container import TradingServices

logger = logging.getLogger(__name__)


def get_services(request: Request) -> "TradingServices":
    return request.app.state.services


def _matches(provided: Optional[str], expected: str) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def verify_webhook_secret(
    request: Request,
    x_webhook_secret: Optional[str] = Header(None, alias="X-Webhook-Secret"),
    services: "TradingServices" = Depends(get_services),
) -> None:
    """Shared-secret check for the inbound webhook."""
    if not _matches(x_webhook_secret, services.settings.webhook_secret):
        client = request.client.host if request.client else "unknown"
        logger.warning(f"Invalid webhook secret from {client}")
        raise AuthenticationError("Invalid webhook secret")


def require_admin(
    request: Request,
    authorization: Optional[str] = Header(None),
    services: "TradingServices" = Depends(get_services),
) -> str:
    """Bearer token check for the admin API. Returns the caller label."""
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()

    if not _matches(token, services.settings.admin_api_key):
        client = request.client.host if request.client else "unknown"
        logger.warning(f"Invalid admin credentials from {client}")
        raise AuthenticationError("Invalid or missing admin API key")
    return "admin"
