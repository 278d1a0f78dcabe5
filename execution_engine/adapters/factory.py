"""
Exchange Gateway Factory.

============================================================
PURPOSE
============================================================
Centralized gateway creation.

SUPPORTED EXCHANGES:
- binance: live/testnet Binance spot and futures
- mock: in-process gateway for tests and paper trading

============================================================
"""

import logging
from typing import Optional

from ..config import ExchangeConfig, RetryConfig
from .base import ExchangeGateway
from .binance import BinanceGateway
from .mock import MockConfig, MockExchangeGateway


logger = logging.getLogger(__name__)

SUPPORTED_EXCHANGES = ("binance", "mock")


def create_gateway(
    exchange_id: str = "binance",
    exchange_config: Optional[ExchangeConfig] = None,
    retry_config: Optional[RetryConfig] = None,
    mock_config: Optional[MockConfig] = None,
) -> ExchangeGateway:
    """
    Create an exchange gateway.

    Args:
        exchange_id: "binance" or "mock"
        exchange_config: Credentials and endpoints (binance)
        retry_config: Retry policy (binance)
        mock_config: Prices and balances (mock)

    Raises:
        ValueError for unsupported exchanges
    """
    exchange_id = exchange_id.lower()

    if exchange_id == "binance":
        return BinanceGateway(exchange_config or ExchangeConfig.from_env(), retry_config)
    if exchange_id == "mock":
        logger.warning("Using mock exchange gateway, no real orders will be placed")
        return MockExchangeGateway(mock_config)

    raise ValueError(
        f"Unsupported exchange: {exchange_id}. Supported: {', '.join(SUPPORTED_EXCHANGES)}"
    )
