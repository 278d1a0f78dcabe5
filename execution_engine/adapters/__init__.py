"""
Execution Engine - Adapters Package.

============================================================
PURPOSE
============================================================
Exchange gateway implementations.

AVAILABLE GATEWAYS:
- BinanceGateway: Binance spot and USD-M futures
- MockExchangeGateway: For testing and paper trading

ERROR HANDLING:
- ExchangeError: Classified exchange failure
- ErrorCategory / RetryEligibility: retry decisions

============================================================
"""

from .base import ExchangeGateway, retry_with_backoff
from .binance import BinanceGateway, parse_order_response
from .mock import MockExchangeGateway, MockConfig
from .factory import create_gateway, SUPPORTED_EXCHANGES
from .errors import (
    ExchangeError,
    ErrorCategory,
    RetryEligibility,
    map_binance_error,
    create_network_error,
    create_timeout_error,
    is_retryable_exception,
)

__all__ = [
    "ExchangeGateway",
    "retry_with_backoff",
    "BinanceGateway",
    "parse_order_response",
    "MockExchangeGateway",
    "MockConfig",
    "create_gateway",
    "SUPPORTED_EXCHANGES",
    "ExchangeError",
    "ErrorCategory",
    "RetryEligibility",
    "map_binance_error",
    "create_network_error",
    "create_timeout_error",
    "is_retryable_exception",
]
