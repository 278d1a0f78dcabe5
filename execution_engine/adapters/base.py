"""
Execution Engine - Exchange Gateway Base.

============================================================
PURPOSE
============================================================
Abstract interface for the exchange gateway and the shared
bounded-retry helper.

DESIGN PRINCIPLES:
- Venue-aware (spot and leveraged) interface
- Clean separation from execution logic
- Fully testable with the mock gateway

============================================================
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from ..config import RetryConfig
from ..types import Balance, OrderAck, OrderRequest, VenueKind
from .errors import is_retryable_exception


logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================================
# RETRY HELPER
# ============================================================

async def retry_with_backoff(
    operation: str,
    call: Callable[[], Awaitable[T]],
    retry_config: Optional[RetryConfig] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run a gateway call with bounded retries.

    Implements exponential backoff with bounded attempts.
    Only retries errors classified as transient.

    Args:
        operation: Name used in log lines
        call: Zero-argument coroutine factory
        retry_config: Attempt count and delays
        sleep: Injected for tests

    Returns:
        Result of the first successful attempt

    Raises:
        The last error once attempts are exhausted, or the first
        non-retryable error immediately
    """
    config = retry_config or RetryConfig()

    for attempt in range(config.max_attempts):
        try:
            return await call()
        except Exception as e:
            last_attempt = attempt + 1 >= config.max_attempts
            if last_attempt or not is_retryable_exception(e, config.never_retry_categories):
                raise

            delay = config.delay_for(attempt)
            logger.warning(
                f"{operation} failed (attempt {attempt + 1}/{config.max_attempts}): "
                f"{e}. Retrying in {delay:.1f}s..."
            )
            await sleep(delay)

    raise RuntimeError(f"{operation}: retry loop exited without result")


# ============================================================
# EXCHANGE GATEWAY INTERFACE
# ============================================================

class ExchangeGateway(ABC):
    """
    Abstract base class for exchange gateways.

    All methods are async; venue defaults to spot.
    """

    @property
    @abstractmethod
    def exchange_id(self) -> str:
        """Exchange identifier."""
        pass

    # --------------------------------------------------------
    # MARKET DATA / ACCOUNT
    # --------------------------------------------------------

    @abstractmethod
    async def get_price(self, symbol: str, venue: VenueKind = VenueKind.SPOT) -> Decimal:
        """Last traded price."""
        pass

    @abstractmethod
    async def get_balance(self, asset: str, venue: VenueKind = VenueKind.SPOT) -> Balance:
        """Free/locked balance; zero balance if the asset is absent."""
        pass

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    @abstractmethod
    async def create_market_order(self, request: OrderRequest) -> OrderAck:
        pass

    @abstractmethod
    async def create_limit_order(self, request: OrderRequest) -> OrderAck:
        """Good-till-cancel limit order; request.price is required."""
        pass

    @abstractmethod
    async def cancel_order(
        self,
        symbol: str,
        exchange_order_id: str,
        venue: VenueKind = VenueKind.SPOT,
    ) -> OrderAck:
        pass

    @abstractmethod
    async def get_order(
        self,
        symbol: str,
        exchange_order_id: str,
        venue: VenueKind = VenueKind.SPOT,
    ) -> OrderAck:
        pass

    @abstractmethod
    async def get_open_orders(
        self,
        symbol: Optional[str] = None,
        venue: VenueKind = VenueKind.SPOT,
    ) -> List[OrderAck]:
        pass

    # --------------------------------------------------------
    # LEVERAGED VENUE
    # --------------------------------------------------------

    @abstractmethod
    async def set_leverage(self, symbol: str, leverage: int) -> None:
        """Must be called before placing a leveraged order."""
        pass

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    @abstractmethod
    async def ping(self) -> bool:
        """True when the exchange answers."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
