"""
Execution Engine - Configuration.

============================================================
PURPOSE
============================================================
Configuration for the exchange gateway.

CRITICAL CONSTRAINTS:
- No blind retries
- Bounded attempts with exponential backoff
- Validation and balance errors are never retried

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import List

from core.settings import env_bool


# ============================================================
# RETRY CONFIGURATION
# ============================================================

@dataclass
class RetryConfig:
    """
    Retry configuration for gateway calls.

    SAFETY: Limited attempts with exponential backoff.
    """

    max_attempts: int = 3
    """Total attempts including the first one."""

    initial_delay_seconds: float = 1.0
    """Delay before the second attempt."""

    max_delay_seconds: float = 30.0
    """Maximum delay between attempts."""

    backoff_multiplier: float = 2.0
    """Exponential backoff multiplier."""

    # SAFETY: Never retry on these
    never_retry_categories: List[str] = field(default_factory=lambda: [
        "INVALID_ORDER",
        "INVALID_QUANTITY",
        "INVALID_PRICE",
        "MIN_NOTIONAL",
        "INSUFFICIENT_FUNDS",
        "INSUFFICIENT_MARGIN",
        "AUTHENTICATION",
        "SYMBOL_NOT_FOUND",
        "ORDER_NOT_FOUND",
    ])
    """Error categories that should never trigger retry."""

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        delay = self.initial_delay_seconds * (self.backoff_multiplier ** attempt)
        return min(delay, self.max_delay_seconds)


# ============================================================
# TIMEOUT CONFIGURATION
# ============================================================

@dataclass
class TimeoutConfig:
    """HTTP timeouts for exchange requests."""

    connection_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 10.0


# ============================================================
# EXCHANGE CONFIGURATION
# ============================================================

@dataclass
class ExchangeConfig:
    """Exchange connection configuration."""

    api_key: str = ""
    api_secret: str = ""

    testnet: bool = True
    """Use testnet endpoints."""

    spot_rest_url: str = "https://api.binance.com"
    spot_testnet_url: str = "https://testnet.binance.vision"
    futures_rest_url: str = "https://fapi.binance.com"
    futures_testnet_url: str = "https://testnet.binancefuture.com"

    recv_window_ms: int = 5000

    @property
    def spot_url(self) -> str:
        return self.spot_testnet_url if self.testnet else self.spot_rest_url

    @property
    def futures_url(self) -> str:
        return self.futures_testnet_url if self.testnet else self.futures_rest_url

    @classmethod
    def from_env(cls) -> "ExchangeConfig":
        return cls(
            api_key=os.getenv("BINANCE_API_KEY", ""),
            api_secret=os.getenv("BINANCE_API_SECRET", ""),
            testnet=env_bool("BINANCE_TESTNET", True),
        )
