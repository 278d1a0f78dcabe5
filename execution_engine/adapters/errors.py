"""
Exchange Adapter - Error Handling and Mapping.

============================================================
PURPOSE
============================================================
Standardized error handling for the exchange gateway with:
- Binance error code mapping
- Retry eligibility classification
- Conversion to the system-wide ExchangeApiError

============================================================
ERROR CATEGORIES
============================================================
1. NETWORK         - Connection issues, timeouts
2. RATE_LIMIT      - Too many requests
3. AUTHENTICATION  - Invalid credentials
4. INVALID_ORDER   - Order validation failures
5. INSUFFICIENT    - Insufficient margin/balance
6. EXCHANGE_ERROR  - Exchange internal errors
7. UNKNOWN         - Unclassified errors

============================================================
"""

import logging
from enum import Enum
from typing import Optional, Dict, Any, Tuple
from dataclasses import dataclass

from core.exceptions import ExchangeApiError


logger = logging.getLogger(__name__)


# ============================================================
# ERROR TAXONOMY
# ============================================================

class ErrorCategory(Enum):
    """Standardized error categories."""

    NETWORK = "NETWORK"
    RATE_LIMIT = "RATE_LIMIT"
    AUTHENTICATION = "AUTHENTICATION"
    INVALID_ORDER = "INVALID_ORDER"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INSUFFICIENT_MARGIN = "INSUFFICIENT_MARGIN"
    EXCHANGE_ERROR = "EXCHANGE_ERROR"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    SYMBOL_NOT_FOUND = "SYMBOL_NOT_FOUND"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    INVALID_PRICE = "INVALID_PRICE"
    MIN_NOTIONAL = "MIN_NOTIONAL"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class RetryEligibility(Enum):
    """Whether error is eligible for retry."""

    RETRY = "RETRY"           # Safe to retry
    NO_RETRY = "NO_RETRY"     # Should not retry
    BACKOFF = "BACKOFF"       # Retry with exponential backoff


# ============================================================
# EXCHANGE ERROR
# ============================================================

@dataclass
class ExchangeError:
    """Classified exchange failure."""

    category: ErrorCategory
    code: str
    message: str
    retry_eligible: RetryEligibility

    exchange_code: Optional[str] = None
    http_status: Optional[int] = None
    operation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
            "retry_eligible": self.retry_eligible.value,
            "exchange_code": self.exchange_code,
            "http_status": self.http_status,
            "operation": self.operation,
        }

    def is_retryable(self) -> bool:
        return self.retry_eligible in (RetryEligibility.RETRY, RetryEligibility.BACKOFF)

    def to_exception(self) -> ExchangeApiError:
        """Wrap into the exception raised by gateway calls."""
        return ExchangeApiError(
            self.message,
            category=self.category.value,
            exchange_code=self.exchange_code,
            retryable=self.is_retryable(),
        )

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.code}: {self.message}"


# ============================================================
# BINANCE ERROR MAPPING
# ============================================================

# Binance error codes to unified category
BINANCE_ERROR_MAP: Dict[int, Tuple[ErrorCategory, RetryEligibility]] = {
    # Rate limiting
    -1003: (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),
    -1015: (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),

    # Authentication
    -1002: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    -1022: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    -2014: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    -2015: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),

    # Order validation
    -1013: (ErrorCategory.INVALID_QUANTITY, RetryEligibility.NO_RETRY),
    -1021: (ErrorCategory.TIMEOUT, RetryEligibility.RETRY),
    -1100: (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    -1102: (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    -1111: (ErrorCategory.INVALID_QUANTITY, RetryEligibility.NO_RETRY),
    -1116: (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    -1121: (ErrorCategory.SYMBOL_NOT_FOUND, RetryEligibility.NO_RETRY),

    # Insufficient funds/margin
    -2010: (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY),
    -2018: (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY),
    -2019: (ErrorCategory.INSUFFICIENT_MARGIN, RetryEligibility.NO_RETRY),

    # Order not found
    -2011: (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),
    -2013: (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),

    # Min notional / price filters
    -4164: (ErrorCategory.MIN_NOTIONAL, RetryEligibility.NO_RETRY),
    -4014: (ErrorCategory.INVALID_PRICE, RetryEligibility.NO_RETRY),

    # Exchange internal
    -1000: (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
    -1001: (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
    -1006: (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
    -1007: (ErrorCategory.TIMEOUT, RetryEligibility.RETRY),
}


def map_binance_error(
    code: int,
    message: str,
    http_status: Optional[int] = None,
    operation: Optional[str] = None,
) -> ExchangeError:
    """
    Map Binance error to unified format.

    Args:
        code: Binance error code
        message: Binance error message
        http_status: HTTP status code
        operation: Gateway method that failed

    Returns:
        Unified ExchangeError
    """
    if code in BINANCE_ERROR_MAP:
        category, retry = BINANCE_ERROR_MAP[code]
    elif http_status == 429 or http_status == 418:
        category = ErrorCategory.RATE_LIMIT
        retry = RetryEligibility.BACKOFF
    elif http_status == 403 or http_status == 401:
        category = ErrorCategory.AUTHENTICATION
        retry = RetryEligibility.NO_RETRY
    elif http_status and http_status >= 500:
        category = ErrorCategory.EXCHANGE_ERROR
        retry = RetryEligibility.RETRY
    elif http_status and 400 <= http_status < 500:
        category = ErrorCategory.INVALID_ORDER
        retry = RetryEligibility.NO_RETRY
    else:
        category = ErrorCategory.UNKNOWN
        retry = RetryEligibility.NO_RETRY

    return ExchangeError(
        category=category,
        code=f"BINANCE_{code}",
        message=message,
        retry_eligible=retry,
        exchange_code=str(code),
        http_status=http_status,
        operation=operation,
    )


def create_network_error(message: str, operation: Optional[str] = None) -> ExchangeError:
    """Create network error."""
    return ExchangeError(
        category=ErrorCategory.NETWORK,
        code="BINANCE_NETWORK_ERROR",
        message=message,
        retry_eligible=RetryEligibility.RETRY,
        operation=operation,
    )


def create_timeout_error(timeout_ms: int, operation: Optional[str] = None) -> ExchangeError:
    """Create timeout error."""
    return ExchangeError(
        category=ErrorCategory.TIMEOUT,
        code="BINANCE_TIMEOUT",
        message=f"Request timed out after {timeout_ms}ms",
        retry_eligible=RetryEligibility.RETRY,
        operation=operation,
    )


def is_retryable_exception(exc: Exception, never_retry_categories=()) -> bool:
    """
    Decide whether a failed gateway call may be attempted again.

    ExchangeApiError carries its own classification; any other
    exception (programming error) is never retried.
    """
    if not isinstance(exc, ExchangeApiError):
        return False
    if exc.category in never_retry_categories:
        return False
    return exc.retryable
