"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the signal execution system.

- Provides clear exception hierarchy
- Maps every error to a machine type and an HTTP status
- Serializes to the public error envelope
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
TradingError (base)
├── ConfigurationError
├── ValidationError
├── DuplicateSignalError
├── RiskLimitExceededError
├── InsufficientBalanceError
├── ExchangeApiError
├── AuthenticationError
├── NotFoundError
├── StrategyInUseError
├── ServiceBusyError
└── LedgerError
    ├── PositionConflictError
    └── PositionSideMismatchError

============================================================
ERROR ENVELOPE
============================================================
{"error": {"type": "...", "message": "...", "details": {...}}}

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Expected outcome, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact operations."""

    CRITICAL = "critical"
    """Ledger or configuration corruption risk."""


# ============================================================
# ERROR TYPES
# ============================================================

class ErrorType(str, Enum):
    """Machine-readable error type carried in the error envelope."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    DUPLICATE_SIGNAL = "DUPLICATE_SIGNAL"
    RISK_LIMIT_EXCEEDED = "RISK_LIMIT_EXCEEDED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    BINANCE_API_ERROR = "BINANCE_API_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    LEDGER_ERROR = "LEDGER_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# ============================================================
# BASE EXCEPTION
# ============================================================

class TradingError(Exception):
    """
    Base exception for all trading system errors.

    All exceptions carry:
    - error_type: machine-readable type for API clients
    - status_code: HTTP status used by the API layer
    - details: structured context for debugging
    - severity: for alerting
    """

    error_type: ErrorType = ErrorType.UNKNOWN_ERROR
    status_code: int = 500
    default_severity: Severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[Severity] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.details = details or {}
        self.severity = severity or self.default_severity
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.details["cause_type"] = type(cause).__name__
            self.details["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize into the public error envelope."""
        body: Dict[str, Any] = {
            "type": self.error_type.value,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return {"error": body}

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        return f"{line} | {ctx_str}" if ctx_str else line


# ============================================================
# INPUT ERRORS
# ============================================================

class ConfigurationError(TradingError):
    """Invalid static or runtime configuration."""

    error_type = ErrorType.CONFIGURATION_ERROR
    status_code = 500
    default_severity = Severity.HIGH

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(message, details=details, **kwargs)


class ValidationError(TradingError):
    """Malformed or incomplete input."""

    error_type = ErrorType.VALIDATION_ERROR
    status_code = 400
    default_severity = Severity.LOW


class DuplicateSignalError(TradingError):
    """Same (action, symbol, order kind) re-sent inside the dedup window."""

    error_type = ErrorType.DUPLICATE_SIGNAL
    status_code = 409
    default_severity = Severity.LOW

    def __init__(self, fingerprint: str, window_ms: int, **kwargs):
        super().__init__(
            f"Duplicate signal detected within {window_ms}ms window",
            details={"fingerprint": fingerprint, "window_ms": window_ms},
            **kwargs,
        )


class AuthenticationError(TradingError):
    """Webhook secret or admin key mismatch."""

    error_type = ErrorType.AUTHENTICATION_ERROR
    status_code = 401
    default_severity = Severity.MEDIUM


class NotFoundError(TradingError):
    """Requested row does not exist."""

    error_type = ErrorType.NOT_FOUND
    status_code = 404
    default_severity = Severity.LOW


class StrategyInUseError(TradingError):
    """Strategy still referenced by pending signals."""

    error_type = ErrorType.CONFLICT
    status_code = 409
    default_severity = Severity.LOW

    def __init__(self, strategy_id: int, pending_count: int):
        super().__init__(
            "Cannot delete strategy with pending signals",
            details={"strategy_id": strategy_id, "pending_count": pending_count},
        )


class ServiceBusyError(TradingError):
    """Execution queue is full."""

    error_type = ErrorType.SERVICE_UNAVAILABLE
    status_code = 503
    default_severity = Severity.HIGH


# ============================================================
# RISK ERRORS
# ============================================================

class RiskLimitExceededError(TradingError):
    """Order blocked by risk gating. Expected outcome, not a bug."""

    error_type = ErrorType.RISK_LIMIT_EXCEEDED
    status_code = 400
    default_severity = Severity.LOW

    def __init__(self, reason: str, order_id: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        if order_id is not None:
            details["order_id"] = order_id
        super().__init__(reason, details=details, **kwargs)
        self.order_id = order_id


class InsufficientBalanceError(RiskLimitExceededError):
    """Notional value exceeds available balance."""

    error_type = ErrorType.INSUFFICIENT_BALANCE


# ============================================================
# EXCHANGE ERRORS
# ============================================================

class ExchangeApiError(TradingError):
    """Exchange gateway failure, possibly transient."""

    error_type = ErrorType.BINANCE_API_ERROR
    status_code = 502
    default_severity = Severity.HIGH

    def __init__(
        self,
        message: str,
        category: Optional[str] = None,
        exchange_code: Optional[Any] = None,
        retryable: bool = False,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if category:
            details["category"] = category
        if exchange_code is not None:
            details["exchange_code"] = exchange_code
        super().__init__(message, details=details, **kwargs)
        self.category = category
        self.exchange_code = exchange_code
        self.retryable = retryable


# ============================================================
# LEDGER ERRORS
# ============================================================

class LedgerError(TradingError):
    """Position bookkeeping invariant violated."""

    error_type = ErrorType.LEDGER_ERROR
    status_code = 500
    default_severity = Severity.CRITICAL


class PositionConflictError(LedgerError):
    """Attempt to extend a position in the direction opposite to the open one."""

    def __init__(self, symbol: str, open_side: str, requested_side: str):
        super().__init__(
            f"Cannot open {requested_side} on {symbol}: {open_side} position already open",
            details={"symbol": symbol, "open_side": open_side, "requested_side": requested_side},
        )


class PositionSideMismatchError(LedgerError):
    """Reducing fill has the wrong side for the open position."""

    def __init__(self, symbol: str, position_side: str, fill_side: str):
        super().__init__(
            f"{position_side} position on {symbol} cannot be reduced by a {fill_side} fill",
            details={"symbol": symbol, "position_side": position_side, "fill_side": fill_side},
        )


__all__ = [
    "Severity",
    "ErrorType",
    "TradingError",
    "ConfigurationError",
    "ValidationError",
    "DuplicateSignalError",
    "AuthenticationError",
    "NotFoundError",
    "StrategyInUseError",
    "ServiceBusyError",
    "RiskLimitExceededError",
    "InsufficientBalanceError",
    "ExchangeApiError",
    "LedgerError",
    "PositionConflictError",
    "PositionSideMismatchError",
]
