"""
Signal Intake - Processor.

============================================================
PURPOSE
============================================================
First stop for every inbound alert.

FLOW:
1. Parse the raw body into a WebhookSignal
2. Reject duplicates inside the dedup window
3. Validate field values
4. Resolve the routing strategy
5. Persist the Signal row and remember its fingerprint

Any failure still persists the Signal with its error text
before the error is re-raised: a rejected signal is never
silently dropped.

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pydantic
from sqlalchemy.orm import sessionmaker

from core.clock import ClockProtocol, get_clock
from core.exceptions import DuplicateSignalError, TradingError, ValidationError
from database.models import OrderKind, Signal, SignalAction, Strategy
from database.repositories import SignalRepository
from execution_engine.types import TradeSignal

from .dedup import DedupStore, InMemoryDedupStore
from .schemas import WebhookSignal
from .strategies import StrategyService


logger = logging.getLogger(__name__)


@dataclass
class IntakeResult:
    """Outcome of an accepted signal."""

    signal_id: int
    signal: TradeSignal
    strategy: Optional[Strategy] = None

    @property
    def strategy_id(self) -> Optional[int]:
        return self.strategy.id if self.strategy is not None else None

    @property
    def strategy_type(self) -> Optional[str]:
        return self.strategy.type if self.strategy is not None else None

    @property
    def requires_approval(self) -> bool:
        return self.strategy is not None and self.strategy.is_manual


def validate_signal(signal: TradeSignal) -> None:
    """
    Field-level rules beyond the schema.

    Raises:
        ValidationError
    """
    if signal.order_type == OrderKind.LIMIT and not signal.price:
        raise ValidationError("Price is required for limit orders")

    if signal.action == SignalAction.CLOSE:
        return

    if signal.quantity is not None and signal.quantity <= 0:
        raise ValidationError("Quantity must be positive")
    if signal.price is not None and signal.price <= 0:
        raise ValidationError("Price must be positive")
    if signal.stop_loss is not None and signal.stop_loss <= 0:
        raise ValidationError("Stop loss must be positive")


def _schema_error_message(error: pydantic.ValidationError) -> str:
    parts = []
    for item in error.errors():
        field = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{field}: {item.get('msg')}" if field else str(item.get("msg")))
    return "; ".join(parts) or "Invalid signal payload"


# ============================================================
# SIGNAL INTAKE
# ============================================================

class SignalIntake:
    """Validates, deduplicates, routes and records inbound alerts."""

    def __init__(
        self,
        strategies: StrategyService,
        dedup_store: Optional[DedupStore] = None,
        session_factory: Optional[sessionmaker] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._strategies = strategies
        self._clock = clock or get_clock()
        self._dedup = dedup_store or InMemoryDedupStore(clock=self._clock)
        self._signals = SignalRepository(session_factory)

    def submit(self, raw: Dict[str, Any]) -> IntakeResult:
        """
        Accept one alert.

        Raises:
            ValidationError: malformed payload or invalid values
            DuplicateSignalError: same fingerprint inside the window
        """
        raw = raw if isinstance(raw, dict) else {"body": raw}
        signal: Optional[TradeSignal] = None

        try:
            try:
                signal = WebhookSignal.model_validate(raw).to_signal()
            except pydantic.ValidationError as e:
                raise ValidationError(_schema_error_message(e), details={"errors": e.error_count()})

            logger.info(f"Processing signal: {signal.action.value} {signal.symbol} ({signal.order_type.value})")

            if self._dedup.is_duplicate(signal.fingerprint):
                logger.warning(f"Duplicate signal detected: {signal.fingerprint}")
                raise DuplicateSignalError(signal.fingerprint, self._dedup.window_ms)

            validate_signal(signal)
            strategy = self._strategies.resolve(signal.strategy)

            row = self._persist(raw, signal, strategy, error=None)
            self._dedup.mark(signal.fingerprint)

        except TradingError as e:
            logger.error(f"Failed to process signal: {e.message}")
            self._persist(raw, signal, None, error=e.message)
            raise

        result = IntakeResult(signal_id=row.id, signal=signal, strategy=strategy)
        logger.info(
            f"Signal {row.id} accepted: strategy={strategy.name if strategy else None} "
            f"requires_approval={result.requires_approval}"
        )
        return result

    def update_signal_status(
        self,
        signal_id: int,
        order_id: Optional[int],
        error_message: Optional[str] = None,
    ) -> Optional[Signal]:
        """Record the execution outcome; processed is True iff no error."""
        return self._signals.resolve(signal_id, order_id, error_message, self._clock.utcnow())

    def list_signals(self, limit: int = 100) -> List[Signal]:
        return self._signals.list_recent(limit)

    def get_signal(self, signal_id: int) -> Optional[Signal]:
        return self._signals.get(signal_id)

    # --------------------------------------------------------
    # PERSISTENCE
    # --------------------------------------------------------

    def _persist(
        self,
        raw: Dict[str, Any],
        signal: Optional[TradeSignal],
        strategy: Optional[Strategy],
        error: Optional[str],
    ) -> Signal:
        if signal is not None:
            fields = {
                "action": signal.action.value,
                "symbol": signal.symbol,
                "order_type": signal.order_type.value,
                "price": signal.price,
                "quantity": signal.quantity,
                "stop_loss": signal.stop_loss,
                "strategy_name": signal.strategy,
                "raw_payload": signal.to_dict(),
            }
        else:
            # Unparseable body: keep what can be read for the audit trail
            fields = {
                "action": str(raw.get("action") or "")[:8],
                "symbol": str(raw.get("symbol") or "").upper()[:32],
                "order_type": str(raw.get("orderType") or OrderKind.MARKET.value)[:8],
                "strategy_name": str(raw["strategy"])[:100] if raw.get("strategy") else None,
                "raw_payload": _json_safe(raw),
            }

        return self._signals.create(
            strategy_id=strategy.id if strategy is not None else None,
            processed=error is None,
            error_message=error,
            received_at=self._clock.utcnow(),
            **fields,
        )


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
