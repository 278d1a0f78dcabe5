"""
Human-in-the-Loop Pending Signal Service.

This service handles:
- Queuing signals of manual strategies for review
- Approve / reject decisions
- Executing approved signals and recording the outcome
- Cleanup of old reviewed signals

State machine:
    pending  -> approved | rejected      (human decision)
    approved -> failed                   (execution outcome)
    approved + order_id                  (execution succeeded)

Only `pending` accepts a decision. Every status write is a
compare-and-set on the expected current status, so a second
approve/reject of the same id is a no-op.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from sqlalchemy.orm import sessionmaker

from core.clock import ClockProtocol, get_clock
from core.exceptions import NotFoundError, ServiceBusyError, TradingError, ValidationError
from database.models import PendingSignal, PendingSignalStatus
from database.repositories import PendingSignalRepository, StrategyRepository
from execution_engine.types import ErrorKind, Ok, TradeSignal

if TYPE_CHECKING:
    from execution_engine.order_manager import OrderManager
    from execution_engine.work_queue import ExecutionQueue

logger = logging.getLogger(__name__)


# =============================================================
# TRANSITIONS
# =============================================================

VALID_TRANSITIONS = {
    PendingSignalStatus.PENDING: {PendingSignalStatus.APPROVED, PendingSignalStatus.REJECTED},
    PendingSignalStatus.APPROVED: {PendingSignalStatus.FAILED},
    PendingSignalStatus.REJECTED: set(),
    PendingSignalStatus.FAILED: set(),
}

CLEANUP_DAYS = 30


def can_transition(current: str, target: PendingSignalStatus) -> bool:
    return target in VALID_TRANSITIONS.get(PendingSignalStatus(current), set())


class PendingSignalService:
    """Service for the manual approval workflow."""

    def __init__(
        self,
        order_manager: "OrderManager",
        queue: Optional["ExecutionQueue"] = None,
        session_factory: Optional[sessionmaker] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._order_manager = order_manager
        self._queue = queue
        self._pending = PendingSignalRepository(session_factory)
        self._strategies = StrategyRepository(session_factory)
        self._clock = clock or get_clock()

    # =========================================================
    # CREATE / READ
    # =========================================================

    def create(self, signal_id: int, strategy_id: int, signal: TradeSignal) -> PendingSignal:
        """Queue a signal for review."""
        pending = self._pending.create(
            strategy_id=strategy_id,
            signal_id=signal_id,
            symbol=signal.symbol,
            action=signal.action.value,
            order_type=signal.order_type.value,
            price=signal.price,
            quantity=signal.quantity,
            signal_data=signal.to_dict(),
            status=PendingSignalStatus.PENDING.value,
            created_at=self._clock.utcnow(),
        )
        logger.info(
            f"Pending signal created: id={pending.id} strategy={strategy_id} "
            f"{signal.action.value} {signal.symbol}"
        )
        return pending

    def get(self, pending_id: int) -> Optional[PendingSignal]:
        return self._pending.get(pending_id)

    def get_or_raise(self, pending_id: int) -> PendingSignal:
        pending = self._pending.get(pending_id)
        if pending is None:
            raise NotFoundError(f"Pending signal {pending_id} not found")
        return pending

    def list(
        self,
        status: Optional[str] = None,
        strategy_id: Optional[int] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Rows with their strategy name, newest first."""
        if status is not None:
            try:
                status = PendingSignalStatus(status).value
            except ValueError:
                raise ValidationError(f"Unknown pending signal status: {status}")
        return self._pending.list(status=status, strategy_id=strategy_id, limit=limit)

    def count_pending(self, strategy_id: Optional[int] = None) -> int:
        return self._pending.count(status=PendingSignalStatus.PENDING.value, strategy_id=strategy_id)

    # =========================================================
    # DECISIONS
    # =========================================================

    async def approve(self, pending_id: int, reviewer: Optional[str] = None) -> PendingSignal:
        """
        Approve a pending signal and schedule its execution.

        No-op returning the current row when it is not pending.

        Raises:
            NotFoundError if the id does not exist
            ServiceBusyError if the execution queue is full; the
                signal is then marked failed
        """
        current = self.get_or_raise(pending_id)
        if not can_transition(current.status, PendingSignalStatus.APPROVED):
            logger.warning(f"Pending signal {pending_id} already reviewed (status={current.status})")
            return current

        approved = self._pending.transition(
            pending_id,
            PendingSignalStatus.PENDING.value,
            status=PendingSignalStatus.APPROVED.value,
            reviewed_at=self._clock.utcnow(),
            reviewed_by=reviewer,
        )
        if approved is None:
            logger.warning(f"Pending signal {pending_id} was reviewed concurrently")
            return self.get_or_raise(pending_id)

        logger.info(f"Pending signal {pending_id} approved by {reviewer or 'unknown'}")

        if self._queue is None:
            await self.process_approval(pending_id)
            return self.get_or_raise(pending_id)

        try:
            self._queue.submit(f"approval-{pending_id}", lambda: self.process_approval(pending_id))
        except ServiceBusyError as e:
            self.mark_failed(pending_id, e.message)
            raise
        return approved

    def reject(self, pending_id: int, reviewer: Optional[str] = None) -> PendingSignal:
        """
        Reject a pending signal. No exchange interaction.

        No-op returning the current row when it is not pending.
        """
        current = self.get_or_raise(pending_id)
        if not can_transition(current.status, PendingSignalStatus.REJECTED):
            logger.warning(f"Pending signal {pending_id} already reviewed (status={current.status})")
            return current

        rejected = self._pending.transition(
            pending_id,
            PendingSignalStatus.PENDING.value,
            status=PendingSignalStatus.REJECTED.value,
            reviewed_at=self._clock.utcnow(),
            reviewed_by=reviewer,
        )
        if rejected is None:
            logger.warning(f"Pending signal {pending_id} was reviewed concurrently")
            return self.get_or_raise(pending_id)

        logger.info(f"Pending signal {pending_id} rejected by {reviewer or 'unknown'}")
        return rejected

    # =========================================================
    # EXECUTION OUTCOME
    # =========================================================

    async def process_approval(self, pending_id: int) -> None:
        """Execute an approved signal and record the outcome."""
        pending = self._pending.get(pending_id)
        if pending is None or pending.status != PendingSignalStatus.APPROVED.value:
            logger.warning(f"Pending signal {pending_id} is not awaiting execution, skipped")
            return

        try:
            signal = TradeSignal.from_dict(pending.signal_data)
            strategy = self._strategies.get(pending.strategy_id) if pending.strategy_id else None
            result = await self._order_manager.execute(
                pending.signal_id,
                signal,
                strategy,
                bypass_enabled_check=True,
                is_manual_approval=True,
            )
        except TradingError as e:
            logger.error(f"Approved signal {pending_id} failed: {e.message}")
            self.mark_failed(pending_id, e.message)
            return
        except Exception as e:
            logger.exception(f"Approved signal {pending_id} failed unexpectedly")
            self.mark_failed(pending_id, str(e) or e.__class__.__name__)
            return

        if isinstance(result, Ok):
            self.attach_order(pending_id, result.order_id)
            return

        if result.kind == ErrorKind.RISK_REJECTED:
            logger.warning(f"Approved signal {pending_id} rejected by risk: {result.detail}")
        self.mark_failed(pending_id, result.detail, order_id=result.order_id)

    def mark_failed(
        self,
        pending_id: int,
        error_message: str,
        order_id: Optional[int] = None,
    ) -> Optional[PendingSignal]:
        """approved -> failed with the error text; never reverts to pending."""
        current = self._pending.get(pending_id)
        if current is None or not can_transition(current.status, PendingSignalStatus.FAILED):
            logger.warning(f"Pending signal {pending_id} not in approved state, failure not recorded")
            return None

        fields: Dict[str, Any] = {
            "status": PendingSignalStatus.FAILED.value,
            "error_message": error_message,
        }
        if order_id is not None:
            fields["order_id"] = order_id

        failed = self._pending.transition(pending_id, PendingSignalStatus.APPROVED.value, **fields)
        if failed is None:
            logger.warning(f"Pending signal {pending_id} not in approved state, failure not recorded")
            return None
        logger.info(f"Pending signal {pending_id} marked as failed: {error_message}")
        return failed

    def attach_order(self, pending_id: int, order_id: int) -> Optional[PendingSignal]:
        updated = self._pending.transition(
            pending_id, PendingSignalStatus.APPROVED.value, order_id=order_id
        )
        if updated is None:
            logger.warning(f"Pending signal {pending_id} not in approved state, order {order_id} not attached")
            return None
        logger.info(f"Pending signal {pending_id} executed as order {order_id}")
        return updated

    # =========================================================
    # MAINTENANCE
    # =========================================================

    def cleanup_old(self, days: int = CLEANUP_DAYS) -> int:
        """Delete reviewed signals older than `days`."""
        cutoff = self._clock.utcnow() - timedelta(days=days)
        deleted = self._pending.delete_reviewed_before(cutoff)
        logger.info(f"Old pending signals cleaned up: deleted={deleted} days_old={days}")
        return deleted
