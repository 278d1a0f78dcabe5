"""
Service Container.

============================================================
PURPOSE
============================================================
Builds every component once, with its collaborators
injected, and owns their lifecycle:

    settings -> database -> gateway -> runtime config
        -> risk engine / ledger -> order manager
        -> strategies / intake / pending workflow
        -> execution queue

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from core.clock import ClockProtocol, get_clock
from core.settings import Settings, get_settings
from database.engine import initialize_database
from database.repositories import ConfigRepository, PositionRepository
from execution_engine.adapters import ExchangeGateway, create_gateway
from execution_engine.order_manager import OrderManager
from execution_engine.position_ledger import PositionLedger
from execution_engine.types import ExecutionResult, Ok
from execution_engine.work_queue import ExecutionQueue
from human_review.service import PendingSignalService
from risk_management import RiskEngine, RuntimeConfig
from signal_intake import InMemoryDedupStore, IntakeResult, SignalIntake, StrategyService
from signal_intake.dedup import DedupStore


logger = logging.getLogger(__name__)


@dataclass
class TradingServices:
    """Wired application components."""

    settings: Settings
    session_factory: sessionmaker
    clock: ClockProtocol
    gateway: ExchangeGateway
    runtime_config: RuntimeConfig
    risk_engine: RiskEngine
    ledger: PositionLedger
    positions: PositionRepository
    order_manager: OrderManager
    strategies: StrategyService
    intake: SignalIntake
    pending: PendingSignalService
    queue: ExecutionQueue

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def start(self) -> None:
        self.strategies.seed_defaults()
        await self.queue.start()
        logger.info(f"Trading services started (gateway={self.gateway.exchange_id})")

    async def stop(self) -> None:
        await self.queue.stop()
        await self.gateway.close()
        logger.info("Trading services stopped")

    # --------------------------------------------------------
    # SIGNAL DISPATCH
    # --------------------------------------------------------

    def dispatch(self, result: IntakeResult) -> None:
        """
        Route an accepted signal: manual strategies queue it for
        review, everything else is scheduled for execution.

        Raises:
            ServiceBusyError if the execution queue is full
        """
        if result.requires_approval and result.strategy_id is not None:
            self.pending.create(result.signal_id, result.strategy_id, result.signal)
            return

        self.queue.submit(f"signal-{result.signal_id}", lambda: self.execute_signal(result))

    async def execute_signal(self, result: IntakeResult) -> ExecutionResult:
        outcome = await self.order_manager.execute(result.signal_id, result.signal, result.strategy)
        if isinstance(outcome, Ok):
            logger.info(f"Order {outcome.order_id} executed from signal {result.signal_id}")
        else:
            logger.warning(
                f"Signal {result.signal_id} not executed ({outcome.kind.value}): {outcome.detail}"
            )
        return outcome


def build_services(
    settings: Optional[Settings] = None,
    gateway: Optional[ExchangeGateway] = None,
    session_factory: Optional[sessionmaker] = None,
    clock: Optional[ClockProtocol] = None,
    dedup_store: Optional[DedupStore] = None,
) -> TradingServices:
    """
    Wire the application.

    Args:
        settings: Defaults to environment settings
        gateway: Defaults to Binance, or the mock gateway in paper mode
        session_factory: Defaults to the configured database, initialized
        clock: Defaults to the system clock
        dedup_store: Defaults to an in-memory store
    """
    settings = settings or get_settings()
    clock = clock or get_clock()
    session_factory = session_factory or initialize_database(settings.database_url)
    gateway = gateway or create_gateway("mock" if settings.paper_trading else "binance")

    runtime_config = RuntimeConfig(settings.trading, ConfigRepository(session_factory))
    positions = PositionRepository(session_factory)
    risk_engine = RiskEngine(gateway, runtime_config, positions, clock)
    ledger = PositionLedger(session_factory, clock)
    order_manager = OrderManager(gateway, risk_engine, ledger, runtime_config, session_factory, clock)

    strategies = StrategyService(session_factory, clock)
    intake = SignalIntake(
        strategies,
        dedup_store or InMemoryDedupStore(settings.duplicate_window_ms, clock),
        session_factory,
        clock,
    )
    queue = ExecutionQueue(settings.queue_size, settings.queue_workers)
    pending = PendingSignalService(order_manager, queue, session_factory, clock)

    return TradingServices(
        settings=settings,
        session_factory=session_factory,
        clock=clock,
        gateway=gateway,
        runtime_config=runtime_config,
        risk_engine=risk_engine,
        ledger=ledger,
        positions=positions,
        order_manager=order_manager,
        strategies=strategies,
        intake=intake,
        pending=pending,
        queue=queue,
    )
