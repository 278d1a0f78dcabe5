"""
Signal Intake - Strategy Service.

============================================================
PURPOSE
============================================================
Named routing rules: an automatic strategy executes its
signals immediately, a manual one queues them for review.

- Names are unique
- A strategy with pending signals cannot be deleted
- Defaults are seeded on an empty table

============================================================
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from core.clock import ClockProtocol, get_clock
from core.exceptions import NotFoundError, StrategyInUseError, ValidationError
from database.engine import DatabasePersistenceError
from database.models import PendingSignalStatus, Strategy, StrategyType, VenueKind
from database.repositories import PendingSignalRepository, StrategyRepository


logger = logging.getLogger(__name__)


DEFAULT_AUTOMATIC = "Default Automatic"
DEFAULT_MANUAL = "Default Manual"
DEFAULT_LEVERAGE = 5

UPDATABLE_FIELDS = ("name", "type", "description", "enabled", "trading_type", "leverage")


class StrategyService:
    """CRUD and routing lookups over strategies."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._strategies = StrategyRepository(session_factory)
        self._pending = PendingSignalRepository(session_factory)
        self._clock = clock or get_clock()

    # --------------------------------------------------------
    # READ
    # --------------------------------------------------------

    def get(self, strategy_id: int) -> Optional[Strategy]:
        return self._strategies.get(strategy_id)

    def get_or_raise(self, strategy_id: int) -> Strategy:
        strategy = self._strategies.get(strategy_id)
        if strategy is None:
            raise NotFoundError(f"Strategy {strategy_id} not found")
        return strategy

    def get_by_name(self, name: str) -> Optional[Strategy]:
        return self._strategies.get_by_name(name)

    def list(self, type: Optional[str] = None, enabled: Optional[bool] = None) -> List[Strategy]:
        if type is not None:
            type = self._validate_type(type)
        return self._strategies.list(type=type, enabled=enabled)

    def resolve(self, name: Optional[str]) -> Optional[Strategy]:
        """
        Strategy that handles a signal.

        A named, enabled strategy wins. Otherwise the enabled
        "Default Automatic" strategy, then the first enabled
        automatic strategy, then None.
        """
        if name:
            strategy = self._strategies.get_by_name(name)
            if strategy is None:
                logger.warning(f"Strategy '{name}' not found, using default")
            elif not strategy.enabled:
                logger.warning(f"Strategy '{name}' is disabled, using default")
            else:
                return strategy

        default = self._strategies.get_by_name(DEFAULT_AUTOMATIC)
        if default is not None and default.enabled:
            return default

        automatic = self._strategies.list(type=StrategyType.AUTOMATIC.value, enabled=True)
        if automatic:
            return automatic[0]

        logger.warning("No strategy found, signal will be processed without strategy")
        return None

    # --------------------------------------------------------
    # WRITE
    # --------------------------------------------------------

    def create(
        self,
        name: str,
        type: str = StrategyType.AUTOMATIC.value,
        description: Optional[str] = None,
        enabled: bool = True,
        trading_type: str = VenueKind.SPOT.value,
        leverage: Optional[int] = None,
    ) -> Strategy:
        """
        Create a strategy.

        Raises:
            ValidationError if the name is empty or taken, or a field is invalid
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Strategy name is required")
        if self._strategies.get_by_name(name) is not None:
            raise ValidationError(f"Strategy '{name}' already exists")

        fields = {
            "name": name,
            "type": self._validate_type(type),
            "description": description,
            "enabled": enabled,
            "trading_type": self._validate_trading_type(trading_type),
            "leverage": self._validate_leverage(leverage if leverage is not None else DEFAULT_LEVERAGE),
        }
        try:
            strategy = self._strategies.create(**fields)
        except DatabasePersistenceError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise ValidationError(f"Strategy '{name}' already exists")
            raise

        logger.info(f"Strategy created: {strategy.name} (id={strategy.id}, type={strategy.type})")
        return strategy

    def update(self, strategy_id: int, **fields: Any) -> Strategy:
        """
        Partial update; None values are left unchanged.

        Raises:
            NotFoundError, ValidationError
        """
        self.get_or_raise(strategy_id)

        changes: Dict[str, Any] = {}
        for key, value in fields.items():
            if key not in UPDATABLE_FIELDS:
                raise ValidationError(f"Unknown strategy field: {key}")
            if value is not None:
                changes[key] = value

        if "name" in changes:
            changes["name"] = str(changes["name"]).strip()
            if not changes["name"]:
                raise ValidationError("Strategy name is required")
            existing = self._strategies.get_by_name(changes["name"])
            if existing is not None and existing.id != strategy_id:
                raise ValidationError(f"Strategy '{changes['name']}' already exists")
        if "type" in changes:
            changes["type"] = self._validate_type(changes["type"])
        if "trading_type" in changes:
            changes["trading_type"] = self._validate_trading_type(changes["trading_type"])
        if "leverage" in changes:
            changes["leverage"] = self._validate_leverage(changes["leverage"])

        if not changes:
            return self.get_or_raise(strategy_id)

        changes["updated_at"] = self._clock.utcnow()
        strategy = self._strategies.update(strategy_id, **changes)
        logger.info(f"Strategy updated: id={strategy_id} fields={sorted(changes)}")
        return strategy

    def delete(self, strategy_id: int) -> bool:
        """
        Delete a strategy.

        Raises:
            StrategyInUseError if it still has pending signals
        """
        pending = self._pending.count(status=PendingSignalStatus.PENDING.value, strategy_id=strategy_id)
        if pending > 0:
            logger.warning(f"Cannot delete strategy {strategy_id}: {pending} pending signals")
            raise StrategyInUseError(strategy_id, pending)

        deleted = self._strategies.delete(strategy_id)
        if deleted:
            logger.info(f"Strategy deleted: id={strategy_id}")
        return deleted

    def toggle(self, strategy_id: int) -> Strategy:
        strategy = self.get_or_raise(strategy_id)
        updated = self._strategies.update(
            strategy_id, enabled=not strategy.enabled, updated_at=self._clock.utcnow()
        )
        logger.info(f"Strategy toggled: id={strategy_id} enabled={updated.enabled}")
        return updated

    def seed_defaults(self) -> int:
        """Create the default strategies when none exist. Returns rows created."""
        if self._strategies.count() > 0:
            return 0

        self._strategies.create(
            name=DEFAULT_AUTOMATIC,
            type=StrategyType.AUTOMATIC.value,
            description="Executes signals immediately",
            enabled=True,
            trading_type=VenueKind.SPOT.value,
            leverage=DEFAULT_LEVERAGE,
        )
        self._strategies.create(
            name=DEFAULT_MANUAL,
            type=StrategyType.MANUAL.value,
            description="Queues signals for manual approval",
            enabled=False,
            trading_type=VenueKind.SPOT.value,
            leverage=DEFAULT_LEVERAGE,
        )
        logger.info("Default strategies seeded")
        return 2

    # --------------------------------------------------------
    # VALIDATION
    # --------------------------------------------------------

    @staticmethod
    def _validate_type(value: str) -> str:
        try:
            return StrategyType(value).value
        except ValueError:
            raise ValidationError(f"Strategy type must be automatic or manual, got {value!r}")

    @staticmethod
    def _validate_trading_type(value: str) -> str:
        try:
            return VenueKind(str(value).upper()).value
        except ValueError:
            raise ValidationError(f"Trading type must be SPOT or FUTURE, got {value!r}")

    @staticmethod
    def _validate_leverage(value: Any) -> int:
        try:
            leverage = int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Leverage must be an integer, got {value!r}")
        if not 1 <= leverage <= 125:
            raise ValidationError(f"Leverage must be between 1 and 125, got {leverage}")
        return leverage
