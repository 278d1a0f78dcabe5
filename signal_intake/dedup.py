"""
Signal Intake - Duplicate Detection.

A fingerprint is remembered for the configured window. The
store is injected into SignalIntake so a shared cache can
replace the in-memory map for multi-instance deployments.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional

from core.clock import ClockProtocol, get_clock


logger = logging.getLogger(__name__)


class DedupStore(ABC):
    """Fingerprint -> last accepted time."""

    window_ms: int

    @abstractmethod
    def is_duplicate(self, fingerprint: str) -> bool:
        """True if the fingerprint was accepted less than one window ago."""

    @abstractmethod
    def mark(self, fingerprint: str) -> None:
        """Record an accepted fingerprint at the current time."""

    @abstractmethod
    def clear(self) -> None:
        ...


class InMemoryDedupStore(DedupStore):
    """Process-local store, pruned on every write."""

    def __init__(self, window_ms: int = 30000, clock: Optional[ClockProtocol] = None):
        if window_ms < 0:
            raise ValueError("window_ms must not be negative")
        self.window_ms = window_ms
        self._clock = clock or get_clock()
        self._seen: Dict[str, datetime] = {}

    def _elapsed_ms(self, since: datetime) -> float:
        return (self._clock.now() - since).total_seconds() * 1000

    def is_duplicate(self, fingerprint: str) -> bool:
        last = self._seen.get(fingerprint)
        if last is None:
            return False
        return self._elapsed_ms(last) < self.window_ms

    def mark(self, fingerprint: str) -> None:
        self._seen[fingerprint] = self._clock.now()
        self._prune()

    def _prune(self) -> None:
        expired = [k for k, t in self._seen.items() if self._elapsed_ms(t) > self.window_ms]
        for key in expired:
            del self._seen[key]
        if expired:
            logger.debug(f"Pruned {len(expired)} expired signal fingerprints")

    def clear(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)
