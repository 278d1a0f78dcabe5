"""
Signal Intake Package.

============================================================
PURPOSE
============================================================
Receives alerts, rejects duplicates and invalid values,
routes them to a strategy and records them.

============================================================
MODULES
============================================================
- schemas: Webhook body and acknowledgement
- dedup: Fingerprint store with a time window
- strategies: Strategy CRUD and routing
- processor: SignalIntake entry point

============================================================
"""

from .schemas import WebhookSignal, WebhookAck, SignalResponse
from .dedup import DedupStore, InMemoryDedupStore
from .strategies import StrategyService, DEFAULT_AUTOMATIC, DEFAULT_MANUAL
from .processor import SignalIntake, IntakeResult, validate_signal

__all__ = [
    "WebhookSignal",
    "WebhookAck",
    "SignalResponse",
    "DedupStore",
    "InMemoryDedupStore",
    "StrategyService",
    "DEFAULT_AUTOMATIC",
    "DEFAULT_MANUAL",
    "SignalIntake",
    "IntakeResult",
    "validate_signal",
]
