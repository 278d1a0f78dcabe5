"""
Human Review Package.

Manual approval workflow for signals routed to manual strategies.

Modules:
- service: PendingSignalService state machine and execution outcome
- schemas: API request/response models
- router: Admin endpoints (imported by the API application)
"""

from .service import PendingSignalService, VALID_TRANSITIONS, can_transition

__all__ = ["PendingSignalService", "VALID_TRANSITIONS", "can_transition"]
