"""
Risk Management Package.

Pre-trade risk gating for the execution pipeline.

Modules:
- risk_engine: order sizing and limit checks
- runtime_config: persisted overrides over static thresholds
"""

from .runtime_config import RuntimeConfig, OVERRIDABLE_KEYS
from .risk_engine import RiskEngine, RiskCheckResult
