"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
- settings: Environment-backed configuration
- logging_setup: Root logger configuration
"""

from .clock import ClockProtocol, SystemClock, MockClock, get_clock
from .exceptions import TradingError
from .settings import Settings, TradingSettings, get_settings, load_settings
from .logging_setup import setup_logging
