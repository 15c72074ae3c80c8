"""
Core Module Package.

Infrastructure shared by every other package.

Components:
- clock: Unified time abstraction
- logging_config: Root logger setup (JSON or text)
"""

from .clock import ClockProtocol, SystemClock, MockClock
from .logging_config import setup_logging

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "setup_logging",
]
