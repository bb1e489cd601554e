"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Provides the wall-clock source used for freshness checks.

Ledger timestamps are whole Unix seconds, so the clock speaks in
integer seconds. Tests swap in MockClock for deterministic staleness.

============================================================
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional
import threading
import time


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the engine clock."""

    @abstractmethod
    def unix_seconds(self) -> int:
        """Get current Unix time in whole seconds."""
        pass

    def now(self) -> datetime:
        """Get current UTC datetime."""
        return datetime.fromtimestamp(self.unix_seconds(), tz=timezone.utc)

    def age_of(self, timestamp: int) -> int:
        """Seconds elapsed since a ledger timestamp."""
        return self.unix_seconds() - timestamp


class SystemClock(ClockProtocol):
    """Production clock using actual system time."""

    def unix_seconds(self) -> int:
        return int(time.time())


class MockClock(ClockProtocol):
    """
    Mock clock for testing.

    Allows time manipulation for deterministic tests.
    """

    def __init__(self, initial_seconds: int = 1_700_000_000):
        self._seconds = initial_seconds
        self._lock = threading.Lock()

    def unix_seconds(self) -> int:
        with self._lock:
            return self._seconds

    def set_time(self, seconds: int) -> None:
        """Set the current time."""
        with self._lock:
            self._seconds = seconds

    def advance(self, seconds: int) -> None:
        """Advance time by the specified number of seconds."""
        with self._lock:
            self._seconds += seconds


# ============================================================
# GLOBAL CLOCK
# ============================================================

_clock: Optional[ClockProtocol] = None
_clock_lock = threading.Lock()


def get_clock() -> ClockProtocol:
    """Get the global clock instance."""
    global _clock
    with _clock_lock:
        if _clock is None:
            _clock = SystemClock()
        return _clock


def set_clock(clock: Optional[ClockProtocol]) -> None:
    """Set the global clock instance (None resets to system time)."""
    global _clock
    with _clock_lock:
        _clock = clock


@contextmanager
def use_mock_clock(initial_seconds: int = 1_700_000_000) -> Generator[MockClock, None, None]:
    """Context manager to use a mock clock temporarily."""
    global _clock
    original = _clock
    mock = MockClock(initial_seconds)
    set_clock(mock)
    try:
        yield mock
    finally:
        set_clock(original)


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "get_clock",
    "set_clock",
    "use_mock_clock",
]
