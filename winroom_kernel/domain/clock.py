"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that domain, service and poller code
    never call ``datetime.now()`` or ``date.today()`` directly.  Every
    cursor, cadence gate, due-date comparison and dedupe-key day is derived
    from an injected Clock.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``now_utc()`` returns a UTC-normalized ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    @abstractmethod
    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic tests.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        fixed_time = fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        if fixed_time.tzinfo is None:
            fixed_time = fixed_time.replace(tzinfo=timezone.utc)
        self._fixed_time = fixed_time
        self._advance_seconds = 0.0

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def now_utc(self) -> datetime:
        return self.now().astimezone(timezone.utc)

    def advance(self, seconds: float = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds
