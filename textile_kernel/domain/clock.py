"""
Injectable time source.

Stores, the ledger poster and the orchestrator read the date through a
Clock instead of ``datetime.now()``; the recent-action cache reads its
expiry times through one too.  Tests pin time with DeterministicClock and
move it forward with ``advance``.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today_iso(self) -> str:
        """Sale, payment and posting date, YYYY-MM-DD."""
        return self.now().date().isoformat()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Stands still until told to move."""

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or _DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
