"""
RecentActionCache -- short-lived memory of action fingerprints.

Responsibility:
    Suppresses the same action submitted twice in quick succession (a
    double tap, a retried webhook).  Entries expire after ``ttl_seconds``
    measured on the injected Clock.

Invariants enforced:
    - ``check_and_record`` is atomic per cache instance.
    - The cache is process-local and not durable.  Exactly-once for
      approvals comes from ApprovalQueue.resolve and for ledger posting
      from the txn_id key, not from here.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta

from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.exceptions import DuplicateSubmissionError
from textile_kernel.logging_config import get_logger

logger = get_logger("services.idempotency_cache")


class RecentActionCache:
    """Fingerprint -> first-seen time, evicted after the TTL."""

    def __init__(self, ttl_seconds: float = 300.0, clock: Clock | None = None, max_entries: int = 10_000):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock or SystemClock()
        self.max_entries = max_entries
        self._seen: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def _evict(self, now: datetime) -> None:
        expired = [k for k, seen in self._seen.items() if now - seen >= self.ttl]
        for key in expired:
            del self._seen[key]
        # Oldest first once over capacity
        overflow = len(self._seen) - self.max_entries
        if overflow > 0:
            for key in sorted(self._seen, key=self._seen.__getitem__)[:overflow]:
                del self._seen[key]

    def check_and_record(self, fingerprint: str) -> None:
        """
        Remember ``fingerprint``.

        Raises:
            DuplicateSubmissionError: Seen within the TTL.
        """
        with self._lock:
            now = self.clock.now()
            self._evict(now)
            if fingerprint in self._seen:
                logger.info("duplicate_submission_suppressed", extra={"fingerprint": fingerprint})
                raise DuplicateSubmissionError(fingerprint)
            self._seen[fingerprint] = now

    def forget(self, fingerprint: str) -> None:
        """Drop a fingerprint so the same action can be resubmitted at once."""
        with self._lock:
            self._seen.pop(fingerprint, None)

    def __contains__(self, fingerprint: str) -> bool:
        with self._lock:
            self._evict(self.clock.now())
            return fingerprint in self._seen

    def __len__(self) -> int:
        with self._lock:
            self._evict(self.clock.now())
            return len(self._seen)
