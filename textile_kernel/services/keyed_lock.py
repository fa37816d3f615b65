"""
KeyedLock -- in-process mutual exclusion per row identity.

Responsibility:
    Serializes mutations that touch the same (package_no, than_no) (or the
    same customer) inside one process.  Row versioning in the store is
    the cross-process guard; this lock removes the in-process races that
    would otherwise burn the retry budget.

Invariants enforced:
    - Keys of one acquisition are taken in sorted order, so two callers
      locking overlapping key sets cannot deadlock.
    - Acquisition is bounded by a timeout; on expiry every key already
      held by this call is released and LockTimeoutError is raised.
    - Entries are reference counted and dropped once unused.
"""

import threading
from contextlib import contextmanager
from typing import Hashable, Iterable, Iterator

from textile_kernel.exceptions import LockTimeoutError
from textile_kernel.logging_config import get_logger

logger = get_logger("services.keyed_lock")


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.refs = 0


class KeyedLock:
    """Registry of per-key mutexes."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1
            return entry

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            entry = self._entries[key]
            entry.refs -= 1
            if entry.refs == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, keys: Iterable[Hashable], timeout: float | None = None) -> Iterator[None]:
        """
        Hold every key in ``keys`` for the duration of the block.

        Raises:
            LockTimeoutError: A key could not be acquired in time.
        """
        ordered = sorted(set(keys), key=repr)
        wait = self.timeout if timeout is None else timeout
        held: list[Hashable] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                if not entry.lock.acquire(timeout=wait):
                    self._checkin(key)
                    logger.warning(
                        "keyed_lock_timeout",
                        extra={"key": repr(key), "timeout": wait},
                    )
                    raise LockTimeoutError(repr(key), wait)
                held.append(key)
            yield
        finally:
            for key in reversed(held):
                self._entries[key].lock.release()
                self._checkin(key)

    def active_keys(self) -> int:
        """Number of keys currently held or awaited."""
        with self._guard:
            return len(self._entries)
