"""
Per-aggregate mutual exclusion.

Each (kind, id) pair gets its own re-entrant lock, created on first use and
discarded once no thread holds or waits for it.  Unrelated aggregates never
contend.  Lock order used by the services: session or debt first, shift
second.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.refs = 0


class AggregateLocks:
    """Refcounted registry of per-aggregate locks."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[tuple[str, str], _Entry] = {}

    @contextmanager
    def hold(self, kind: str, aggregate_id: str) -> Iterator[None]:
        key = (kind, str(aggregate_id))
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.refs -= 1
                if entry.refs == 0:
                    del self._entries[key]

    def session(self, session_id: str):
        return self.hold("session", session_id)

    def shift(self, shift_id: str):
        return self.hold("shift", shift_id)

    def debt(self, debt_id: str):
        return self.hold("debt", debt_id)

    def operator(self, operator_id: str):
        return self.hold("operator", operator_id)

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
