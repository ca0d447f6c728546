"""In-process locks keyed by apartment id."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, Iterator


@dataclass
class _UnitLock:
    lock: Lock = field(default_factory=Lock)
    holders: int = 0


class UnitLockRegistry:
    """Serializes meter updates per apartment without a global lock.

    Entries are reference counted and dropped once no caller holds or waits
    for them. Cross-process exclusion is provided by the row lock taken on the
    apartment inside the billing transaction.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._locks: Dict[str, _UnitLock] = {}

    @contextmanager
    def hold(self, unit_id: str) -> Iterator[None]:
        key = str(unit_id)
        with self._guard:
            entry = self._locks.setdefault(key, _UnitLock())
            entry.holders += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._locks.pop(key, None)

    def active_keys(self) -> list[str]:
        with self._guard:
            return sorted(self._locks)


UNIT_LOCKS = UnitLockRegistry()
