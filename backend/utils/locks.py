"""Keyed mutual exclusion: one exclusive section per floor plan id."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from typing import Iterator


class _KeyedEntry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = Lock()
        self.holders = 0


class KeyedLockRegistry:
    """Serializes writers of the same key while different keys run in parallel.

    Entries are dropped once nobody holds or waits on them, so the registry
    does not grow with the number of floors ever touched.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._entries: dict[str, _KeyedEntry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _KeyedEntry()
                self._entries[key] = entry
            entry.holders += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)
