"""Per-key locking and a copy-on-write map."""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    # Number of threads that hold or are waiting for the lock.
    waiters: int = 0


class Barrier(Generic[K]):
    """A mutual exclusion lock per key.

    A key may be locked by one thread and unlocked by another.
    """

    def __init__(self) -> None:
        self._mu = threading.Lock()
        self._keys: dict[K, _Entry] = {}

    def lock(self, key: K) -> None:
        """Lock *key*, blocking until it is available."""
        self._enter(key).lock.acquire()

    def unlock(self, key: K) -> None:
        """Unlock *key*; raises RuntimeError if the key is not locked."""
        self._leave(key).lock.release()

    @contextmanager
    def locked(self, key: K) -> Iterator[None]:
        """Hold the lock for *key* for the duration of a with block."""
        self.lock(key)
        try:
            yield
        finally:
            self.unlock(key)

    def _enter(self, key: K) -> _Entry:
        with self._mu:
            entry = self._keys.get(key)
            if entry is None:
                entry = self._keys[key] = _Entry()
            entry.waiters += 1
            return entry

    def _leave(self, key: K) -> _Entry:
        with self._mu:
            entry = self._keys.get(key)
            if entry is None:
                raise RuntimeError("cache: unlock of unlocked Barrier key")
            entry.waiters -= 1
            if entry.waiters == 0:
                del self._keys[key]
            return entry


class Cow(Generic[K, V]):
    """A copy-on-write map optimised for many concurrent reads.

    Every update replaces the underlying dict with a new copy, so reads
    never need a lock. A positive *capacity* limits the number of entries.
    """

    def __init__(self, capacity: int = 0) -> None:
        self._mu = threading.Lock()
        self._data: dict[K, V] = {}
        self._capacity = capacity

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: K) -> V | None:
        """Return the value for *key*, or None if there is none."""
        return self._data.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def _full(self, current: dict[K, V]) -> bool:
        return self._capacity > 0 and len(current) >= self._capacity

    def set(self, key: K, value: V) -> bool:
        """Add or replace an entry; report whether the value was stored.

        At capacity, new keys are refused but existing ones are replaced.
        """
        with self._mu:
            current = self._data
            if self._full(current) and key not in current:
                return False
            updated = dict(current)
            updated[key] = value
            self._data = updated
            return True

    def add(self, key: K, value: V) -> bool:
        """Add an entry only if the key is absent and capacity allows it."""
        with self._mu:
            current = self._data
            if self._full(current) or key in current:
                return False
            updated = dict(current)
            updated[key] = value
            self._data = updated
            return True

    def delete(self, key: K) -> bool:
        """Remove *key* and report whether it was present."""
        with self._mu:
            current = self._data
            if key not in current:
                return False
            updated = dict(current)
            del updated[key]
            self._data = updated
            return True

    def delete_all(self) -> None:
        """Remove all entries."""
        with self._mu:
            self._data = {}

    def delete_func(self, predicate: Callable[[K, V], bool]) -> None:
        """Remove every entry for which predicate(key, value) is true."""
        with self._mu:
            self._data = {k: v for k, v in self._data.items() if not predicate(k, v)}

    def clone(self) -> Cow[K, V]:
        """Return an independent copy with the same capacity."""
        with self._mu:
            copy: Cow[K, V] = Cow(self._capacity)
            copy._data = dict(self._data)
            return copy

    def keys(self) -> list[K]:
        """Return a list of all keys."""
        return list(self._data)