"""Async state values and the provider result cache."""

from __future__ import annotations

import enum
import logging
import threading
import time
from datetime import timedelta
from typing import Any, Callable, Generic, Iterator, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E")

Seconds = Union[float, int, timedelta]
Clock = Callable[[], float]


def _seconds(value: Seconds) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class _Status(enum.Enum):
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class AsyncState(Generic[T, E]):
    """The state of an async operation: loading, success or error."""

    __slots__ = ("_status", "_value")

    def __init__(self, status: _Status, value: Any = None) -> None:
        self._status = status
        self._value = value

    @classmethod
    def loading(cls) -> "AsyncState[T, E]":
        return cls(_Status.LOADING)

    @classmethod
    def success(cls, data: T) -> "AsyncState[T, E]":
        return cls(_Status.SUCCESS, data)

    @classmethod
    def failure(cls, error: E) -> "AsyncState[T, E]":
        return cls(_Status.ERROR, error)

    def is_loading(self) -> bool:
        return self._status is _Status.LOADING

    def is_success(self) -> bool:
        return self._status is _Status.SUCCESS

    def is_error(self) -> bool:
        return self._status is _Status.ERROR

    def data(self) -> Optional[T]:
        """The data if successful, otherwise None."""
        return self._value if self._status is _Status.SUCCESS else None

    def error(self) -> Optional[E]:
        """The error if failed, otherwise None."""
        return self._value if self._status is _Status.ERROR else None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AsyncState):
            return NotImplemented
        return self._status is other._status and self._value == other._value

    def __hash__(self) -> int:
        return hash((self._status, self._value))

    def __repr__(self) -> str:
        if self._status is _Status.LOADING:
            return "AsyncState.loading()"
        name = "success" if self._status is _Status.SUCCESS else "failure"
        return f"AsyncState.{name}({self._value!r})"


class CacheEntry:
    """A cached value with its creation time, last access time and reference count."""

    def __init__(self, data: Any, clock: Clock = time.monotonic) -> None:
        self._data = data
        self._clock = clock
        now = clock()
        self._cached_at = now
        self._last_accessed = now
        self._references = 0
        self._lock = threading.Lock()

    @property
    def cached_at(self) -> float:
        return self._cached_at

    @property
    def last_accessed(self) -> float:
        with self._lock:
            return self._last_accessed

    def get(self) -> Any:
        """Return the cached value and record the access."""
        with self._lock:
            self._last_accessed = self._clock()
        return self._data

    def _age(self) -> float:
        return self._clock() - self._cached_at

    def is_expired(self, expiration: Seconds) -> bool:
        return self._age() > _seconds(expiration)

    def is_stale(self, stale_time: Seconds) -> bool:
        return self._age() > _seconds(stale_time)

    def add_reference(self) -> None:
        with self._lock:
            self._references += 1

    def remove_reference(self) -> None:
        with self._lock:
            self._references -= 1

    def reference_count(self) -> int:
        with self._lock:
            return self._references

    def is_unused_for(self, duration: Seconds) -> bool:
        """True if the entry has not been read for longer than ``duration``."""
        return self.time_since_last_access() > _seconds(duration)

    def time_since_last_access(self) -> float:
        with self._lock:
            return self._clock() - self._last_accessed


class ProviderCache:
    """Thread-safe cache of provider results keyed by string."""

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._entries))

    def entry(self, key: str) -> Optional[CacheEntry]:
        """The raw entry for ``key`` without recording an access, or None."""
        with self._lock:
            return self._entries.get(key)

    def get(self, key: str) -> Any:
        """The cached value for ``key``, or None if absent."""
        entry = self.entry(key)
        return None if entry is None else entry.get()

    def get_with_expiration(self, key: str, expiration: Optional[Seconds]) -> Any:
        """The cached value, removing and returning None if it has expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if expiration is not None and entry.is_expired(expiration):
                del self._entries[key]
                logger.debug("Removing expired cache entry for key: %s", key)
                return None
            return entry.get()

    def get_with_staleness(
        self,
        key: str,
        stale_time: Optional[Seconds],
        expiration: Optional[Seconds],
    ) -> Optional[tuple[Any, bool]]:
        """``(value, is_stale)`` for ``key``, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if expiration is not None and entry.is_expired(expiration):
                return None
            is_stale = stale_time is not None and entry.is_stale(stale_time)
            return entry.get(), is_stale

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value, clock=self._clock)

    def remove(self, key: str) -> bool:
        """Remove ``key``; True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate(self, key: str) -> None:
        self.remove(key)

    def remove_if_expired(self, key: str, expiration: Seconds) -> bool:
        """Remove ``key`` if older than ``expiration``; True if it was removed."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.is_expired(expiration):
                return False
            del self._entries[key]
            logger.debug("Removing expired cache entry for key: %s", key)
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def cleanup_unused_entries(self, unused_threshold: Seconds) -> int:
        """Remove entries not read for longer than the threshold; return how many."""
        with self._lock:
            unused = [
                key
                for key, entry in self._entries.items()
                if entry.is_unused_for(unused_threshold)
            ]
            for key in unused:
                del self._entries[key]
                logger.debug("Removed unused cache entry: %s", key)
            return len(unused)

    def evict_lru_entries(self, max_size: int) -> int:
        """Drop least recently used entries until at most ``max_size`` remain."""
        with self._lock:
            excess = len(self._entries) - max_size
            if excess <= 0:
                return 0
            by_idle = sorted(
                self._entries.items(),
                key=lambda item: item[1].time_since_last_access(),
                reverse=True,
            )
            for key, _ in by_idle[:excess]:
                del self._entries[key]
                logger.debug("Removed LRU cache entry: %s", key)
            return excess