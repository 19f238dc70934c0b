"""The provider interface and the observable signal that holds its state."""

from __future__ import annotations

import abc
import threading
from datetime import timedelta
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class Provider(abc.ABC):
    """An async operation whose results are cached under an id.

    Subclasses implement ``run`` and ``id``. The timing hooks read the class
    attributes ``refresh_every``, ``expires_after`` and ``stale_after``, which
    default to None: no interval refresh, no expiration and no
    stale-while-revalidate. Subclasses may set those attributes or override
    the hooks themselves.
    """

    refresh_every: Optional[timedelta] = None
    expires_after: Optional[timedelta] = None
    stale_after: Optional[timedelta] = None

    @abc.abstractmethod
    async def run(self, param: Any) -> Any:
        """Compute the provider's value for ``param``; raise on failure."""

    @abc.abstractmethod
    def id(self, param: Any) -> str:
        """A cache key unique to this provider and ``param``."""

    def interval(self) -> Optional[timedelta]:
        """How often to refresh automatically, or None."""
        return self.refresh_every

    def cache_expiration(self) -> Optional[timedelta]:
        """How long cached data stays valid, or None."""
        return self.expires_after

    def stale_time(self) -> Optional[timedelta]:
        """After how long cached data is revalidated in the background, or None."""
        return self.stale_after


class Signal(Generic[T]):
    """A thread-safe value that notifies subscribers whenever it is set."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._version = 0
        self._subscribers: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    @property
    def version(self) -> int:
        """How many times the value has been set."""
        with self._lock:
            return self._version

    def read(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        """Replace the value and call every subscriber with it."""
        with self._lock:
            self._value = value
            self._version += 1
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(value)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Call ``callback`` on every set; returns a function that unsubscribes."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def __repr__(self) -> str:
        return f"Signal({self.read()!r})"