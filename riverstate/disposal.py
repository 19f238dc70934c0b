"""Delayed disposal of cache entries that nothing references any more."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Optional

from riverstate.cache import ProviderCache, Seconds, _seconds

logger = logging.getLogger(__name__)

_DEFAULT_DISPOSE_DELAY = timedelta(seconds=30)


class DisposalRegistry:
    """Schedules removal of cache entries after a delay, unless still referenced."""

    def __init__(self, cache: Optional[ProviderCache] = None) -> None:
        self._cache = cache
        self._timers: dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule_disposal(self, cache_key: str, dispose_delay: Seconds) -> None:
        """Dispose of ``cache_key`` after ``dispose_delay``, replacing any earlier schedule.

        Does nothing when the registry has no cache.
        """
        cache = self._cache
        if cache is None:
            return
        with self._lock:
            existing = self._timers.pop(cache_key, None)
            if existing is not None:
                existing.cancel()
            timer = threading.Timer(_seconds(dispose_delay), lambda: None)
            timer.function = lambda: self._dispose(cache, cache_key, timer)
            timer.daemon = True
            self._timers[cache_key] = timer
            timer.start()

    def _dispose(
        self, cache: ProviderCache, cache_key: str, timer: threading.Timer
    ) -> None:
        with self._lock:
            if self._timers.get(cache_key) is timer:
                del self._timers[cache_key]
        entry = cache.entry(cache_key)
        if entry is None:
            return
        if entry.reference_count() == 0:
            cache.invalidate(cache_key)
            logger.debug("Disposed provider: %s", cache_key)
        else:
            logger.debug("Disposal skipped (provider in use): %s", cache_key)

    def cancel_disposal(self, cache_key: str) -> None:
        """Cancel a pending disposal of ``cache_key``, if any."""
        with self._lock:
            timer = self._timers.pop(cache_key, None)
        if timer is not None:
            timer.cancel()
            logger.debug("Cancelled disposal for: %s", cache_key)

    def is_scheduled(self, cache_key: str) -> bool:
        with self._lock:
            return cache_key in self._timers

    @staticmethod
    def default_dispose_delay() -> timedelta:
        """The default disposal delay: 30 seconds."""
        return _DEFAULT_DISPOSE_DELAY