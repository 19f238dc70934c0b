"""Entry points for consuming providers: cached, reactive, self-refreshing state."""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from typing import Any, Awaitable, Callable, Optional

from riverstate.cache import AsyncState, ProviderCache, _seconds
from riverstate.provider import Provider, Signal
from riverstate.refresh import RefreshRegistry, TaskType
from riverstate.shared import get_global_cache, get_global_refresh_registry
from riverstate.types import ReactiveContext

logger = logging.getLogger(__name__)

_MAX_CACHE_SIZE = 1000
_MIN_CLEANUP_INTERVAL = 30.0
_DEFAULT_EXPIRATION = 3600.0

_context_ids = itertools.count(1)

Job = Callable[[], Awaitable[None]]


def _optional_seconds(value: Any) -> Optional[float]:
    return None if value is None else _seconds(value)


def _current_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class _Spawner:
    """Runs coroutines on the event loop that was current when it was created.

    Calls from other threads are handed to that loop; without a usable loop
    each job runs on its own background thread.
    """

    def __init__(self) -> None:
        self._loop = _current_loop()
        self._tasks: set[asyncio.Task[None]] = set()

    def spawn(self, job: Job) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            if _current_loop() is loop:
                task = loop.create_task(job())
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                return
            if loop.is_running():
                coro = job()
                try:
                    asyncio.run_coroutine_threadsafe(coro, loop)
                    return
                except RuntimeError:
                    coro.close()
        threading.Thread(target=lambda: asyncio.run(job()), daemon=True).start()


async def _execute(provider: Provider, param: Any) -> AsyncState:
    try:
        return AsyncState.success(await provider.run(param))
    except Exception as exc:  # provider failures become error states
        return AsyncState.failure(exc)


def _check_and_handle_swr(
    provider: Provider,
    param: Any,
    cache_key: str,
    cache: ProviderCache,
    refresh_registry: RefreshRegistry,
    spawner: _Spawner,
) -> None:
    stale_time = _optional_seconds(provider.stale_time())
    if stale_time is None:
        return
    expiration = _optional_seconds(provider.cache_expiration())
    entry = cache.entry(cache_key)
    if entry is None:
        return
    if (
        not entry.is_stale(stale_time)
        or entry.is_expired(expiration if expiration is not None else _DEFAULT_EXPIRATION)
        or refresh_registry.is_revalidation_in_progress(cache_key)
    ):
        return
    if not refresh_registry.start_revalidation(cache_key):
        return
    logger.debug("Data is stale for key: %s - revalidating in background", cache_key)

    async def revalidate() -> None:
        try:
            cache.set(cache_key, await _execute(provider, param))
        finally:
            refresh_registry.complete_revalidation(cache_key)
        refresh_registry.trigger_refresh(cache_key)
        logger.debug("Background revalidation completed for key: %s", cache_key)

    spawner.spawn(revalidate)


def _check_and_handle_cache_expiration(
    expiration: Optional[float],
    cache_key: str,
    cache: ProviderCache,
    refresh_registry: RefreshRegistry,
) -> None:
    if expiration is None:
        return
    if cache.remove_if_expired(cache_key, expiration):
        refresh_registry.trigger_refresh(cache_key)


def _setup_cache_management(
    provider: Provider,
    cache_key: str,
    cache: ProviderCache,
    refresh_registry: RefreshRegistry,
) -> None:
    expiration = _optional_seconds(provider.cache_expiration())
    if expiration is None:
        return
    cleanup_interval = max(expiration / 4, _MIN_CLEANUP_INTERVAL)
    unused_threshold = expiration * 2

    def cleanup() -> None:
        removed = cache.cleanup_unused_entries(unused_threshold)
        if removed:
            logger.debug("Removed %d unused cache entries", removed)
        evicted = cache.evict_lru_entries(_MAX_CACHE_SIZE)
        if evicted:
            logger.debug("Evicted %d entries due to cache size limit", evicted)

    refresh_registry.start_periodic_task(
        f"{cache_key}_cleanup", TaskType.CACHE_CLEANUP, cleanup_interval, cleanup
    )
    logger.debug(
        "Cache management enabled for: %s (cleanup every %ss)", cache_key, cleanup_interval
    )


def _setup_cache_expiration_task(
    provider: Provider,
    cache_key: str,
    cache: ProviderCache,
    refresh_registry: RefreshRegistry,
) -> None:
    expiration = _optional_seconds(provider.cache_expiration())
    if expiration is None:
        return

    def check() -> None:
        if cache.remove_if_expired(cache_key, expiration):
            logger.debug("Cache expired for key: %s - refreshing", cache_key)
            refresh_registry.trigger_refresh(cache_key)

    refresh_registry.start_periodic_task(
        cache_key, TaskType.CACHE_EXPIRATION, expiration / 4, check
    )


def _setup_interval_task(
    provider: Provider,
    param: Any,
    cache_key: str,
    cache: ProviderCache,
    refresh_registry: RefreshRegistry,
    spawner: _Spawner,
) -> None:
    interval = _optional_seconds(provider.interval())
    if interval is None:
        return

    async def refresh() -> None:
        cache.set(cache_key, await _execute(provider, param))
        refresh_registry.trigger_refresh(cache_key)

    refresh_registry.start_interval_task(cache_key, interval, lambda: spawner.spawn(refresh))


def _setup_stale_check_task(
    provider: Provider,
    param: Any,
    cache_key: str,
    cache: ProviderCache,
    refresh_registry: RefreshRegistry,
    spawner: _Spawner,
) -> None:
    stale_time = _optional_seconds(provider.stale_time())
    if stale_time is None:
        return
    refresh_registry.start_stale_check_task(
        cache_key,
        stale_time,
        lambda: _check_and_handle_swr(
            provider, param, cache_key, cache, refresh_registry, spawner
        ),
    )


class _ProviderHook:
    """Keeps one signal in step with the cached result of a provider call."""

    def __init__(self, provider: Provider, param: Any) -> None:
        self.provider = provider
        self.param = param
        self.cache = get_global_cache()
        self.refresh_registry = get_global_refresh_registry()
        self.cache_key = provider.id(param)
        self.state: Signal[AsyncState] = Signal(AsyncState.loading())
        self.spawner = _Spawner()
        self.context = ReactiveContext(
            id=f"{self.cache_key}#{next(_context_ids)}",
            on_dirty=lambda _context: self.execute(),
        )

    def start(self) -> None:
        _setup_cache_management(
            self.provider, self.cache_key, self.cache, self.refresh_registry
        )
        _check_and_handle_cache_expiration(
            _optional_seconds(self.provider.cache_expiration()),
            self.cache_key,
            self.cache,
            self.refresh_registry,
        )
        _check_and_handle_swr(
            self.provider,
            self.param,
            self.cache_key,
            self.cache,
            self.refresh_registry,
            self.spawner,
        )
        self.execute()

    def execute(self) -> None:
        """Serve cached data, or mark loading and run the provider."""
        key = self.cache_key
        logger.debug("Provider executing for key: %s with param: %r", key, self.param)
        self.refresh_registry.subscribe_to_refresh(key, self.context)
        _setup_cache_expiration_task(self.provider, key, self.cache, self.refresh_registry)
        _setup_interval_task(
            self.provider, self.param, key, self.cache, self.refresh_registry, self.spawner
        )
        _setup_stale_check_task(
            self.provider, self.param, key, self.cache, self.refresh_registry, self.spawner
        )

        cached = self.cache.get(key)
        if isinstance(cached, AsyncState):
            logger.debug("Serving cached data for: %s", key)
            self.state.set(cached)
            return

        self.state.set(AsyncState.loading())
        provider, param, cache, state = self.provider, self.param, self.cache, self.state

        async def load() -> None:
            outcome = await _execute(provider, param)
            cache.set(key, outcome)
            logger.debug("Stored new data for: %s", key)
            state.set(outcome)

        self.spawner.spawn(load)


def use_provider(provider: Provider, param: Any = None) -> Signal[AsyncState]:
    """Return a signal holding the provider's state for ``param``.

    Results are cached globally under ``provider.id(param)``; the signal is
    updated when the entry is refreshed, revalidated or re-fetched.
    """
    hook = _ProviderHook(provider, param)
    hook.start()
    return hook.state


def use_provider_cache() -> ProviderCache:
    """The shared provider cache, for manual cache management."""
    return get_global_cache()


def use_invalidate_provider(provider: Provider, param: Any = None) -> Callable[[], None]:
    """A function that drops the cached entry for ``param`` and refreshes its users."""
    cache = get_global_cache()
    refresh_registry = get_global_refresh_registry()
    cache_key = provider.id(param)

    def invalidate() -> None:
        cache.invalidate(cache_key)
        refresh_registry.trigger_refresh(cache_key)

    return invalidate


def use_clear_provider_cache() -> Callable[[], None]:
    """A function that empties the cache and refreshes every known provider."""
    cache = get_global_cache()
    refresh_registry = get_global_refresh_registry()

    def clear() -> None:
        cache.clear()
        refresh_registry.clear_all()

    return clear