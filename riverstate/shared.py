"""Process-wide cache, refresh and disposal registries shared by all providers."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from riverstate.cache import ProviderCache
from riverstate.disposal import DisposalRegistry
from riverstate.refresh import RefreshRegistry

_NOT_INITIALIZED = (
    "Global providers not initialized. Call init_global_providers() first."
)


class NotInitializedError(RuntimeError):
    """Raised when the shared registries are used before initialisation."""


@dataclass(frozen=True)
class _Globals:
    cache: ProviderCache
    refresh_registry: RefreshRegistry
    disposal_registry: DisposalRegistry


_globals: Optional[_Globals] = None
_globals_lock = threading.Lock()


def init_global_providers() -> None:
    """Create the shared cache and registries; later calls do nothing."""
    global _globals
    with _globals_lock:
        if _globals is None:
            cache = ProviderCache()
            _globals = _Globals(
                cache=cache,
                refresh_registry=RefreshRegistry(),
                disposal_registry=DisposalRegistry(cache),
            )


def _require() -> _Globals:
    current = _globals
    if current is None:
        raise NotInitializedError(_NOT_INITIALIZED)
    return current


def get_global_cache() -> ProviderCache:
    """The shared provider cache."""
    return _require().cache


def get_global_refresh_registry() -> RefreshRegistry:
    """The shared refresh registry."""
    return _require().refresh_registry


def get_global_disposal_registry() -> DisposalRegistry:
    """The shared disposal registry, bound to the shared cache."""
    return _require().disposal_registry


def is_initialized() -> bool:
    return _globals is not None


def reset_global_providers() -> None:
    """Stop background tasks and forget the shared registries."""
    global _globals
    with _globals_lock:
        current = _globals
        _globals = None
    if current is not None:
        current.refresh_registry.shutdown()
        current.cache.clear()