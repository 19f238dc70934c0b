"""Process-wide dependency injection keyed by type."""

from __future__ import annotations

import threading
from typing import Any, Optional, TypeVar

T = TypeVar("T")

_NOT_INITIALIZED = (
    "Dependency registry not initialized. Call init_dependency_injection() first."
)


class DependencyError(Exception):
    """Raised when a dependency cannot be registered or resolved."""


def _type_name(dependency_type: type) -> str:
    return f"{dependency_type.__module__}.{dependency_type.__qualname__}"


class DependencyRegistry:
    """Holds at most one shared instance per type."""

    def __init__(self) -> None:
        self._dependencies: dict[type, Any] = {}
        self._lock = threading.RLock()

    def register(self, dependency: Any) -> None:
        """Register ``dependency`` under its own type."""
        dependency_type = type(dependency)
        with self._lock:
            if dependency_type in self._dependencies:
                raise DependencyError(
                    f"Dependency of type {_type_name(dependency_type)} already registered"
                )
            self._dependencies[dependency_type] = dependency

    def get(self, dependency_type: type[T]) -> T:
        """The instance registered for ``dependency_type``."""
        with self._lock:
            try:
                return self._dependencies[dependency_type]
            except KeyError:
                raise DependencyError(
                    f"Dependency of type {_type_name(dependency_type)} not found"
                ) from None

    def contains(self, dependency_type: type) -> bool:
        with self._lock:
            return dependency_type in self._dependencies

    def clear(self) -> None:
        with self._lock:
            self._dependencies.clear()

    def list_types(self) -> list[str]:
        """A summary of how many dependencies are registered."""
        with self._lock:
            return [f"{len(self._dependencies)} dependencies registered"]


_registry: Optional[DependencyRegistry] = None
_registry_lock = threading.Lock()


def init_dependency_injection() -> None:
    """Create the shared registry if it does not exist yet."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = DependencyRegistry()


def _require_registry(message: str = _NOT_INITIALIZED) -> DependencyRegistry:
    registry = _registry
    if registry is None:
        raise DependencyError(message)
    return registry


def register_dependency(dependency: Any) -> None:
    """Register a shared dependency under its type."""
    _require_registry().register(dependency)


def inject(dependency_type: type[T]) -> T:
    """Return the shared dependency of ``dependency_type``."""
    return _require_registry().get(dependency_type)


def has_dependency(dependency_type: type) -> bool:
    registry = _registry
    return registry is not None and registry.contains(dependency_type)


def clear_dependencies() -> None:
    """Remove every registered dependency."""
    _require_registry("Dependency registry not initialized").clear()