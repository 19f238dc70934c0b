"""Reactive contexts that are notified when provider data changes."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Optional


@dataclass(unsafe_hash=True)
class ReactiveContext:
    """A subscriber, identified by ``id``, that can be marked dirty.

    Equality and hashing use ``id`` only, so the same logical context
    registered twice collapses into one entry of a set.
    """

    id: str
    on_dirty: Optional[Callable[["ReactiveContext"], None]] = field(
        default=None, compare=False, repr=False
    )
    dirty_count: int = field(default=0, compare=False)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, compare=False, repr=False, init=False
    )

    @property
    def is_dirty(self) -> bool:
        """True once the context has been marked dirty at least once."""
        return self.dirty_count > 0

    def mark_dirty(self) -> None:
        """Record that the data this context depends on has changed."""
        with self._lock:
            self.dirty_count += 1
        if self.on_dirty is not None:
            self.on_dirty(self)


ReactiveContextSet = set[ReactiveContext]
ReactiveContextRegistry = dict[str, set[ReactiveContext]]
IntervalTaskRegistry = dict[str, timedelta]