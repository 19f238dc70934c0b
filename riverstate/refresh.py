"""Refresh counters, reactive subscriptions and periodic background tasks."""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from riverstate.cache import Seconds, _seconds
from riverstate.types import ReactiveContext

logger = logging.getLogger(__name__)

TaskFn = Callable[[], None]

_MAX_CHECK_INTERVAL = 30.0
_MIN_CHECK_INTERVAL = 1.0


class TaskType(enum.Enum):
    """Kinds of periodic work a provider can schedule."""

    INTERVAL_REFRESH = "IntervalRefresh"
    STALE_CHECK = "StaleCheck"
    CACHE_CLEANUP = "CacheCleanup"
    CACHE_EXPIRATION = "CacheExpiration"


_SINGLE_PER_KEY = (TaskType.STALE_CHECK, TaskType.CACHE_EXPIRATION)


def _task_key(key: str, task_type: TaskType) -> str:
    return f"{key}:{task_type.value}"


def _effective_interval(task_type: TaskType, interval: float) -> float:
    if task_type in _SINGLE_PER_KEY:
        return max(min(interval / 4, _MAX_CHECK_INTERVAL), _MIN_CHECK_INTERVAL)
    return interval


class _PeriodicWorker:
    """Calls a function every ``period`` seconds on a daemon thread until stopped.

    The first call happens one period after start; missed ticks are skipped.
    """

    def __init__(self, name: str, period: float, task_fn: TaskFn) -> None:
        self._period = period
        self._task_fn = task_fn
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _run(self) -> None:
        period = self._period
        next_tick = time.monotonic() + period
        while not self._stop.wait(max(0.0, next_tick - time.monotonic())):
            try:
                self._task_fn()
            except Exception:
                logger.exception("Periodic task %s failed", self._thread.name)
            next_tick += period
            now = time.monotonic()
            if next_tick <= now:
                missed = (now - next_tick) // period + 1
                next_tick += missed * period


@dataclass
class _TaskRecord:
    task_type: TaskType
    interval: float
    worker: _PeriodicWorker


class RefreshRegistry:
    """Tracks refreshes per provider key and runs the providers' periodic tasks.

    All state is guarded by locks so it can be used from background threads.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._refresh_counters: dict[str, int] = {}
        self._reactive_contexts: dict[str, set[ReactiveContext]] = {}
        self._periodic_tasks: dict[str, _TaskRecord] = {}
        self._ongoing_revalidations: set[str] = set()

    def get_refresh_count(self, key: str) -> int:
        """How many times ``key`` has been refreshed; 0 if never."""
        with self._lock:
            return self._refresh_counters.get(key, 0)

    def subscribe_to_refresh(self, key: str, reactive_context: ReactiveContext) -> None:
        """Mark ``reactive_context`` dirty whenever ``key`` is refreshed."""
        with self._lock:
            self._reactive_contexts.setdefault(key, set()).add(reactive_context)

    def trigger_refresh(self, key: str) -> None:
        """Bump the refresh counter for ``key`` and mark its subscribers dirty."""
        with self._lock:
            self._refresh_counters[key] = self._refresh_counters.get(key, 0) + 1
            subscribers = list(self._reactive_contexts.get(key, ()))
        for context in subscribers:
            context.mark_dirty()

    def clear_all(self) -> None:
        """Trigger a refresh for every key that has been refreshed before."""
        with self._lock:
            keys = list(self._refresh_counters)
        for key in keys:
            self.trigger_refresh(key)

    def start_periodic_task(
        self,
        key: str,
        task_type: TaskType,
        interval: Seconds,
        task_fn: TaskFn,
    ) -> None:
        """Run ``task_fn`` periodically for ``key``.

        Stale-check and expiration tasks are created once per key. An
        interval-refresh task is replaced only by one with a shorter interval.
        Stale-check and expiration tasks run at a quarter of ``interval``,
        clamped to between 1 and 30 seconds.
        """
        period = _seconds(interval)
        if period <= 0:
            raise ValueError("interval must be positive")
        task_key = _task_key(key, task_type)
        prefix = f"{key}:"
        with self._lock:
            if task_type in _SINGLE_PER_KEY and any(
                name.startswith(prefix) and record.task_type is task_type
                for name, record in self._periodic_tasks.items()
            ):
                return

            existing = self._periodic_tasks.get(task_key)
            if existing is not None:
                if task_type is TaskType.INTERVAL_REFRESH and period < existing.interval:
                    existing.worker.stop()
                    del self._periodic_tasks[task_key]
                else:
                    return

            worker = _PeriodicWorker(
                task_key, _effective_interval(task_type, period), task_fn
            )
            self._periodic_tasks[task_key] = _TaskRecord(task_type, period, worker)
            worker.start()

    def start_interval_task(self, key: str, interval: Seconds, refresh_fn: TaskFn) -> None:
        self.start_periodic_task(key, TaskType.INTERVAL_REFRESH, interval, refresh_fn)

    def start_stale_check_task(
        self, key: str, stale_time: Seconds, stale_check_fn: TaskFn
    ) -> None:
        self.start_periodic_task(key, TaskType.STALE_CHECK, stale_time, stale_check_fn)

    def stop_periodic_task(self, key: str, task_type: TaskType) -> None:
        """Stop and forget the task of ``task_type`` for ``key``, if any."""
        with self._lock:
            record = self._periodic_tasks.pop(_task_key(key, task_type), None)
        if record is not None:
            record.worker.stop()

    def stop_interval_task(self, key: str) -> None:
        self.stop_periodic_task(key, TaskType.INTERVAL_REFRESH)

    def stop_stale_check_task(self, key: str) -> None:
        self.stop_periodic_task(key, TaskType.STALE_CHECK)

    def has_periodic_task(self, key: str, task_type: TaskType) -> bool:
        with self._lock:
            return _task_key(key, task_type) in self._periodic_tasks

    def shutdown(self) -> None:
        """Stop every periodic task."""
        with self._lock:
            records = list(self._periodic_tasks.values())
            self._periodic_tasks.clear()
        for record in records:
            record.worker.stop()

    def is_revalidation_in_progress(self, key: str) -> bool:
        with self._lock:
            return key in self._ongoing_revalidations

    def start_revalidation(self, key: str) -> bool:
        """Mark ``key`` as revalidating; False if it already was."""
        with self._lock:
            if key in self._ongoing_revalidations:
                return False
            self._ongoing_revalidations.add(key)
            return True

    def complete_revalidation(self, key: str) -> None:
        with self._lock:
            self._ongoing_revalidations.discard(key)