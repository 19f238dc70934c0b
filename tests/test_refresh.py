import threading
import time
from datetime import timedelta

import pytest

from riverstate.refresh import RefreshRegistry, TaskType
from riverstate.types import ReactiveContext


@pytest.fixture
def registry():
    reg = RefreshRegistry()
    yield reg
    reg.shutdown()


def _wait_until(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def test_unknown_key_has_zero_refresh_count(registry):
    assert registry.get_refresh_count("missing") == 0


def test_trigger_refresh_increments_counter(registry):
    registry.trigger_refresh("k")
    registry.trigger_refresh("k")
    assert registry.get_refresh_count("k") == 2
    assert registry.get_refresh_count("other") == 0


def test_trigger_refresh_marks_subscribers_dirty(registry):
    ctx = ReactiveContext("c")
    other = ReactiveContext("d")
    registry.subscribe_to_refresh("k", ctx)
    registry.subscribe_to_refresh("other", other)
    registry.trigger_refresh("k")
    assert ctx.is_dirty
    assert ctx.dirty_count == 1
    assert not other.is_dirty


def test_same_context_id_subscribes_once(registry):
    first = ReactiveContext("same")
    second = ReactiveContext("same")
    registry.subscribe_to_refresh("k", first)
    registry.subscribe_to_refresh("k", second)
    registry.trigger_refresh("k")
    assert first.dirty_count + second.dirty_count == 1


def test_on_dirty_callback_may_reenter_registry(registry):
    seen = []
    ctx = ReactiveContext(
        "c", on_dirty=lambda c: seen.append(registry.get_refresh_count("k"))
    )
    registry.subscribe_to_refresh("k", ctx)
    registry.trigger_refresh("k")
    assert seen == [1]


def test_clear_all_refreshes_every_known_key(registry):
    registry.trigger_refresh("a")
    registry.trigger_refresh("b")
    registry.trigger_refresh("b")
    ctx = ReactiveContext("c")
    registry.subscribe_to_refresh("a", ctx)
    registry.clear_all()
    assert registry.get_refresh_count("a") == 2
    assert registry.get_refresh_count("b") == 3
    assert ctx.dirty_count == 1


def test_clear_all_ignores_keys_never_refreshed(registry):
    ctx = ReactiveContext("c")
    registry.subscribe_to_refresh("only_subscribed", ctx)
    registry.clear_all()
    assert registry.get_refresh_count("only_subscribed") == 0
    assert not ctx.is_dirty


def test_revalidation_lifecycle(registry):
    assert not registry.is_revalidation_in_progress("k")
    assert registry.start_revalidation("k") is True
    assert registry.is_revalidation_in_progress("k")
    assert registry.start_revalidation("k") is False
    registry.complete_revalidation("k")
    assert not registry.is_revalidation_in_progress("k")
    assert registry.start_revalidation("k") is True


def test_complete_revalidation_for_unknown_key_is_harmless(registry):
    registry.complete_revalidation("never")
    assert not registry.is_revalidation_in_progress("never")


def test_interval_task_runs_repeatedly(registry):
    calls = []
    registry.start_interval_task("k", 0.01, lambda: calls.append(1))
    assert registry.has_periodic_task("k", TaskType.INTERVAL_REFRESH)
    assert _wait_until(lambda: len(calls) >= 3)


def test_interval_task_accepts_timedelta(registry):
    fired = threading.Event()
    registry.start_interval_task("k", timedelta(milliseconds=10), fired.set)
    assert fired.wait(3)


def test_first_call_waits_one_interval(registry):
    calls = []
    registry.start_interval_task("k", 0.5, lambda: calls.append(1))
    time.sleep(0.05)
    assert calls == []


def test_stop_interval_task_stops_calls(registry):
    calls = []
    registry.start_interval_task("k", 0.01, lambda: calls.append(1))
    assert _wait_until(lambda: len(calls) >= 1)
    registry.stop_interval_task("k")
    assert not registry.has_periodic_task("k", TaskType.INTERVAL_REFRESH)
    time.sleep(0.05)
    settled = len(calls)
    time.sleep(0.1)
    assert len(calls) == settled


def test_shorter_interval_replaces_longer(registry):
    slow_calls = []
    fast_calls = []
    registry.start_interval_task("k", 10, lambda: slow_calls.append(1))
    registry.start_interval_task("k", 0.01, lambda: fast_calls.append(1))
    assert _wait_until(lambda: len(fast_calls) >= 2)
    assert slow_calls == []


def test_longer_interval_keeps_existing_task(registry):
    fast_calls = []
    slow_calls = []
    registry.start_interval_task("k", 0.01, lambda: fast_calls.append(1))
    registry.start_interval_task("k", 10, lambda: slow_calls.append(1))
    assert _wait_until(lambda: len(fast_calls) >= 2)
    assert slow_calls == []


def test_failing_task_keeps_running(registry):
    calls = []

    def task():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    registry.start_interval_task("k", 0.01, task)
    assert _wait_until(lambda: len(calls) >= 3)
    assert registry.has_periodic_task("k", TaskType.INTERVAL_REFRESH) is True


def test_stale_check_task_registered_once_and_stoppable(registry):
    registry.start_stale_check_task("k", 60, lambda: None)
    registry.start_stale_check_task("k", 4, lambda: None)
    assert registry.has_periodic_task("k", TaskType.STALE_CHECK)
    assert not registry.has_periodic_task("k", TaskType.INTERVAL_REFRESH)
    registry.stop_stale_check_task("k")
    assert not registry.has_periodic_task("k", TaskType.STALE_CHECK)


def test_tasks_for_different_types_coexist(registry):
    registry.start_periodic_task("k", TaskType.CACHE_EXPIRATION, 60, lambda: None)
    registry.start_periodic_task("k", TaskType.CACHE_CLEANUP, 60, lambda: None)
    assert registry.has_periodic_task("k", TaskType.CACHE_EXPIRATION)
    assert registry.has_periodic_task("k", TaskType.CACHE_CLEANUP)
    registry.stop_periodic_task("k", TaskType.CACHE_EXPIRATION)
    assert not registry.has_periodic_task("k", TaskType.CACHE_EXPIRATION)
    assert registry.has_periodic_task("k", TaskType.CACHE_CLEANUP)


def test_shutdown_removes_all_tasks(registry):
    registry.start_interval_task("a", 60, lambda: None)
    registry.start_stale_check_task("b", 60, lambda: None)
    registry.shutdown()
    assert not registry.has_periodic_task("a", TaskType.INTERVAL_REFRESH)
    assert not registry.has_periodic_task("b", TaskType.STALE_CHECK)


def test_non_positive_interval_rejected(registry):
    with pytest.raises(ValueError):
        registry.start_interval_task("k", 0, lambda: None)
    assert not registry.has_periodic_task("k", TaskType.INTERVAL_REFRESH)