# riverstate

`riverstate` provides cached async *providers*. A provider is an async operation that returns data. Its results are cached in memory under a key, and the library can:

- expire cached results after a set time,
- serve stale data while it revalidates in the background (stale-while-revalidate),
- refresh data on a fixed interval,
- notify subscribers when the data changes.

It also has a small dependency-injection registry keyed by type. Use it for shared services such as API clients or database handles, which don't fit well as provider parameters.

The package has no dependencies outside the standard library.

## Installation

```
pip install riverstate
```

To install with the test tools (pytest and pytest-asyncio):

```
pip install "riverstate[test]"
```

## Modules

| Module | Contents |
| --- | --- |
| `riverstate.cache` | `AsyncState`, `CacheEntry`, `ProviderCache` |
| `riverstate.types` | `ReactiveContext` |
| `riverstate.refresh` | `RefreshRegistry`, `TaskType` |
| `riverstate.disposal` | `DisposalRegistry` |
| `riverstate.shared` | The global cache and registries |
| `riverstate.provider` | `Provider`, `Signal` |
| `riverstate.hooks` | `use_provider` and the cache-management helpers |
| `riverstate.injection` | The dependency registry |

## Global setup

Call `init_global_providers()` once when your application starts, before you use any hook. After that, all hooks share one `ProviderCache`, one `RefreshRegistry` and one `DisposalRegistry`. The disposal registry is bound to the shared cache. Calling `init_global_providers()` again does nothing.

```python
from riverstate.shared import init_global_providers, is_initialized

init_global_providers()
assert is_initialized()
```

These functions return the shared objects:

- `get_global_cache()`
- `get_global_refresh_registry()`
- `get_global_disposal_registry()`

Each of them, and every hook, raises `NotInitializedError` if it is called before initialisation.

`reset_global_providers()` stops all periodic tasks, clears the cache and forgets the shared objects. This is mainly useful in tests.

## Defining a provider

Subclass `Provider` and implement two methods:

- `async run(self, param)` computes the value. Raising an exception signals failure.
- `id(self, param)` returns a cache key that is unique to the provider and the parameter.

Timing is controlled by three hooks:

| Hook | Class attribute it reads | Effect |
| --- | --- | --- |
| `interval()` | `refresh_every` | Re-run the provider at a fixed interval. |
| `cache_expiration()` | `expires_after` | Drop cached data after this long. |
| `stale_time()` | `stale_after` | After this long, keep serving the cached data but revalidate it in the background. |

Each attribute defaults to `None`, which turns the behaviour off. Set the attributes to a `timedelta`, or override the hooks to return a `timedelta` or a number of seconds.

```python
from datetime import timedelta

from riverstate.provider import Provider


class UserProvider(Provider):
    expires_after = timedelta(minutes=5)
    stale_after = timedelta(minutes=1)

    async def run(self, user_id):
        return f"User {user_id}"

    def id(self, user_id):
        return f"user_{user_id}"
```

## Using a provider

`use_provider(provider, param=None)` returns a `Signal` that holds an `AsyncState`.

An `AsyncState` is in one of three states:

| State | Constructor | Test |
| --- | --- | --- |
| loading | `AsyncState.loading()` | `is_loading()` |
| success | `AsyncState.success(data)` | `is_success()` |
| error | `AsyncState.failure(error)` | `is_error()` |

`data()` and `error()` return the value for their state, or `None` otherwise. If `run` raises an exception, the state becomes an error state that carries that exception.

A `Signal` has three methods:

- `read()` returns the current value.
- `set(value)` replaces the value.
- `subscribe(callback)` calls `callback(value)` on every set and returns a function that unsubscribes.

```python
import asyncio

from riverstate.hooks import use_provider
from riverstate.shared import init_global_providers


async def main():
    init_global_providers()
    state = use_provider(UserProvider(), 42)
    state.subscribe(lambda value: print("changed:", value))
    await asyncio.sleep(0.1)
    current = state.read()
    if current.is_success():
        print(current.data())

asyncio.run(main())
```

What `use_provider` does depends on the cache:

- **Cache hit:** the state is set to the cached `AsyncState` straight away.
- **Cache miss:**
  1. The state is set to loading.
  2. The provider runs.
  3. The outcome is stored in the cache.
  4. The signal is set to the outcome.

Where the provider runs:

- If `use_provider` is called while an event loop is running, the provider runs as a task on that loop.
- Otherwise it runs with `asyncio.run` on a background thread.

Each call to `use_provider` subscribes to refresh events for its key. Whenever that key is refreshed, the hook executes again and reads from the cache or re-fetches. This happens on an invalidation, an interval refresh, a finished revalidation or an expiration.

The timing hooks start background tasks on daemon threads. The `RefreshRegistry` creates at most one task of each kind per key.

| Setting | Background task |
| --- | --- |
| `interval()` | Re-runs the provider every interval and refreshes the key. |
| `cache_expiration()` | A check removes the entry once it has expired and refreshes the key. It runs at a quarter of the expiration time, clamped to 1–30 seconds. |
| `cache_expiration()` | A cleanup task removes any cache entries not read for twice the expiration time. It also evicts least recently used entries above 1000. It runs every quarter of the expiration time, but never more often than every 30 seconds. |
| `stale_time()` | A check starts one background revalidation at a time when the data is stale but not expired. It runs at a quarter of the stale time, clamped to 1–30 seconds. |

When no expiration is set, the stale check treats data older than one hour as expired.

## Cache management

`use_provider_cache()` returns the shared cache.

`use_invalidate_provider(provider, param=None)` returns a function with no arguments. The function drops the cached entry for that provider and parameter, then refreshes every hook that uses the entry.

`use_clear_provider_cache()` returns a function that empties the cache and refreshes every key that has been refreshed before.

```python
from riverstate.hooks import (
    use_clear_provider_cache,
    use_invalidate_provider,
    use_provider_cache,
)

cache = use_provider_cache()
cache.invalidate("user_42")

refresh_user = use_invalidate_provider(UserProvider(), 42)
refresh_user()

clear_all = use_clear_provider_cache()
clear_all()
```

`ProviderCache` can also be used on its own. It is thread-safe and supports `len()`, `in` and iteration over its keys. Durations may be given as numbers of seconds or as `timedelta` values.

```python
from riverstate.cache import ProviderCache

cache = ProviderCache()
cache.set("answer", 42)
assert cache.get("answer") == 42
assert cache.get("missing") is None
cache.cleanup_unused_entries(600.0)
cache.evict_lru_entries(1000)
```

The other `ProviderCache` methods:

| Method | Behaviour |
| --- | --- |
| `get_with_expiration(key, expiration)` | Removes the entry and returns `None` once the entry is older than `expiration`. |
| `get_with_staleness(key, stale_time, expiration)` | Returns `(value, is_stale)`. Returns `None` if the entry is missing or expired. |
| `remove_if_expired(key, expiration)` | Removes an expired entry and reports whether it did. |
| `entry(key)` | Returns the raw `CacheEntry` without recording an access. |
| `remove(key)` | Removes the entry and returns whether it was present. |
| `clear()` | Removes every entry. |
| `size()` | Returns the number of entries. |

Every entry records when it was created, when it was last read, and a reference count.

## Refresh and disposal registries

`RefreshRegistry` provides the following methods.

Refresh counts and subscriptions:

- `get_refresh_count(key)` returns how many times the key has been refreshed.
- `trigger_refresh(key)` adds one to that count and calls `mark_dirty()` on every subscribed `ReactiveContext`.
- `subscribe_to_refresh(key, context)` subscribes a context to the key.

Periodic tasks:

- `start_periodic_task(key, task_type, interval, task_fn)` runs `task_fn` periodically.
- `start_interval_task` and `start_stale_check_task` are shortcuts for the `TaskType.INTERVAL_REFRESH` and `TaskType.STALE_CHECK` kinds.
- An interval task is replaced only by a new one with a shorter interval.
- `stop_periodic_task`, `stop_interval_task`, `stop_stale_check_task` and `shutdown` stop tasks.
- `has_periodic_task` reports whether a task exists.

Revalidations:

- `start_revalidation(key)` marks a revalidation as in progress. It returns `False` if one is already in progress for that key.
- `complete_revalidation(key)` marks the revalidation as finished.
- `is_revalidation_in_progress(key)` reports the current state.

A `ReactiveContext` is identified by its `id`. It counts how often it was marked dirty (`dirty_count`, `is_dirty`) and calls an optional `on_dirty` callback.

`DisposalRegistry(cache)` handles delayed removal of cache entries:

- `schedule_disposal(key, delay)` removes the entry after the delay, but only if its reference count is then zero. A new schedule for the same key replaces the old one. Without a cache, the call does nothing.
- `cancel_disposal(key)` cancels a pending removal.
- `is_scheduled(key)` reports whether a removal is pending.
- `DisposalRegistry.default_dispose_delay()` returns 30 seconds.

## Dependency injection

```python
from riverstate.injection import (
    DependencyError,
    has_dependency,
    init_dependency_injection,
    inject,
    register_dependency,
)


class ApiClient:
    def __init__(self, base_url):
        self.base_url = base_url


init_dependency_injection()
register_dependency(ApiClient("https://api.example.com"))

client = inject(ApiClient)
assert has_dependency(ApiClient)

try:
    register_dependency(ApiClient("https://other.example.com"))
except DependencyError as exc:
    print(exc)  # already registered
```

Dependencies are looked up by their exact type. Registering a second instance of the same type raises `DependencyError`, and so does injecting a type that has not been registered. `has_dependency` and `clear_dependencies` do what their names say. Inside a provider's `run`, call `inject(ApiClient)` to reach the shared client.

`DependencyRegistry` can also be used directly. It has the methods `register`, `get`, `contains`, `clear` and `list_types`.

## What it does not do

- The cache lives in process memory only. Nothing is persisted.
- Signals are plain callback holders and are not wired into any UI toolkit.
- The package is a library only and installs no command-line tool.