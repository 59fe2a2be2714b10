"""Unit tests for the in-memory rate limit store."""

import threading
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore


def test_counts_down_remaining_until_limit() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    results = [store.check("k", window_ms=1000, limit=3) for _ in range(3)]

    assert [r.allowed for r in results] == [True, True, True]
    assert [r.remaining for r in results] == [2, 1, 0]
    assert [r.count for r in results] == [1, 2, 3]
    assert all(r.retry_after_seconds is None for r in results)
    assert results[0].reset_at == pytest.approx(1001.0)


def test_blocks_when_over_limit() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    for _ in range(3):
        store.check("k", window_ms=1000, limit=3)

    blocked = store.check("k", window_ms=1000, limit=3)
    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert blocked.count == 4
    assert blocked.retry_after_seconds is not None
    assert blocked.retry_after_seconds > 0


def test_rejected_requests_keep_counting() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    for _ in range(2):
        store.check("k", window_ms=60_000, limit=1)
    blocked = store.check("k", window_ms=60_000, limit=1)

    assert blocked.allowed is False
    assert blocked.count == 3


def test_retry_after_rounds_up_to_whole_seconds() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    store.check("k", window_ms=60_000, limit=1)
    clock.return_value = 1010.5
    blocked = store.check("k", window_ms=60_000, limit=1)

    assert blocked.retry_after_seconds == 50
    assert blocked.reset_at_epoch == 1060


def test_window_still_live_at_exact_reset_instant() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    store.check("k", window_ms=1000, limit=1)
    clock.return_value = 1001.0
    blocked = store.check("k", window_ms=1000, limit=1)

    assert blocked.allowed is False
    assert blocked.retry_after_seconds == 1


def test_resets_on_new_window() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    for _ in range(4):
        store.check("k", window_ms=1000, limit=3)

    clock.return_value = 1001.001
    fresh = store.check("k", window_ms=1000, limit=3)

    assert fresh.allowed is True
    assert fresh.count == 1
    assert fresh.remaining == 2
    assert fresh.reset_at == pytest.approx(1002.001)


def test_isolated_by_key() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    assert store.check("k1", window_ms=60_000, limit=1).allowed is True
    assert store.check("k1", window_ms=60_000, limit=1).allowed is False

    assert store.check("k2", window_ms=60_000, limit=1).allowed is True


@pytest.mark.parametrize(
    "key, kwargs",
    [
        ("", {"window_ms": 1000, "limit": 1}),
        ("k", {"window_ms": 0, "limit": 1}),
        ("k", {"window_ms": 1000, "limit": 0}),
    ],
)
def test_invalid_check_args(key: str, kwargs: dict) -> None:
    store = InMemoryRateLimitStore()

    with pytest.raises(ValueError):
        store.check(key, **kwargs)


def test_sweep_removes_only_expired_counters() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    store.check("short", window_ms=1000, limit=5)
    store.check("long", window_ms=60_000, limit=5)
    assert len(store) == 2

    clock.return_value = 1002.0
    assert store.sweep() == 1
    assert len(store) == 1

    # The surviving counter kept its count
    assert store.check("long", window_ms=60_000, limit=5).count == 2


def test_sweep_on_empty_store() -> None:
    store = InMemoryRateLimitStore()

    assert store.sweep() == 0


def test_reset_forgets_single_key() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)

    store.check("k1", window_ms=60_000, limit=1)
    store.check("k2", window_ms=60_000, limit=1)

    store.reset("k1")
    store.reset("missing")

    assert store.check("k1", window_ms=60_000, limit=1).allowed is True
    assert store.check("k2", window_ms=60_000, limit=1).allowed is False


def test_reset_all() -> None:
    store = InMemoryRateLimitStore()
    store.check("k1", window_ms=60_000, limit=1)
    store.check("k2", window_ms=60_000, limit=1)

    store.reset_all()

    assert len(store) == 0


def test_concurrent_checks_admit_exactly_limit() -> None:
    limit = 25
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)
    barrier = threading.Barrier(2 * limit)
    results = []
    results_lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        result = store.check("shared", window_ms=60_000, limit=limit)
        with results_lock:
            results.append(result)

    threads = [threading.Thread(target=worker) for _ in range(2 * limit)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(r.allowed for r in results) == limit
    assert sorted(r.count for r in results) == list(range(1, 2 * limit + 1))


def _race_checks_with_sweeps(store: InMemoryRateLimitStore, *, checks: int, limit: int) -> list:
    sweepers = 4
    barrier = threading.Barrier(checks + sweepers)
    results = []
    results_lock = threading.Lock()

    def checker() -> None:
        barrier.wait()
        result = store.check("shared", window_ms=1000, limit=limit)
        with results_lock:
            results.append(result)

    def sweeper() -> None:
        barrier.wait()
        for _ in range(50):
            store.sweep()

    threads = [threading.Thread(target=checker) for _ in range(checks)]
    threads += [threading.Thread(target=sweeper) for _ in range(sweepers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results


def test_sweep_never_drops_a_live_window_under_contention() -> None:
    limit = 10
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)
    for _ in range(limit):
        assert store.check("shared", window_ms=1000, limit=limit).allowed is True

    # Exactly at the boundary the window is still live: nothing more is admitted
    clock.return_value = 1001.0
    results = _race_checks_with_sweeps(store, checks=2 * limit, limit=limit)

    assert not any(r.allowed for r in results)
    assert sorted(r.count for r in results) == list(range(limit + 1, 3 * limit + 1))


def test_expired_window_reopens_once_under_contention() -> None:
    limit = 10
    clock = Mock(return_value=1000.0)
    store = InMemoryRateLimitStore(clock=clock)
    for _ in range(limit + 3):
        store.check("shared", window_ms=1000, limit=limit)

    clock.return_value = 1001.5
    results = _race_checks_with_sweeps(store, checks=2 * limit, limit=limit)

    assert sum(r.allowed for r in results) == limit
    assert {r.reset_at for r in results} == {pytest.approx(1002.5)}
    assert len(store) == 1
