# TraktPlex test scripts
from __future__ import annotations

import asyncio

import pytest

from tp_platform.agent._batching import (
    CatalogFetchError,
    effective_batch_limit,
    fetch_catalogs,
    run_batches,
)
from tp_platform.agent._types import ApiResult


def _recording_worker(log: list[tuple[str, int]], delays: dict[int, float] | None = None):
    async def worker(item: int, index: int) -> None:
        log.append(("start", index))
        await asyncio.sleep((delays or {}).get(index, 0.001))
        log.append(("end", index))
    return worker


@pytest.mark.parametrize("n, b", [(5, 2), (7, 3), (4, 4), (3, 10)])
def test_batches_never_overlap(n: int, b: int) -> None:
    events: list[tuple[str, int]] = []
    # later items of a batch finish first, to catch a leaky barrier
    delays = {i: 0.001 * (b - i % b) for i in range(n)}
    done = asyncio.run(run_batches(list(range(n)), _recording_worker(events, delays), b, asyncio.Event()))

    assert done == n
    assert sorted(i for kind, i in events if kind == "start") == list(range(n))
    for k in range(1, (n + b - 1) // b):
        first_start = min(pos for pos, (kind, i) in enumerate(events) if kind == "start" and i >= k * b)
        last_end = max(pos for pos, (kind, i) in enumerate(events) if kind == "end" and i < k * b)
        assert last_end < first_start


def test_cancel_between_batches_stops_dispatch() -> None:
    cancel = asyncio.Event()
    seen: list[int] = []

    async def worker(item: int, index: int) -> None:
        seen.append(index)
        if index == 1:
            cancel.set()
        await asyncio.sleep(0)

    done = asyncio.run(run_batches(list(range(5)), worker, 2, cancel))
    # the batch in flight completes, nothing after it starts
    assert done == 2
    assert sorted(seen) == [0, 1]


def test_cancel_before_start_dispatches_nothing() -> None:
    cancel = asyncio.Event()
    cancel.set()
    seen: list[int] = []

    async def worker(item: int, index: int) -> None:
        seen.append(index)

    assert asyncio.run(run_batches([1, 2, 3], worker, 2, cancel)) == 0
    assert seen == []


def test_worker_exception_does_not_abort_the_run() -> None:
    seen: list[int] = []

    async def worker(item: int, index: int) -> None:
        seen.append(index)
        if index == 0:
            raise ValueError("boom")

    assert asyncio.run(run_batches([1, 2, 3], worker, 2, asyncio.Event())) == 3
    assert sorted(seen) == [0, 1, 2]


def test_effective_batch_limit() -> None:
    assert effective_batch_limit({}, "movies") == 2
    assert effective_batch_limit({"sync": {"batch_limit": 5}}, "movies") == 5
    assert effective_batch_limit({"sync": {"batch_limit": 0}}, "movies") == 2
    cfg = {"sync": {"batch_limit": 3, "batch_limit_by_process": {"Shows": 1, "movies": "bad"}}}
    assert effective_batch_limit(cfg, "shows") == 1
    assert effective_batch_limit(cfg, "movies") == 3


def test_fetch_catalogs_runs_concurrently_and_returns_lists() -> None:
    running = {"now": 0, "peak": 0}

    def fetcher(value):
        async def _f():
            running["now"] += 1
            running["peak"] = max(running["peak"], running["now"])
            await asyncio.sleep(0.01)
            running["now"] -= 1
            return ApiResult.success(value)
        return _f

    local, collected, watched = asyncio.run(fetch_catalogs(fetcher([1]), fetcher([2, 3]), fetcher(None)))
    assert (local, collected, watched) == ([1], [2, 3], [])
    assert running["peak"] == 3


def test_fetch_catalogs_failure_is_fatal() -> None:
    async def ok():
        return ApiResult.success([])

    async def bad():
        return ApiResult.failure("HTTP 503", 503)

    with pytest.raises(CatalogFetchError) as ei:
        asyncio.run(fetch_catalogs(ok, bad, ok))
    assert ei.value.source == "remote collection"
    assert ei.value.status == 503
