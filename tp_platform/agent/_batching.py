from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, TypeVar

from .._logging import log as _log
from ._applier import guarded
from ._telemetry import Stats

log = _log.child("BATCH")

T = TypeVar("T")

DEFAULT_BATCH_LIMIT = 2


class CatalogFetchError(RuntimeError):
    """One of the initial catalog fetches failed; the process cannot run."""

    def __init__(self, source: str, error: str | None, status: int | None = None) -> None:
        super().__init__(f"{source} fetch failed: {error or 'unknown error'}")
        self.source = source
        self.error = error
        self.status = status


def effective_batch_limit(cfg: Mapping[str, Any] | None, process: str) -> int:
    sync = dict((cfg or {}).get("sync") or {})
    try:
        base = int(sync.get("batch_limit") or 0)
    except (TypeError, ValueError):
        base = 0
    if base <= 0:
        base = DEFAULT_BATCH_LIMIT
    raw = sync.get("batch_limit_by_process")
    if not isinstance(raw, Mapping):
        return base
    key = str(process or "").lower()
    v = None
    for k, vv in raw.items():
        if str(k).lower() == key:
            v = vv
            break
    try:
        n = int(v) if v is not None else 0
    except (TypeError, ValueError):
        n = 0
    return n if n > 0 else base


async def fetch_catalogs(
    local: Callable[[], Awaitable[Any]],
    collected: Callable[[], Awaitable[Any]],
    watched: Callable[[], Awaitable[Any]],
    *,
    stats: Stats | None = None,
) -> tuple[list[Any], list[Any], list[Any]]:
    """Fetch the local catalog and both remote lists concurrently; all three must succeed."""
    results = await asyncio.gather(
        guarded("fetch_local", local, stats=stats),
        guarded("fetch_collected", collected, stats=stats),
        guarded("fetch_watched", watched, stats=stats),
    )
    out: list[list[Any]] = []
    for source, res in zip(("local catalog", "remote collection", "remote watched"), results):
        if not res.ok:
            log.error(f"{source} fetch failed: {res.error}")
            raise CatalogFetchError(source, res.error, res.status)
        out.append(list(res.value or []))
    return out[0], out[1], out[2]


async def run_batches(
    items: Sequence[T],
    worker: Callable[[T, int], Awaitable[Any]],
    batch_limit: int,
    cancel: asyncio.Event,
) -> int:
    """
    Run `worker(item, index)` over `items` in fixed-size concurrent batches.
    Batch N+1 starts only after every task of batch N has finished. The cancel
    event is checked before each batch; already issued work is not undone.
    Returns the number of items dispatched.
    """
    size = max(1, int(batch_limit or 0))
    total = len(items)
    done = 0
    for start in range(0, total, size):
        if cancel.is_set():
            log.info(f"cancelled after {done}/{total} item(s)")
            return done
        batch = items[start:start + size]
        results = await asyncio.gather(
            *(worker(item, start + j) for j, item in enumerate(batch)),
            return_exceptions=True,
        )
        for j, r in enumerate(results):
            if isinstance(r, asyncio.CancelledError):
                raise r
            if isinstance(r, BaseException):
                log.error(f"item {start + j} failed: {type(r).__name__}: {r}")
        done += len(batch)
    return done
