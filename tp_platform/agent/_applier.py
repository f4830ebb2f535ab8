from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence

from .._logging import log as _log
from ._telemetry import Stats
from ._types import ApiResult

log = _log.child("APPLY")


#--- Guarded collaborator call ------------------------------------------------
async def guarded(name: str, call: Callable[..., Awaitable[Any]], *args: Any,
                  stats: Stats | None = None) -> ApiResult[Any]:
    """Await a collaborator call; an escaping exception becomes ApiResult(ok=False)."""
    try:
        res = await call(*args)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        log.error(f"{name} raised {type(e).__name__}: {e}")
        res = ApiResult.failure(f"{type(e).__name__}: {e}")
    if not isinstance(res, ApiResult):
        res = ApiResult.success(res)
    if stats is not None:
        stats.record_call(name, ok=res.ok)
    if not res.ok:
        log.debug(f"{name} failed", extra={"error": res.error, "status": res.status})
    return res


#--- Remote write with fixed pause --------------------------------------------
async def write(ctx: Any, name: str, call: Callable[..., Awaitable[Any]],
                items: Sequence[Any]) -> ApiResult[Any]:
    """Submit one remote mutation, then sleep `write_pause_ms` (fixed rate limit)."""
    if not items:
        return ApiResult.success({"count": 0})
    res = await guarded(name, call, list(items), stats=ctx.stats)
    if not res.ok:
        log.warn(f"{name} failed for {len(items)} item(s): {res.error}")
    pause = int(getattr(ctx, "write_pause_ms", 0) or 0)
    if pause > 0:
        await asyncio.sleep(pause / 1000.0)
    return res


async def scrobble(ctx: Any, item_id: str) -> ApiResult[Any]:
    return await guarded("mark_watched", ctx.local.mark_watched, item_id, stats=ctx.stats)
