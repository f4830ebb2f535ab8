# tp_platform/agent/_movies.py
# per-movie reconciliation.
from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

from ..id_map import first_match
from ._applier import guarded, scrobble, write
from ._context import RunContext
from ._progress import ProgressStatus as S
from ._types import LocalMovie, RemoteMovie


def _report(ctx: RunContext, movie: LocalMovie, index: int, status: S, message: Optional[str] = None) -> None:
    ctx.reporter.movie(movie.title, index, status, year=movie.year, message=message)


async def _search_and_add(ctx: RunContext, movie: LocalMovie, index: int, *, with_history: bool) -> None:
    """Look the movie up by its external id and add it to the collection (and history)."""
    _report(ctx, movie, index, S.NOT_FOUND_REMOTE)

    kind = ctx.policy.search_kind(movie.provider)
    if kind is None or not movie.provider_id:
        _report(ctx, movie, index, S.NOT_SUPPORTED, f"no search for provider {movie.provider!r}")
        return

    found = await guarded("search_by_external_id", ctx.remote.search_by_external_id,
                          kind, movie.provider_id, "movie", stats=ctx.stats)
    if not found.ok:
        _report(ctx, movie, index, S.ERROR_ADD_REMOTE, found.error)
        return
    candidate = found.value
    if candidate is None:
        _report(ctx, movie, index, S.NOT_FOUND_REMOTE, f"{kind.value}:{movie.provider_id} not found")
        return

    added = await write(ctx, "add_to_collection", ctx.remote.add_to_collection, [candidate])
    if not added.ok:
        _report(ctx, movie, index, S.ERROR_ADD_REMOTE, added.error)
        return
    if with_history:
        hist = await write(ctx, "add_watched_history", ctx.remote.add_watched_history, [candidate])
        if not hist.ok:
            # collected but not marked watched; reported, not rolled back
            _report(ctx, movie, index, S.ERROR_ADD_REMOTE, hist.error)
            return
    _report(ctx, movie, index, S.ADD_REMOTE)


async def reconcile_movie(
    ctx: RunContext,
    movie: LocalMovie,
    index: int,
    collected: Sequence[RemoteMovie],
    watched: Sequence[RemoteMovie],
) -> None:
    table = ctx.policy.movie_match
    watched_match = first_match(movie.provider, movie.provider_id, watched, table)

    if watched_match is not None:
        ctx.processed.add_movie(watched_match.ids)
        _report(ctx, movie, index, S.PROCESSING)
        if movie.view_count > 0:
            _report(ctx, movie, index, S.NOTHING)
            return
        res = await scrobble(ctx, movie.id)
        if not res.ok:
            ctx.reporter.message(f"Unable to mark {movie.title} watched: {res.error}",
                                 item_name=movie.title, current=index)
            return
        _report(ctx, movie, index, S.SYNC)
        return

    _report(ctx, movie, index, S.NOT_WATCHED_REMOTE)
    collected_match = first_match(movie.provider, movie.provider_id, collected, table)
    if collected_match is not None:
        ctx.processed.add_movie(collected_match.ids)

    if movie.view_count > 0:
        if collected_match is None:
            await _search_and_add(ctx, movie, index, with_history=True)
            return
        res = await write(ctx, "add_watched_history", ctx.remote.add_watched_history, [collected_match])
        _report(ctx, movie, index, S.WATCHED_REMOTE if res.ok else S.ERROR_ADD_REMOTE,
                None if res.ok else res.error)
        return

    if collected_match is None:
        await _search_and_add(ctx, movie, index, with_history=False)
        return
    _report(ctx, movie, index, S.NOTHING)
