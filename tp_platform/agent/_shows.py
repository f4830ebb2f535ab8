# tp_platform/agent/_shows.py
# per-show reconciliation: show -> season -> episode.
from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

from .._logging import log as _log
from ..id_map import first_match
from ._applier import guarded, scrobble, write
from ._context import RunContext
from ._progress import ProgressStatus as S
from ._types import LocalEpisode, LocalSeason, LocalShow, RemoteEpisode, RemoteSeason, RemoteShow

log = _log.child("SHOWS")


def _report(ctx: RunContext, show: LocalShow, index: int, status: S, *,
            season: Optional[int] = None, episode: Optional[int] = None,
            message: Optional[str] = None) -> None:
    ctx.reporter.episode(show.title, index, status, season=season, episode=episode,
                         external_provider_id=show.provider_id, message=message)


async def _search_and_add_show(ctx: RunContext, show: LocalShow, index: int) -> Optional[RemoteShow]:
    _report(ctx, show, index, S.NOT_FOUND_REMOTE)

    kind = ctx.policy.search_kind(show.provider, show=True)
    if kind is None or not show.provider_id:
        _report(ctx, show, index, S.NOT_SUPPORTED, message=f"no search for provider {show.provider!r}")
        return None

    found = await guarded("search_by_external_id", ctx.remote.search_by_external_id,
                          kind, show.provider_id, "show", stats=ctx.stats)
    if not found.ok:
        _report(ctx, show, index, S.ERROR_ADD_REMOTE, message=found.error)
        return None
    candidate = found.value
    if not isinstance(candidate, RemoteShow) or candidate.ids.trakt is None:
        _report(ctx, show, index, S.NOT_FOUND_REMOTE, message=f"{kind.value}:{show.provider_id} not found")
        return None

    added = await write(ctx, "add_to_collection", ctx.remote.add_to_collection, [candidate])
    if not added.ok:
        _report(ctx, show, index, S.ERROR_ADD_REMOTE, message=added.error)
        return None
    _report(ctx, show, index, S.ADD_REMOTE)
    return candidate


async def _add_season(ctx: RunContext, show: LocalShow, index: int, show_id: int,
                      season: LocalSeason, watched: Optional[RemoteSeason] = None) -> None:
    """Season missing from the remote collection: one collection + one history batch."""
    _report(ctx, show, index, S.PROCESSING, season=season.number)

    res = await guarded("fetch_season", ctx.remote.fetch_season, show_id, season.number, stats=ctx.stats)
    if not res.ok:
        _report(ctx, show, index, S.ERROR_ADD_REMOTE, season=season.number, message=res.error)
        return
    remote_season: Optional[RemoteSeason] = res.value

    to_collect: list[RemoteEpisode] = []
    to_watch: list[RemoteEpisode] = []
    for ep in season.episodes:
        if ctx.cancelled:
            return
        rep = remote_season.episode(ep.number) if remote_season is not None else None
        if rep is None:
            continue
        to_collect.append(rep)
        rw = watched.episode(ep.number) if watched is not None else None
        if ep.view_count > 0 and not (rw is not None and rw.plays > 0):
            to_watch.append(rep)
        ctx.processed.add_episode(show_id, season.number, rep.number)

    if not to_collect:
        log.debug(f"{show.title} S{season.number:02d}: no matching remote episodes")
        return

    added = await write(ctx, "add_to_collection", ctx.remote.add_to_collection, to_collect)
    if not added.ok:
        _report(ctx, show, index, S.ERROR_ADD_REMOTE, season=season.number, message=added.error)
        return
    hist = await write(ctx, "add_watched_history", ctx.remote.add_watched_history, to_watch)
    for rep in to_collect:
        _report(ctx, show, index, S.ADD_REMOTE, season=season.number, episode=rep.number)
    if not hist.ok:
        _report(ctx, show, index, S.ERROR_ADD_REMOTE, season=season.number, message=hist.error)

    # remote history can exist without a collection entry
    for ep in season.episodes:
        rw = watched.episode(ep.number) if watched is not None else None
        if ctx.cancelled or rw is None or rw.plays <= 0 or ep.view_count > 0:
            continue
        res = await scrobble(ctx, ep.id)
        if res.ok:
            _report(ctx, show, index, S.SYNC, season=season.number, episode=ep.number)


async def _fix_remote_episode(ctx: RunContext, show: LocalShow, index: int, show_id: int, n: int,
                              ep: LocalEpisode, *, need_collect: bool, need_history: bool) -> bool:
    """Add one episode to the collection and/or history; both share a single episode fetch."""
    _report(ctx, show, index, S.PROCESSING, season=n, episode=ep.number)
    fetched = await guarded("fetch_episode", ctx.remote.fetch_episode, show_id, n, ep.number, stats=ctx.stats)
    if not fetched.ok or fetched.value is None:
        _report(ctx, show, index, S.ERROR_ADD_REMOTE, season=n, episode=ep.number,
                message=fetched.error or "episode not found")
        return False
    rep: RemoteEpisode = fetched.value

    if need_collect:
        added = await write(ctx, "add_to_collection", ctx.remote.add_to_collection, [rep])
        if not added.ok:
            _report(ctx, show, index, S.ERROR_ADD_REMOTE, season=n, episode=ep.number, message=added.error)
            return False
        ctx.processed.add_episode(show_id, n, rep.number)
        if not need_history:
            _report(ctx, show, index, S.ADD_REMOTE, season=n, episode=ep.number)
            return True

    hist = await write(ctx, "add_watched_history", ctx.remote.add_watched_history, [rep])
    if not hist.ok:
        _report(ctx, show, index, S.ERROR_ADD_REMOTE, season=n, episode=ep.number, message=hist.error)
        return False
    ctx.processed.add_episode(show_id, n, rep.number)
    _report(ctx, show, index, S.SYNC, season=n, episode=ep.number)
    return True


async def _sync_season(ctx: RunContext, show: LocalShow, index: int, show_id: int,
                       season: LocalSeason, collected: RemoteSeason,
                       watched: Optional[RemoteSeason]) -> None:
    n = season.number
    for ep in season.episodes:
        if ctx.cancelled:
            return
        rw = watched.episode(ep.number) if watched is not None else None
        rc = collected.episode(ep.number)
        if rc is not None:
            ctx.processed.add_episode(show_id, n, ep.number)

        remote_watched = rw is not None and rw.plays > 0
        need_collect = rc is None
        need_history = ep.view_count > 0 and not remote_watched

        fixed = False
        if need_collect or need_history:
            fixed = await _fix_remote_episode(ctx, show, index, show_id, n, ep,
                                              need_collect=need_collect, need_history=need_history)
            if not fixed:
                continue

        if remote_watched and ep.view_count == 0:
            res = await scrobble(ctx, ep.id)
            if not res.ok:
                ctx.reporter.message(f"Unable to mark {show.title} S{n:02d}E{ep.number:02d} watched: {res.error}",
                                     item_name=show.title, current=index)
                continue
            _report(ctx, show, index, S.SYNC, season=n, episode=ep.number)
        elif remote_watched and not fixed:
            _report(ctx, show, index, S.NOTHING, season=n, episode=ep.number)


async def reconcile_show(
    ctx: RunContext,
    show: LocalShow,
    index: int,
    collected: Sequence[RemoteShow],
    watched: Sequence[RemoteShow],
) -> None:
    if str(show.provider or "").lower() in ctx.policy.show_unsupported:
        _report(ctx, show, index, S.NOT_SUPPORTED)
        return

    table = ctx.policy.show_match
    remote_show = first_match(show.provider, show.provider_id, collected, table)
    if remote_show is None:
        remote_show = await _search_and_add_show(ctx, show, index)
        if remote_show is None:
            return

    show_id = remote_show.ids.trakt
    if show_id is None:
        ctx.reporter.message(f"Remote show {remote_show.title!r} has no trakt id", item_name=show.title, current=index)
        return
    watched_show = first_match(show.provider, show.provider_id, watched, table)

    if ctx.cancelled:
        return
    populated = await guarded("populate_seasons", ctx.local.populate_seasons, show, stats=ctx.stats)
    if not populated.ok:
        ctx.reporter.message(f"Unable to read seasons of {show.title}: {populated.error}",
                             item_name=show.title, current=index)
        return
    if isinstance(populated.value, LocalShow):
        show = populated.value

    for season in list(show.seasons):
        if ctx.cancelled:
            return
        eps = await guarded("populate_episodes", ctx.local.populate_episodes, season, stats=ctx.stats)
        if not eps.ok:
            ctx.reporter.message(f"Unable to read episodes of {show.title} season {season.number}: {eps.error}",
                                 item_name=show.title, current=index)
            continue
        if isinstance(eps.value, LocalSeason):
            season = eps.value

        season_collected = remote_show.season(season.number)
        season_watched = watched_show.season(season.number) if watched_show is not None else None
        if season_collected is None:
            await _add_season(ctx, show, index, show_id, season, season_watched)
        else:
            await _sync_season(ctx, show, index, show_id, season, season_collected, season_watched)
