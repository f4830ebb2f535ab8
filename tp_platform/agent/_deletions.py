# tp_platform/agent/_deletions.py
# remote collection entries the run never touched.
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional

from .._logging import log as _log
from ._applier import write
from ._context import ProcessedSet, RunContext
from ._progress import ProgressStatus as S
from ._types import EpisodeKey, RemoteMovie, RemoteShow

log = _log.child("DELETIONS")


@dataclass(frozen=True)
class DeletionCandidate:
    item_name: str
    key: Any
    remote: Any = None
    year: Optional[int] = None
    season: Optional[int] = None
    episode: Optional[int] = None

    @property
    def resolved(self) -> bool:
        return self.remote is not None


def movie_candidates(collected: Sequence[RemoteMovie], processed: ProcessedSet) -> list[DeletionCandidate]:
    """Remote collected movies not matched by anything in the processed set."""
    out: list[DeletionCandidate] = []
    for m in collected:
        if processed.has_movie(m.ids):
            continue
        key = ("movie", m.ids.trakt) if m.ids.trakt is not None else ("movie", m.ids.slug or m.title, m.year)
        out.append(DeletionCandidate(m.title, key, m, year=m.year))
    return out


def scan_movies(ctx: RunContext, collected: Sequence[RemoteMovie]) -> list[DeletionCandidate]:
    cands = movie_candidates(collected, ctx.processed)
    for i, c in enumerate(cands):
        ctx.reporter.movie(c.item_name, i, S.SHOULD_REMOVE, year=c.year)
    return cands


async def scan_shows(ctx: RunContext, collected: Sequence[RemoteShow]) -> list[DeletionCandidate]:
    """
    Walk every collected episode; anything not in the processed set is a
    candidate. The exact remote episode is resolved through the show cache so
    it can be sent to the removal call; unresolved candidates are reported only.
    """
    out: list[DeletionCandidate] = []
    for i, show in enumerate(collected):
        sid = show.ids.trakt
        for season in show.seasons:
            for ep in season.episodes:
                if ctx.cancelled:
                    return out
                if sid is not None and ctx.processed.has_episode(sid, season.number, ep.number):
                    continue
                remote = None
                if sid is not None:
                    remote = await ctx.show_cache.get_episode(sid, season.number, ep.number)
                key = EpisodeKey(sid, season.number, ep.number) if sid is not None else (show.title, season.number, ep.number)
                out.append(DeletionCandidate(show.title, key, remote, season=season.number, episode=ep.number))
                ctx.reporter.episode(show.title, i, S.SHOULD_REMOVE, season=season.number, episode=ep.number)
    return out


def maybe_block_mass_delete(
    candidates: list[DeletionCandidate],
    baseline_size: int,
    *,
    allow_mass_delete: bool,
    suspect_ratio: float,
) -> tuple[list[DeletionCandidate], Optional[str]]:
    if allow_mass_delete or not candidates:
        return candidates, None

    ratio = suspect_ratio if suspect_ratio > 0 else 0.10
    threshold = int(baseline_size * ratio)

    if len(candidates) > max(threshold, 0):
        reason = (f"mass delete blocked: {len(candidates)} of {baseline_size} "
                  f"exceeds threshold {threshold}")
        log.warn(reason)
        return [], reason
    return candidates, None


async def remove_candidates(
    ctx: RunContext,
    candidates: list[DeletionCandidate],
    baseline_size: int,
    *,
    enabled: bool,
    allow_mass_delete: bool = True,
    suspect_ratio: float = 0.10,
) -> list[DeletionCandidate]:
    """Bulk-remove resolved candidates when allowed; returns what was removed."""
    queue = [c for c in candidates if c.resolved]
    if not enabled or not queue:
        return []
    if ctx.cancelled:
        log.info("run cancelled; removal skipped")
        return []
    if ctx.processed.is_empty():
        ctx.reporter.message("Nothing was matched locally; removal skipped")
        return []

    queue, blocked = maybe_block_mass_delete(
        queue, baseline_size, allow_mass_delete=allow_mass_delete, suspect_ratio=suspect_ratio,
    )
    if blocked:
        ctx.reporter.message(blocked)
        return []

    res = await write(ctx, "remove_from_collection", ctx.remote.remove_from_collection,
                      [c.remote for c in queue])
    if not res.ok:
        ctx.reporter.message(f"Remove from collection failed: {res.error}")
        return []

    for i, c in enumerate(queue):
        if c.season is None:
            ctx.reporter.movie(c.item_name, i, S.REMOVE, year=c.year)
        else:
            ctx.reporter.episode(c.item_name, i, S.REMOVE, season=c.season, episode=c.episode)
    return queue
