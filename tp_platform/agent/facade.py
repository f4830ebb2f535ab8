# tp_platform/agent/facade.py
# sync agent facade: one process run = fetch, reconcile in batches, scan for deletions.
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from collections.abc import Mapping
from typing import Any, Awaitable, Callable

from .._logging import log as _log
from ._batching import effective_batch_limit, fetch_catalogs, run_batches
from ._context import ProcessedSet, RunContext
from ._deletions import DeletionCandidate, remove_candidates, scan_movies, scan_shows
from ._movies import reconcile_movie
from ._progress import PROCESS_MOVIES, PROCESS_SHOWS, ProgressChannel, ProgressReporter
from ._shows import reconcile_show
from ._telemetry import Stats
from ._types import LocalCatalogClient, ProviderPolicy, RemoteTrackerClient

__all__ = ["SyncAgent", "ProcessResult"]

log = _log.child("AGENT")


@dataclass
class ProcessResult:
    process: str
    local_count: int = 0
    collected_count: int = 0
    watched_count: int = 0
    dispatched: int = 0
    cancelled: bool = False
    candidates: list[DeletionCandidate] = field(default_factory=list)
    removed: list[DeletionCandidate] = field(default_factory=list)
    processed: ProcessedSet = field(default_factory=ProcessedSet)
    stats: dict[str, Any] = field(default_factory=dict)


@dataclass
class SyncAgent:
    local: LocalCatalogClient
    remote: RemoteTrackerClient
    config: Mapping[str, Any] = field(default_factory=dict)
    progress: ProgressChannel | None = None

    stats: Stats = field(init=False)
    policy: ProviderPolicy = field(init=False)
    remove_from_collection: bool = field(init=False, default=False)
    allow_mass_delete: bool = field(init=False, default=True)
    suspect_shrink_ratio: float = field(init=False, default=0.10)
    write_pause_ms: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self.cfg: dict[str, Any] = dict(self.config or {})
        sync = dict(self.cfg.get("sync") or {})
        self.policy = ProviderPolicy.from_config(self.cfg)
        self.remove_from_collection = bool(sync.get("remove_from_collection", False))
        self.allow_mass_delete = bool(sync.get("allow_mass_delete", True))
        self.suspect_shrink_ratio = float(sync.get("suspect_shrink_ratio", 0.10))
        self.write_pause_ms = int(sync.get("write_pause_ms") or 0)
        if self.progress is None:
            self.progress = ProgressChannel()
        self.stats = Stats()
        self._cancel = asyncio.Event()

    # Cancellation
    def cancel(self) -> None:
        if not self._cancel.is_set():
            log.info("cancellation requested")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _context(self, process: tuple[int, str]) -> RunContext:
        stats = Stats()
        assert self.progress is not None
        reporter = ProgressReporter(self.progress, process, stats=stats)
        return RunContext(
            local=self.local,
            remote=self.remote,
            reporter=reporter,
            cancel=self._cancel,
            policy=self.policy,
            processed=ProcessedSet(),
            stats=stats,
            write_pause_ms=self.write_pause_ms,
        )

    async def _run_process(
        self,
        process: tuple[int, str],
        key: str,
        fetchers: tuple[Callable[[], Awaitable[Any]], ...],
        reconcile: Callable[..., Awaitable[None]],
    ) -> tuple[RunContext, ProcessResult, list[Any]]:
        ctx = self._context(process)
        result = ProcessResult(process[1], processed=ctx.processed)

        local, collected, watched = await fetch_catalogs(*fetchers, stats=ctx.stats)
        result.local_count, result.collected_count, result.watched_count = len(local), len(collected), len(watched)
        log.info(f"{process[1]}: local={len(local)} collected={len(collected)} watched={len(watched)}")

        ctx.reporter.total = len(local)
        ctx.reporter.message(
            f"Total local {key}: {len(local)}; remote collected: {len(collected)}; remote watched: {len(watched)}",
            item_name="Summary",
        )

        async def _worker(item: Any, index: int) -> None:
            await reconcile(ctx, item, index, collected, watched)

        result.dispatched = await run_batches(local, _worker, effective_batch_limit(self.cfg, key), self._cancel)
        ctx.reporter.message(
            f"All processed, local {key}: {len(local)}; remote collected: {len(collected)}; "
            f"processed remote items found: {len(ctx.processed)}",
            item_name="Summary",
        )
        result.cancelled = ctx.cancelled
        return ctx, result, collected

    async def _finish(self, ctx: RunContext, result: ProcessResult, baseline: int, what: str) -> ProcessResult:
        ctx.reporter.message(f"Remote {what} to remove from collection: {len(result.candidates)}", item_name="Summary")
        result.removed = await remove_candidates(
            ctx, result.candidates, baseline,
            enabled=self.remove_from_collection,
            allow_mass_delete=self.allow_mass_delete,
            suspect_ratio=self.suspect_shrink_ratio,
        )
        result.cancelled = ctx.cancelled
        result.stats = ctx.stats.overview()
        self.stats.merge(ctx.stats)
        return result

    async def sync_movies(self) -> ProcessResult:
        ctx, result, collected = await self._run_process(
            PROCESS_MOVIES, "movies",
            (self.local.fetch_movies, self.remote.fetch_collected_movies, self.remote.fetch_watched_movies),
            reconcile_movie,
        )
        if result.cancelled:
            ctx.reporter.message("Cancelled; deletion detection skipped", item_name="Summary")
            result.stats = ctx.stats.overview()
            self.stats.merge(ctx.stats)
            return result

        ctx.reporter.total = len(collected)
        result.candidates = scan_movies(ctx, collected)
        return await self._finish(ctx, result, len(collected), "movies")

    async def sync_shows(self) -> ProcessResult:
        ctx, result, collected = await self._run_process(
            PROCESS_SHOWS, "shows",
            (self.local.fetch_shows, self.remote.fetch_collected_shows, self.remote.fetch_watched_shows),
            reconcile_show,
        )
        if result.cancelled:
            ctx.reporter.message("Cancelled; deletion detection skipped", item_name="Summary")
            result.stats = ctx.stats.overview()
            self.stats.merge(ctx.stats)
            return result

        ctx.reporter.total = len(collected)
        result.candidates = await scan_shows(ctx, collected)
        baseline = sum(len(se.episodes) for sh in collected for se in sh.seasons)
        return await self._finish(ctx, result, baseline, "episodes")

    async def run(self, *, movies: bool | None = None, shows: bool | None = None,
                  close: bool = True) -> dict[str, ProcessResult]:
        """Run the enabled processes in order (movies, then shows)."""
        sync = dict(self.cfg.get("sync") or {})
        do_movies = bool(sync.get("movies", True)) if movies is None else movies
        do_shows = bool(sync.get("shows", True)) if shows is None else shows
        out: dict[str, ProcessResult] = {}
        try:
            if do_movies and not self.cancelled:
                out["movies"] = await self.sync_movies()
            if do_shows and not self.cancelled:
                out["shows"] = await self.sync_shows()
        finally:
            if close and self.progress is not None:
                self.progress.close()
        return out
