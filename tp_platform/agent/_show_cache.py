# tp_platform/agent/_show_cache.py
# memoized remote show -> seasons -> episodes tree, one per run.
from __future__ import annotations

import asyncio
import threading
from dataclasses import replace
from typing import Optional

from .._logging import log as _log
from ._applier import guarded
from ._progress import ProgressReporter
from ._telemetry import Stats
from ._types import RemoteEpisode, RemoteShow, RemoteTrackerClient

log = _log.child("SHOW_CACHE")


class RemoteShowCache:
    def __init__(self, remote: RemoteTrackerClient, reporter: ProgressReporter,
                 *, stats: Stats | None = None) -> None:
        self.remote = remote
        self.reporter = reporter
        self.stats = stats
        self._lock = threading.Lock()
        self._shows: dict[int, RemoteShow] = {}
        self._key_locks: dict[int, asyncio.Lock] = {}

    def __contains__(self, show_id: object) -> bool:
        with self._lock:
            return show_id in self._shows

    def __len__(self) -> int:
        with self._lock:
            return len(self._shows)

    def _key_lock(self, show_id: int) -> asyncio.Lock:
        with self._lock:
            lk = self._key_locks.get(show_id)
            if lk is None:
                lk = self._key_locks[show_id] = asyncio.Lock()
            return lk

    def _cached(self, show_id: int) -> Optional[RemoteShow]:
        with self._lock:
            return self._shows.get(show_id)

    async def get_show(self, show_id: int) -> Optional[RemoteShow]:
        hit = self._cached(show_id)
        if hit is not None:
            return hit
        async with self._key_lock(show_id):
            # another task may have filled it while we waited
            hit = self._cached(show_id)
            if hit is not None:
                return hit
            log.debug(f"miss show_id={show_id}")

            res = await guarded("fetch_show", self.remote.fetch_show, show_id, stats=self.stats)
            if not res.ok or res.value is None:
                self._failed(show_id, res.error or "not found")
                return None
            seasons = await guarded("fetch_seasons", self.remote.fetch_seasons, show_id, stats=self.stats)
            if not seasons.ok or seasons.value is None:
                self._failed(show_id, seasons.error or "no seasons")
                return None

            show = replace(res.value, seasons=tuple(seasons.value))
            with self._lock:
                self._shows[show_id] = show
            return show

    async def get_episode(self, show_id: int, season: int, episode: int) -> Optional[RemoteEpisode]:
        show = await self.get_show(show_id)
        if show is None:
            return None
        s = show.season(season)
        return s.episode(episode) if s is not None else None

    def _failed(self, show_id: int, error: str) -> None:
        log.warn(f"could not load show {show_id}: {error}")
        self.reporter.message(f"Unable to load remote show {show_id}: {error}")
