# tp_platform/agent/_context.py
# per-run state handed to every reconciliation call.
from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

from ..id_map import RemoteIds, matches_ids
from ._progress import ProgressReporter
from ._telemetry import Stats
from ._types import EpisodeKey, LocalCatalogClient, ProviderPolicy, RemoteTrackerClient

if TYPE_CHECKING:
    from ._show_cache import RemoteShowCache


class ProcessedSet:
    """Remote identities confirmed present locally during one run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._movies: dict[int, RemoteIds] = {}
        self._untracked = 0
        self._episodes: set[EpisodeKey] = set()

    def add_movie(self, ids: RemoteIds) -> None:
        with self._lock:
            if ids.trakt is None:
                # cannot be compared later; counted so the set is not "empty"
                self._untracked += 1
                return
            self._movies.setdefault(ids.trakt, ids)

    def has_movie(self, ids: RemoteIds) -> bool:
        if ids.trakt is None:
            return False
        with self._lock:
            seen = self._movies.get(ids.trakt)
        return seen is not None and matches_ids(ids, seen)

    def add_episode(self, show_id: int, season: int, episode: int) -> None:
        with self._lock:
            self._episodes.add(EpisodeKey(show_id, season, episode))

    def has_episode(self, show_id: int, season: int, episode: int) -> bool:
        with self._lock:
            return EpisodeKey(show_id, season, episode) in self._episodes

    @property
    def movie_count(self) -> int:
        with self._lock:
            return len(self._movies) + self._untracked

    @property
    def episode_count(self) -> int:
        with self._lock:
            return len(self._episodes)

    def __len__(self) -> int:
        return self.movie_count + self.episode_count

    def is_empty(self) -> bool:
        return len(self) == 0


@dataclass
class RunContext:
    local: LocalCatalogClient
    remote: RemoteTrackerClient
    reporter: ProgressReporter
    cancel: asyncio.Event
    policy: ProviderPolicy = field(default_factory=ProviderPolicy)
    processed: ProcessedSet = field(default_factory=ProcessedSet)
    stats: Stats = field(default_factory=Stats)
    write_pause_ms: int = 0
    show_cache: Optional["RemoteShowCache"] = None

    def __post_init__(self) -> None:
        if self.show_cache is None:
            from ._show_cache import RemoteShowCache
            self.show_cache = RemoteShowCache(self.remote, self.reporter, stats=self.stats)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()
