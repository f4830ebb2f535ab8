# TraktPlex test scripts
from __future__ import annotations

import asyncio
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable, Optional

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from tp_platform.agent._context import RunContext  # noqa: E402
from tp_platform.agent._progress import PROCESS_MOVIES, ProgressChannel, ProgressReporter  # noqa: E402
from tp_platform.agent._telemetry import Stats  # noqa: E402
from tp_platform.agent._types import (  # noqa: E402
    ApiResult,
    LocalEpisode,
    LocalMovie,
    LocalSeason,
    LocalShow,
    RemoteEpisode,
    RemoteMovie,
    RemoteSeason,
    RemoteShow,
)
from tp_platform.id_map import RemoteIds  # noqa: E402

WRITES = ("add_to_collection", "add_watched_history", "remove_from_collection")


# --- builders -----------------------------------------------------------------

def rmovie(trakt: int, imdb: str | None = None, *, tmdb: int | None = None, title: str = "",
           year: int | None = None, plays: int = 0) -> RemoteMovie:
    return RemoteMovie(RemoteIds(trakt=trakt, imdb=imdb, tmdb=tmdb), title or f"movie-{trakt}", year, plays)


def lmovie(id: str, provider: str | None, provider_id: str | None, *, views: int = 0,
           title: str = "", year: int | None = None) -> LocalMovie:
    return LocalMovie(id, title or f"local-{id}", provider, provider_id, views, year)


def rshow_catalog(trakt: int, tvdb: int, layout: dict[int, int], *, title: str = "") -> RemoteShow:
    """Full remote show: `layout` maps season number -> episode count; episode trakt ids are derived."""
    seasons = tuple(
        RemoteSeason(
            number=s,
            episodes=tuple(
                RemoteEpisode(s, e, RemoteIds(trakt=trakt * 1000 + s * 100 + e), f"E{e}", 0, trakt)
                for e in range(1, n + 1)
            ),
        )
        for s, n in sorted(layout.items())
    )
    return RemoteShow(RemoteIds(trakt=trakt, tvdb=tvdb), title or f"show-{trakt}", None, seasons)


def lshow(id: str, provider: str | None, provider_id: str | None, seasons: dict[int, Iterable[int]],
          *, watched: Iterable[tuple[int, int]] = (), title: str = "") -> tuple[LocalShow, dict[str, LocalSeason]]:
    """Local show plus its populated season tree (returned separately, as Plex lists shows unpopulated)."""
    seen = set(watched)
    tree: dict[str, LocalSeason] = {}
    for s, eps in seasons.items():
        sid = f"{id}-s{s}"
        tree[sid] = LocalSeason(sid, s, [
            LocalEpisode(f"{sid}-e{e}", e, 1 if (s, e) in seen else 0, f"E{e}") for e in eps
        ])
    return LocalShow(id, title or f"local-show-{id}", provider, provider_id), tree


# --- fakes --------------------------------------------------------------------

class FakeLocal:
    """In-memory LocalCatalogClient; mark_watched updates the stored items."""

    def __init__(self, movies: Iterable[LocalMovie] = (), shows: Iterable[tuple[LocalShow, dict[str, LocalSeason]]] = (),
                 *, fail: Iterable[str] = (), raise_on: Iterable[str] = ()) -> None:
        self.movies = list(movies)
        self.shows: list[LocalShow] = []
        self.seasons: dict[str, list[str]] = {}
        self.tree: dict[str, LocalSeason] = {}
        for show, tree in shows:
            self.shows.append(show)
            self.seasons[show.id] = list(tree)
            self.tree.update(tree)
        self.fail = set(fail)
        self.raise_on = set(raise_on)
        self.calls: list[tuple[str, Any]] = []

    def _res(self, name: str, arg: Any, value: Any) -> ApiResult[Any]:
        self.calls.append((name, arg))
        if name in self.raise_on:
            raise RuntimeError(f"{name} exploded")
        if name in self.fail:
            return ApiResult.failure(f"{name} failed", 500)
        return ApiResult.success(value)

    def names(self) -> list[str]:
        return [n for n, _ in self.calls]

    async def fetch_movies(self) -> ApiResult[list[LocalMovie]]:
        await asyncio.sleep(0)
        return self._res("fetch_movies", None, list(self.movies))

    async def fetch_shows(self) -> ApiResult[list[LocalShow]]:
        await asyncio.sleep(0)
        return self._res("fetch_shows", None, [replace(s, seasons=[]) for s in self.shows])

    async def populate_seasons(self, show: LocalShow) -> ApiResult[LocalShow]:
        await asyncio.sleep(0)
        seasons = [LocalSeason(sid, self.tree[sid].number) for sid in self.seasons.get(show.id, [])]
        return self._res("populate_seasons", show.id, replace(show, seasons=seasons))

    async def populate_episodes(self, season: LocalSeason) -> ApiResult[LocalSeason]:
        await asyncio.sleep(0)
        full = self.tree.get(season.id)
        eps = list(full.episodes) if full is not None else []
        return self._res("populate_episodes", season.id, LocalSeason(season.id, season.number, eps))

    async def mark_watched(self, item_id: str) -> ApiResult[None]:
        await asyncio.sleep(0)
        res = self._res("mark_watched", item_id, None)
        if res.ok:
            self.movies = [replace(m, view_count=m.view_count + 1) if m.id == item_id else m for m in self.movies]
            for s in self.tree.values():
                s.episodes = [replace(e, view_count=e.view_count + 1) if e.id == item_id else e for e in s.episodes]
        return res


class FakeRemote:
    """In-memory RemoteTrackerClient; writes are applied to the collected/watched state."""

    def __init__(
        self,
        *,
        collected_movies: Iterable[RemoteMovie] = (),
        watched_movies: Iterable[RemoteMovie] = (),
        catalog: Iterable[RemoteShow] = (),
        collected_eps: Optional[dict[int, set[tuple[int, int]]]] = None,
        watched_eps: Optional[dict[int, set[tuple[int, int]]]] = None,
        search: Optional[dict[tuple[str, str], Any]] = None,
        fail: Iterable[str] = (),
        raise_on: Iterable[str] = (),
    ) -> None:
        self.collected_movies = list(collected_movies)
        self.watched_movies = list(watched_movies)
        self.catalog = {s.ids.trakt: s for s in catalog}
        self.collected_eps = {k: set(v) for k, v in (collected_eps or {}).items()}
        self.watched_eps = {k: set(v) for k, v in (watched_eps or {}).items()}
        self.search = dict(search or {})
        self.fail = set(fail)
        self.raise_on = set(raise_on)
        self.calls: list[tuple[str, Any]] = []

    # bookkeeping
    def _res(self, name: str, arg: Any, value: Any = None) -> ApiResult[Any]:
        self.calls.append((name, arg))
        if name in self.raise_on:
            raise RuntimeError(f"{name} exploded")
        if name in self.fail:
            return ApiResult.failure(f"{name} failed", 500)
        return ApiResult.success(value)

    def names(self) -> list[str]:
        return [n for n, _ in self.calls]

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)

    def writes(self) -> list[tuple[str, Any]]:
        return [(n, a) for n, a in self.calls if n in WRITES]

    def _shows_view(self, eps: dict[int, set[tuple[int, int]]], plays: int) -> list[RemoteShow]:
        out: list[RemoteShow] = []
        for sid, keys in eps.items():
            full = self.catalog.get(sid)
            if full is None:
                continue
            seasons = []
            for s in full.seasons:
                chosen = tuple(replace(e, plays=plays) for e in s.episodes if (s.number, e.number) in keys)
                if chosen:
                    seasons.append(replace(s, episodes=chosen))
            out.append(replace(full, seasons=tuple(seasons)))
        return out

    # catalogs
    async def fetch_collected_movies(self) -> ApiResult[list[RemoteMovie]]:
        await asyncio.sleep(0)
        return self._res("fetch_collected_movies", None, list(self.collected_movies))

    async def fetch_watched_movies(self) -> ApiResult[list[RemoteMovie]]:
        await asyncio.sleep(0)
        return self._res("fetch_watched_movies", None, list(self.watched_movies))

    async def fetch_collected_shows(self) -> ApiResult[list[RemoteShow]]:
        await asyncio.sleep(0)
        return self._res("fetch_collected_shows", None, self._shows_view(self.collected_eps, 0))

    async def fetch_watched_shows(self) -> ApiResult[list[RemoteShow]]:
        await asyncio.sleep(0)
        return self._res("fetch_watched_shows", None, self._shows_view(self.watched_eps, 1))

    # lookups
    async def search_by_external_id(self, kind: Any, external_id: str, media_type: Optional[str] = None) -> ApiResult[Any]:
        await asyncio.sleep(0)
        key = (getattr(kind, "value", kind), external_id)
        return self._res("search_by_external_id", key, self.search.get(key))

    async def fetch_show(self, show_id: int) -> ApiResult[RemoteShow]:
        await asyncio.sleep(0)
        full = self.catalog.get(show_id)
        return self._res("fetch_show", show_id, replace(full, seasons=()) if full else None)

    async def fetch_seasons(self, show_id: int) -> ApiResult[list[RemoteSeason]]:
        await asyncio.sleep(0)
        full = self.catalog.get(show_id)
        return self._res("fetch_seasons", show_id, list(full.seasons) if full else None)

    async def fetch_season(self, show_id: int, season: int) -> ApiResult[RemoteSeason]:
        await asyncio.sleep(0)
        full = self.catalog.get(show_id)
        return self._res("fetch_season", (show_id, season), full.season(season) if full else None)

    async def fetch_episode(self, show_id: int, season: int, episode: int) -> ApiResult[RemoteEpisode]:
        await asyncio.sleep(0)
        full = self.catalog.get(show_id)
        s = full.season(season) if full else None
        return self._res("fetch_episode", (show_id, season, episode), s.episode(episode) if s else None)

    # writes
    async def add_to_collection(self, items: list[Any]) -> ApiResult[Any]:
        await asyncio.sleep(0)
        res = self._res("add_to_collection", list(items), {"added": len(items)})
        if res.ok:
            for it in items:
                if isinstance(it, RemoteMovie) and all(m.ids.trakt != it.ids.trakt for m in self.collected_movies):
                    self.collected_movies.append(replace(it, plays=0))
                elif isinstance(it, RemoteShow):
                    self.collected_eps.setdefault(it.ids.trakt, set())
                elif isinstance(it, RemoteEpisode):
                    self.collected_eps.setdefault(it.show_id, set()).add((it.season, it.number))
        return res

    async def add_watched_history(self, items: list[Any]) -> ApiResult[Any]:
        await asyncio.sleep(0)
        res = self._res("add_watched_history", list(items), {"added": len(items)})
        if res.ok:
            for it in items:
                if isinstance(it, RemoteMovie) and all(m.ids.trakt != it.ids.trakt for m in self.watched_movies):
                    self.watched_movies.append(replace(it, plays=1))
                elif isinstance(it, RemoteEpisode):
                    self.watched_eps.setdefault(it.show_id, set()).add((it.season, it.number))
        return res

    async def remove_from_collection(self, items: list[Any]) -> ApiResult[Any]:
        await asyncio.sleep(0)
        res = self._res("remove_from_collection", list(items), {"deleted": len(items)})
        if res.ok:
            for it in items:
                if isinstance(it, RemoteMovie):
                    self.collected_movies = [m for m in self.collected_movies if m.ids.trakt != it.ids.trakt]
                elif isinstance(it, RemoteEpisode):
                    self.collected_eps.get(it.show_id, set()).discard((it.season, it.number))
        return res


# --- fixtures -----------------------------------------------------------------

def make_context(local: Any, remote: Any, *, process: tuple[int, str] = PROCESS_MOVIES, **kw: Any) -> RunContext:
    channel = ProgressChannel(keep_history=True)
    stats = Stats()
    reporter = ProgressReporter(channel, process, stats=stats)
    return RunContext(local=local, remote=remote, reporter=reporter, cancel=asyncio.Event(), stats=stats, **kw)


def statuses(ctx: RunContext) -> list[str]:
    return [e.status.value for e in (ctx.reporter.channel.history or [])]


@pytest.fixture()
def config_base(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("CONFIG_BASE", str(tmp_path))
    return tmp_path
