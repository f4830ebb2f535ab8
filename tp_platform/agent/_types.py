# tp_platform/agent/_types.py
# types and protocols for the sync agent.
from __future__ import annotations

from dataclasses import dataclass, field
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Generic, NamedTuple, Optional, Protocol, TypeVar

from ..id_map import (
    RemoteIds,
    MOVIE_MATCH,
    SHOW_MATCH,
    MOVIE_SEARCH,
    SHOW_SEARCH,
    SHOW_UNSUPPORTED,
)

T = TypeVar("T")


# --- Local side (Plex) --------------------------------------------------------

@dataclass(frozen=True)
class LocalMovie:
    id: str
    title: str
    provider: Optional[str]
    provider_id: Optional[str]
    view_count: int = 0
    year: Optional[int] = None


@dataclass(frozen=True)
class LocalEpisode:
    id: str
    number: int
    view_count: int = 0
    title: str = ""


@dataclass
class LocalSeason:
    id: str
    number: int
    episodes: list[LocalEpisode] = field(default_factory=list)


@dataclass
class LocalShow:
    id: str
    title: str
    provider: Optional[str]
    provider_id: Optional[str]
    year: Optional[int] = None
    seasons: list[LocalSeason] = field(default_factory=list)


# --- Remote side (Trakt) ------------------------------------------------------

@dataclass(frozen=True)
class RemoteMovie:
    ids: RemoteIds
    title: str = ""
    year: Optional[int] = None
    plays: int = 0


@dataclass(frozen=True)
class RemoteEpisode:
    season: int
    number: int
    ids: RemoteIds = field(default_factory=RemoteIds)
    title: str = ""
    plays: int = 0
    show_id: Optional[int] = None


@dataclass(frozen=True)
class RemoteSeason:
    number: int
    episodes: tuple[RemoteEpisode, ...] = ()
    ids: RemoteIds = field(default_factory=RemoteIds)

    def episode(self, number: int) -> Optional[RemoteEpisode]:
        for e in self.episodes:
            if e.number == number:
                return e
        return None


@dataclass(frozen=True)
class RemoteShow:
    ids: RemoteIds
    title: str = ""
    year: Optional[int] = None
    seasons: tuple[RemoteSeason, ...] = ()

    def season(self, number: int) -> Optional[RemoteSeason]:
        for s in self.seasons:
            if s.number == number:
                return s
        return None


class SearchIdType(str, Enum):
    IMDB = "imdb"
    TMDB = "tmdb"
    TVDB = "tvdb"


class EpisodeKey(NamedTuple):
    show_id: int
    season: int
    episode: int


# --- Collaborator results -----------------------------------------------------

@dataclass(frozen=True)
class ApiResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    status: Optional[int] = None

    @classmethod
    def success(cls, value: Any = None, status: Optional[int] = None) -> "ApiResult[Any]":
        return cls(True, value, None, status)

    @classmethod
    def failure(cls, error: str, status: Optional[int] = None) -> "ApiResult[Any]":
        return cls(False, None, error, status)


# --- Provider policy ----------------------------------------------------------

@dataclass(frozen=True)
class ProviderPolicy:
    movie_match: Mapping[str, str] = field(default_factory=lambda: dict(MOVIE_MATCH))
    show_match: Mapping[str, str] = field(default_factory=lambda: dict(SHOW_MATCH))
    movie_search: Mapping[str, str] = field(default_factory=lambda: dict(MOVIE_SEARCH))
    show_search: Mapping[str, str] = field(default_factory=lambda: dict(SHOW_SEARCH))
    show_unsupported: frozenset[str] = frozenset(SHOW_UNSUPPORTED)

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any] | None) -> "ProviderPolicy":
        raw = dict(((cfg or {}).get("sync") or {}).get("providers") or {})
        base = cls()

        def _table(key: str, default: Mapping[str, str]) -> Mapping[str, str]:
            v = raw.get(key)
            if not isinstance(v, Mapping):
                return default
            return {str(k).lower(): str(x).lower() for k, x in v.items()}

        unsupported = raw.get("show_unsupported")
        return cls(
            movie_match=_table("movie_match", base.movie_match),
            show_match=_table("show_match", base.show_match),
            movie_search=_table("movie_search", base.movie_search),
            show_search=_table("show_search", base.show_search),
            show_unsupported=(
                frozenset(str(x).lower() for x in unsupported)
                if isinstance(unsupported, (list, tuple, set, frozenset))
                else base.show_unsupported
            ),
        )

    def search_kind(self, provider: Optional[str], *, show: bool = False) -> Optional[SearchIdType]:
        table = self.show_search if show else self.movie_search
        kind = table.get(str(provider or "").lower())
        try:
            return SearchIdType(kind) if kind else None
        except ValueError:
            return None


# --- Collaborator protocols ---------------------------------------------------

class LocalCatalogClient(Protocol):
    async def fetch_movies(self) -> ApiResult[list[LocalMovie]]: ...
    async def fetch_shows(self) -> ApiResult[list[LocalShow]]: ...
    async def populate_seasons(self, show: LocalShow) -> ApiResult[LocalShow]: ...
    async def populate_episodes(self, season: LocalSeason) -> ApiResult[LocalSeason]: ...
    async def mark_watched(self, item_id: str) -> ApiResult[None]: ...


class RemoteTrackerClient(Protocol):
    async def fetch_collected_movies(self) -> ApiResult[list[RemoteMovie]]: ...
    async def fetch_watched_movies(self) -> ApiResult[list[RemoteMovie]]: ...
    async def fetch_collected_shows(self) -> ApiResult[list[RemoteShow]]: ...
    async def fetch_watched_shows(self) -> ApiResult[list[RemoteShow]]: ...
    async def search_by_external_id(
        self, kind: SearchIdType, external_id: str, media_type: Optional[str] = None
    ) -> ApiResult[Any]: ...
    async def fetch_show(self, show_id: int) -> ApiResult[RemoteShow]: ...
    async def fetch_seasons(self, show_id: int) -> ApiResult[list[RemoteSeason]]: ...
    async def fetch_season(self, show_id: int, season: int) -> ApiResult[RemoteSeason]: ...
    async def fetch_episode(self, show_id: int, season: int, episode: int) -> ApiResult[RemoteEpisode]: ...
    async def add_to_collection(self, items: Sequence[Any]) -> ApiResult[Any]: ...
    async def add_watched_history(self, items: Sequence[Any]) -> ApiResult[Any]: ...
    async def remove_from_collection(self, items: Sequence[Any]) -> ApiResult[Any]: ...
