# /providers/sync/_mod_TRAKT.py
# TraktPlex - Trakt remote tracker module
from __future__ import annotations

__VERSION__ = "1.0.0"
__all__ = ["TRAKTModule", "TRAKTClient", "TRAKTConfig", "TRAKTError"]

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence

import requests

from tp_platform._logging import log as _log
from tp_platform.agent._types import (
    ApiResult,
    RemoteEpisode,
    RemoteMovie,
    RemoteSeason,
    RemoteShow,
    SearchIdType,
)
from ._mod_common import build_session, label_trakt, request_with_retries, safe_json
from .trakt._common import (
    COLLECTION_ADD,
    COLLECTION_MOVIES,
    COLLECTION_REMOVE,
    COLLECTION_SHOWS,
    HISTORY_ADD,
    WATCHED_MOVIES,
    WATCHED_SHOWS,
    build_headers,
    build_sync_body,
    episode_from_node,
    episode_url,
    movie_from_row,
    search_candidate,
    search_url,
    season_from_node,
    season_url,
    seasons_url,
    show_from_node,
    show_from_row,
    show_url,
)

log = _log.child("TRAKT")


class TRAKTError(RuntimeError):
    pass


@dataclass
class TRAKTConfig:
    client_id: str = ""
    access_token: str = ""
    timeout: float = 10.0
    max_retries: int = 5

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "TRAKTConfig":
        t = dict(cfg.get("trakt") or {})
        return cls(
            client_id=str(t.get("client_id") or "").strip(),
            access_token=str(t.get("access_token") or "").strip(),
            timeout=float(t.get("timeout") or 10.0),
            max_retries=int(t.get("max_retries") or 5),
        )


class TRAKTClient:
    """Blocking Trakt API client; every call returns an ApiResult."""

    def __init__(self, cfg: TRAKTConfig, session: Optional[requests.Session] = None):
        if not cfg.client_id:
            raise TRAKTError("Missing Trakt client_id")
        self.cfg = cfg
        self.session = session or build_session("TRAKT", feature_label=label_trakt)
        self.headers = build_headers(cfg.client_id, cfg.access_token)

    # --- HTTP -----------------------------------------------------------------
    def _request(self, method: str, url: str, **kw: Any) -> ApiResult[Any]:
        try:
            r = request_with_retries(
                self.session, method, url,
                headers=self.headers, timeout=self.cfg.timeout, max_retries=self.cfg.max_retries, **kw,
            )
        except requests.RequestException as e:
            log.warn(f"{method} {url} failed: {e}")
            return ApiResult.failure(str(e))
        if r.status_code == 404 and method == "GET":
            return ApiResult.success(None, r.status_code)
        if not r.ok:
            body = (r.text or "")[:200]
            log.warn(f"{method} {url} -> {r.status_code} {body}")
            return ApiResult.failure(f"HTTP {r.status_code}", r.status_code)
        return ApiResult.success(safe_json(r), r.status_code)

    def _get_list(self, url: str, parse: Callable[[Mapping[str, Any]], Any],
                  params: Optional[Mapping[str, Any]] = None) -> ApiResult[List[Any]]:
        res = self._request("GET", url, params=dict(params or {}))
        if not res.ok:
            return res
        rows = res.value if isinstance(res.value, list) else []
        out = [x for x in (parse(r) for r in rows if isinstance(r, Mapping)) if x is not None]
        return ApiResult.success(out, res.status)

    def _post(self, url: str, items: Sequence[Any]) -> ApiResult[Any]:
        body = build_sync_body(items)
        if not body:
            return ApiResult.success({"count": 0})
        return self._request("POST", url, json=body)

    # --- catalogs -------------------------------------------------------------
    def fetch_collected_movies(self) -> ApiResult[List[RemoteMovie]]:
        return self._get_list(COLLECTION_MOVIES, movie_from_row)

    def fetch_watched_movies(self) -> ApiResult[List[RemoteMovie]]:
        return self._get_list(WATCHED_MOVIES, movie_from_row)

    def fetch_collected_shows(self) -> ApiResult[List[RemoteShow]]:
        return self._get_list(COLLECTION_SHOWS, show_from_row)

    def fetch_watched_shows(self) -> ApiResult[List[RemoteShow]]:
        return self._get_list(WATCHED_SHOWS, show_from_row)

    # --- lookups --------------------------------------------------------------
    def search_by_external_id(self, kind: SearchIdType, external_id: str,
                              media_type: Optional[str] = None) -> ApiResult[Any]:
        params = {"type": media_type} if media_type else {}
        res = self._request("GET", search_url(SearchIdType(kind).value, external_id), params=params)
        if not res.ok:
            return res
        return ApiResult.success(search_candidate(res.value, media_type), res.status)

    def fetch_show(self, show_id: int) -> ApiResult[RemoteShow]:
        res = self._request("GET", show_url(show_id))
        if not res.ok or not isinstance(res.value, Mapping):
            return res if not res.ok else ApiResult.success(None, res.status)
        return ApiResult.success(show_from_node(res.value), res.status)

    def fetch_seasons(self, show_id: int) -> ApiResult[List[RemoteSeason]]:
        return self._get_list(seasons_url(show_id), lambda n: season_from_node(n, show_id=show_id),
                              params={"extended": "episodes"})

    def fetch_season(self, show_id: int, season: int) -> ApiResult[RemoteSeason]:
        res = self._request("GET", season_url(show_id, season))
        if not res.ok:
            return res
        rows = res.value if isinstance(res.value, list) else []
        eps = tuple(episode_from_node(e, season=season, show_id=show_id) for e in rows if isinstance(e, Mapping))
        return ApiResult.success(RemoteSeason(number=season, episodes=eps), res.status)

    def fetch_episode(self, show_id: int, season: int, episode: int) -> ApiResult[RemoteEpisode]:
        res = self._request("GET", episode_url(show_id, season, episode))
        if not res.ok or not isinstance(res.value, Mapping):
            return res if not res.ok else ApiResult.success(None, res.status)
        return ApiResult.success(episode_from_node(res.value, season=season, show_id=show_id), res.status)

    # --- writes ---------------------------------------------------------------
    def add_to_collection(self, items: Sequence[Any]) -> ApiResult[Any]:
        return self._post(COLLECTION_ADD, items)

    def add_watched_history(self, items: Sequence[Any]) -> ApiResult[Any]:
        return self._post(HISTORY_ADD, items)

    def remove_from_collection(self, items: Sequence[Any]) -> ApiResult[Any]:
        return self._post(COLLECTION_REMOVE, items)


class TRAKTModule:
    """RemoteTrackerClient over TRAKTClient; blocking calls run in worker threads."""

    def __init__(self, cfg: Mapping[str, Any], client: Optional[TRAKTClient] = None):
        self.client = client or TRAKTClient(TRAKTConfig.from_config(cfg))

    async def _call(self, fn: Callable[..., ApiResult[Any]], *args: Any) -> ApiResult[Any]:
        return await asyncio.to_thread(fn, *args)

    async def fetch_collected_movies(self) -> ApiResult[List[RemoteMovie]]:
        return await self._call(self.client.fetch_collected_movies)

    async def fetch_watched_movies(self) -> ApiResult[List[RemoteMovie]]:
        return await self._call(self.client.fetch_watched_movies)

    async def fetch_collected_shows(self) -> ApiResult[List[RemoteShow]]:
        return await self._call(self.client.fetch_collected_shows)

    async def fetch_watched_shows(self) -> ApiResult[List[RemoteShow]]:
        return await self._call(self.client.fetch_watched_shows)

    async def search_by_external_id(self, kind: SearchIdType, external_id: str,
                                    media_type: Optional[str] = None) -> ApiResult[Any]:
        return await self._call(self.client.search_by_external_id, kind, external_id, media_type)

    async def fetch_show(self, show_id: int) -> ApiResult[RemoteShow]:
        return await self._call(self.client.fetch_show, show_id)

    async def fetch_seasons(self, show_id: int) -> ApiResult[List[RemoteSeason]]:
        return await self._call(self.client.fetch_seasons, show_id)

    async def fetch_season(self, show_id: int, season: int) -> ApiResult[RemoteSeason]:
        return await self._call(self.client.fetch_season, show_id, season)

    async def fetch_episode(self, show_id: int, season: int, episode: int) -> ApiResult[RemoteEpisode]:
        return await self._call(self.client.fetch_episode, show_id, season, episode)

    async def add_to_collection(self, items: Sequence[Any]) -> ApiResult[Any]:
        return await self._call(self.client.add_to_collection, items)

    async def add_watched_history(self, items: Sequence[Any]) -> ApiResult[Any]:
        return await self._call(self.client.add_watched_history, items)

    async def remove_from_collection(self, items: Sequence[Any]) -> ApiResult[Any]:
        return await self._call(self.client.remove_from_collection, items)
