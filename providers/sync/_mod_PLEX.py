# /providers/sync/_mod_PLEX.py
# TraktPlex - Plex local catalog module
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional

__VERSION__ = "1.0.0"
__all__ = ["PLEXModule", "PLEXClient", "PLEXConfig", "PLEXError", "PLEXAuthError", "PLEXNotFound"]

try:
    from plexapi.exceptions import NotFound, Unauthorized
    from plexapi.myplex import MyPlexAccount
    from plexapi.server import PlexServer
except Exception as e:
    raise RuntimeError("plexapi is required for _mod_PLEX") from e

import requests

from tp_platform._logging import log as _log
from tp_platform.agent._types import ApiResult, LocalMovie, LocalSeason, LocalShow
from .plex._common import (
    episode_from_plex,
    movie_from_plex,
    plex_headers,
    season_from_plex,
    show_from_plex,
)

log = _log.child("PLEX")


class PLEXError(RuntimeError):
    pass


class PLEXAuthError(PLEXError):
    pass


class PLEXNotFound(PLEXError):
    pass


@dataclass
class PLEXConfig:
    token: str | None = None
    baseurl: str | None = None
    client_id: str | None = None
    server_name: str | None = None
    servers: list[dict[str, str]] = field(default_factory=list)
    verify_ssl: bool = False
    timeout: float = 10.0
    max_retries: int = 3
    libraries: list[str] = field(default_factory=list)

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "PLEXConfig":
        p = dict(cfg.get("plex") or {})
        return cls(
            token=p.get("account_token") or p.get("token") or None,
            baseurl=p.get("server_url") or p.get("baseurl") or None,
            client_id=p.get("client_id") or None,
            server_name=p.get("server_name") or p.get("server") or None,
            servers=[dict(s) for s in (p.get("servers") or []) if isinstance(s, Mapping)],
            verify_ssl=bool(p.get("verify_ssl", False)),
            timeout=float(p.get("timeout") or 10.0),
            max_retries=int(p.get("max_retries") or 3),
            libraries=[str(x) for x in (p.get("libraries") or [])],
        )


class PLEXClient:
    def __init__(self, cfg: PLEXConfig):
        self.cfg = cfg
        self.server: PlexServer | None = None
        self._account: MyPlexAccount | None = None
        self.session = requests.Session()
        self.session.verify = bool(cfg.verify_ssl)
        self.session.headers.update(plex_headers(client_id=cfg.client_id))

    def _server_url(self) -> str | None:
        if self.cfg.baseurl:
            return self.cfg.baseurl
        if self.cfg.servers:
            if self.cfg.server_name:
                for s in self.cfg.servers:
                    if str(s.get("name") or "").lower() == self.cfg.server_name.lower():
                        return s.get("url") or None
            if len(self.cfg.servers) == 1:
                return self.cfg.servers[0].get("url") or None
        return None

    def connect(self) -> PLEXClient:
        if not self.cfg.token:
            raise PLEXAuthError("Missing Plex account token")
        try:
            url = self._server_url()
            if url:
                self.server = PlexServer(url, self.cfg.token, session=self.session, timeout=self.cfg.timeout)
            else:
                self._account = MyPlexAccount(token=self.cfg.token, session=self.session)
                res = self._pick_resource(self._account)
                self.server = res.connect(timeout=self.cfg.timeout)
        except PLEXError:
            raise
        except Unauthorized as e:
            raise PLEXAuthError("Plex authorization failed") from e
        except Exception as e:
            msg = str(e).lower()
            if "unauthorized" in msg or "401" in msg:
                raise PLEXAuthError("Plex authorization failed") from e
            raise PLEXError(f"Plex connect failed: {e}") from e
        log.info(f"connected to {getattr(self.server, 'friendlyName', '?')}")
        return self

    def _pick_resource(self, acc: MyPlexAccount):
        servers = [r for r in acc.resources() if "server" in (r.provides or "")]
        if self.cfg.server_name:
            for r in servers:
                if (r.name or "").lower() == self.cfg.server_name.lower():
                    return r
            raise PLEXNotFound(f"Plex server {self.cfg.server_name!r} not found")
        for r in servers:
            if getattr(r, "owned", False):
                return r
        if servers:
            return servers[0]
        raise PLEXNotFound("No Plex Media Server resource found")

    def _require(self) -> PlexServer:
        if self.server is None:
            raise PLEXError("Plex server not connected")
        return self.server

    def libraries(self, types: Iterable[str] = ("movie", "show")):
        wanted = {t.lower() for t in types}
        allowed = {str(x) for x in self.cfg.libraries}
        for sec in self._require().library.sections():
            if (sec.type or "").lower() not in wanted:
                continue
            if allowed and str(sec.key) not in allowed:
                continue
            yield sec

    def _retry(self, fn: Callable[..., Any], *a: Any, **kw: Any) -> Any:
        tries = max(1, self.cfg.max_retries)
        for i in range(tries):
            try:
                return fn(*a, **kw)
            except (NotFound, Unauthorized):
                raise
            except Exception:
                if i >= tries - 1:
                    raise
                time.sleep(0.5 * (i + 1))

    def _guard(self, name: str, fn: Callable[[], Any]) -> ApiResult[Any]:
        try:
            return ApiResult.success(fn())
        except NotFound as e:
            return ApiResult.failure(f"{name}: not found ({e})", 404)
        except (PLEXError, Unauthorized, requests.RequestException) as e:
            log.warn(f"{name} failed: {e}")
            return ApiResult.failure(f"{name}: {e}")

    # --- catalog ----------------------------------------------------------------
    def fetch_movies(self) -> ApiResult[list[LocalMovie]]:
        def _run() -> list[LocalMovie]:
            out: list[LocalMovie] = []
            for sec in self.libraries(("movie",)):
                out.extend(movie_from_plex(m) for m in self._retry(sec.all))
            return out
        return self._guard("fetch_movies", _run)

    def fetch_shows(self) -> ApiResult[list[LocalShow]]:
        def _run() -> list[LocalShow]:
            out: list[LocalShow] = []
            for sec in self.libraries(("show",)):
                out.extend(show_from_plex(s) for s in self._retry(sec.all))
            return out
        return self._guard("fetch_shows", _run)

    def populate_seasons(self, show: LocalShow) -> ApiResult[LocalShow]:
        def _run() -> LocalShow:
            item = self._retry(self._require().fetchItem, int(show.id))
            show.seasons = [season_from_plex(s) for s in self._retry(item.seasons)]
            return show
        return self._guard("populate_seasons", _run)

    def populate_episodes(self, season: LocalSeason) -> ApiResult[LocalSeason]:
        def _run() -> LocalSeason:
            item = self._retry(self._require().fetchItem, int(season.id))
            season.episodes = [episode_from_plex(e) for e in self._retry(item.episodes)]
            return season
        return self._guard("populate_episodes", _run)

    def mark_watched(self, item_id: str) -> ApiResult[None]:
        def _run() -> None:
            item = self._retry(self._require().fetchItem, int(item_id))
            item.markPlayed()
        return self._guard("mark_watched", _run)


class PLEXModule:
    """LocalCatalogClient over PLEXClient; blocking calls run in worker threads."""

    def __init__(self, cfg: Mapping[str, Any], client: Optional[PLEXClient] = None):
        self.client = client or PLEXClient(PLEXConfig.from_config(cfg))

    def connect(self) -> "PLEXModule":
        self.client.connect()
        return self

    async def fetch_movies(self) -> ApiResult[list[LocalMovie]]:
        return await asyncio.to_thread(self.client.fetch_movies)

    async def fetch_shows(self) -> ApiResult[list[LocalShow]]:
        return await asyncio.to_thread(self.client.fetch_shows)

    async def populate_seasons(self, show: LocalShow) -> ApiResult[LocalShow]:
        return await asyncio.to_thread(self.client.populate_seasons, show)

    async def populate_episodes(self, season: LocalSeason) -> ApiResult[LocalSeason]:
        return await asyncio.to_thread(self.client.populate_episodes, season)

    async def mark_watched(self, item_id: str) -> ApiResult[None]:
        return await asyncio.to_thread(self.client.mark_watched, item_id)
