# /providers/sync/trakt/_common.py

from __future__ import annotations
import os
from typing import Any, Dict, Iterable, List, Mapping, Optional

from tp_platform.id_map import RemoteIds
from tp_platform.agent._types import RemoteEpisode, RemoteMovie, RemoteSeason, RemoteShow

# ── endpoints ─────────────────────────────────────────────────────────────────
TRAKT_BASE = "https://api.trakt.tv"

COLLECTION_MOVIES = f"{TRAKT_BASE}/sync/collection/movies"
COLLECTION_SHOWS = f"{TRAKT_BASE}/sync/collection/shows"
WATCHED_MOVIES = f"{TRAKT_BASE}/sync/watched/movies"
WATCHED_SHOWS = f"{TRAKT_BASE}/sync/watched/shows"
COLLECTION_ADD = f"{TRAKT_BASE}/sync/collection"
COLLECTION_REMOVE = f"{TRAKT_BASE}/sync/collection/remove"
HISTORY_ADD = f"{TRAKT_BASE}/sync/history"

def search_url(kind: str, external_id: str) -> str:
    return f"{TRAKT_BASE}/search/{kind}/{external_id}"

def show_url(show_id: int) -> str:
    return f"{TRAKT_BASE}/shows/{show_id}"

def seasons_url(show_id: int) -> str:
    return f"{TRAKT_BASE}/shows/{show_id}/seasons"

def season_url(show_id: int, season: int) -> str:
    return f"{TRAKT_BASE}/shows/{show_id}/seasons/{season}"

def episode_url(show_id: int, season: int, episode: int) -> str:
    return f"{TRAKT_BASE}/shows/{show_id}/seasons/{season}/episodes/{episode}"

# ── headers ───────────────────────────────────────────────────────────────────
UA = os.environ.get("TP_UA", "TraktPlex/1.0 (Trakt)")

def build_headers(arg1: Any, access_token: str | None = None) -> Dict[str, str]:
    if isinstance(arg1, Mapping) and access_token is None:
        t = (arg1.get("trakt") or arg1)
        client_id = str(t.get("client_id") or "").strip()
        token     = str(t.get("access_token") or "").strip()
    else:
        client_id = str(arg1 or "").strip()
        token     = str(access_token or "").strip()

    h = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "trakt-api-version": "2",
        "trakt-api-key": client_id,
        "User-Agent": UA,
    }
    if token:
        h["Authorization"] = f"Bearer {token}"
    return h

# ── rows -> records ───────────────────────────────────────────────────────────

def _int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default

def _opt_int(v: Any) -> Optional[int]:
    try:
        return int(v) if v is not None else None
    except (TypeError, ValueError):
        return None

def movie_from_row(row: Mapping[str, Any]) -> Optional[RemoteMovie]:
    node = row.get("movie") if isinstance(row.get("movie"), Mapping) else row
    if not isinstance(node, Mapping):
        return None
    return RemoteMovie(
        ids=RemoteIds.from_mapping(node.get("ids")),
        title=str(node.get("title") or ""),
        year=_opt_int(node.get("year")),
        plays=_int(row.get("plays")),
    )

def episode_from_node(node: Mapping[str, Any], *, season: Optional[int] = None,
                      show_id: Optional[int] = None) -> RemoteEpisode:
    return RemoteEpisode(
        season=_int(node.get("season"), season if season is not None else 0),
        number=_int(node.get("number")),
        ids=RemoteIds.from_mapping(node.get("ids")),
        title=str(node.get("title") or ""),
        plays=_int(node.get("plays")),
        show_id=show_id,
    )

def season_from_node(node: Mapping[str, Any], *, show_id: Optional[int] = None) -> RemoteSeason:
    number = _int(node.get("number"))
    eps = tuple(
        episode_from_node(e, season=number, show_id=show_id)
        for e in (node.get("episodes") or [])
        if isinstance(e, Mapping)
    )
    return RemoteSeason(number=number, episodes=eps, ids=RemoteIds.from_mapping(node.get("ids")))

def show_from_node(node: Mapping[str, Any], seasons: Iterable[Mapping[str, Any]] = ()) -> RemoteShow:
    ids = RemoteIds.from_mapping(node.get("ids"))
    return RemoteShow(
        ids=ids,
        title=str(node.get("title") or ""),
        year=_opt_int(node.get("year")),
        seasons=tuple(season_from_node(s, show_id=ids.trakt) for s in seasons if isinstance(s, Mapping)),
    )

def show_from_row(row: Mapping[str, Any]) -> Optional[RemoteShow]:
    node = row.get("show")
    if not isinstance(node, Mapping):
        return None
    return show_from_node(node, row.get("seasons") or [])

def search_candidate(rows: Any, media_type: Optional[str]) -> Any:
    """First search hit of the wanted type as a RemoteMovie / RemoteShow, else None."""
    if not isinstance(rows, list):
        return None
    for r in rows:
        if not isinstance(r, Mapping):
            continue
        t = str(r.get("type") or "").lower()
        if media_type and t != media_type:
            continue
        if t == "movie" and isinstance(r.get("movie"), Mapping):
            return movie_from_row(r)
        if t == "show" and isinstance(r.get("show"), Mapping):
            return show_from_node(r["show"])
    return None

# ── records -> sync bodies ────────────────────────────────────────────────────

def _ids_for_trakt(ids: RemoteIds) -> Dict[str, Any]:
    if ids.trakt is not None:
        return {"trakt": ids.trakt}
    return ids.as_dict()

def build_sync_body(items: Iterable[Any]) -> Dict[str, Any]:
    """{movies, shows, episodes} body for /sync/collection, /sync/history and remove."""
    movies: List[Dict[str, Any]] = []
    shows: List[Dict[str, Any]] = []
    episodes: List[Dict[str, Any]] = []
    # episodes without own ids are addressed through their show
    by_show: Dict[int, Dict[int, List[Dict[str, Any]]]] = {}

    for it in items or []:
        if isinstance(it, RemoteMovie):
            ids = _ids_for_trakt(it.ids)
            if ids:
                movies.append({"ids": ids})
        elif isinstance(it, RemoteShow):
            ids = _ids_for_trakt(it.ids)
            if ids:
                shows.append({"ids": ids})
        elif isinstance(it, RemoteEpisode):
            ids = _ids_for_trakt(it.ids)
            if ids:
                episodes.append({"ids": ids})
            elif it.show_id is not None:
                by_show.setdefault(it.show_id, {}).setdefault(it.season, []).append({"number": it.number})

    for sid, seasons in by_show.items():
        shows.append({
            "ids": {"trakt": sid},
            "seasons": [{"number": n, "episodes": eps} for n, eps in sorted(seasons.items())],
        })

    body: Dict[str, Any] = {}
    if movies:   body["movies"] = movies
    if shows:    body["shows"] = shows
    if episodes: body["episodes"] = episodes
    return body
