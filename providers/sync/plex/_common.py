# /providers/sync/plex/_common.py
# Plex Module for common utilities
from __future__ import annotations

import os
import uuid
from typing import Any, Mapping

from tp_platform.id_map import external_ref
from tp_platform.agent._types import LocalEpisode, LocalMovie, LocalSeason, LocalShow

__all__ = [
    "CLIENT_ID",
    "plex_headers",
    "parse_int_or_none",
    "guid_strings",
    "movie_from_plex",
    "show_from_plex",
    "season_from_plex",
    "episode_from_plex",
]

CLIENT_ID = f"traktplex-{uuid.uuid4().hex[:8]}"

# preferred Guid child per media kind (new Plex agent)
MOVIE_GUID_ORDER = ("imdb", "tmdb", "tvdb")
SHOW_GUID_ORDER = ("tvdb", "imdb", "tmdb")


def plex_headers(token: str | None = None, client_id: str | None = None,
                 extra: Mapping[str, str] | None = None) -> dict[str, str]:
    ua = os.environ.get("TP_UA", "TraktPlex/1.0 (Plex)")
    headers: dict[str, str] = {
        "Accept": "application/json",
        "User-Agent": ua,
        "X-Plex-Product": "TraktPlex",
        "X-Plex-Version": "1.0",
        "X-Plex-Client-Identifier": client_id or CLIENT_ID,
    }
    if token:
        headers["X-Plex-Token"] = token
    if extra:
        headers.update({str(k): str(v) for k, v in extra.items()})
    return headers


def parse_int_or_none(v: Any) -> int | None:
    if v is None:
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def guid_strings(obj: Any) -> list[str]:
    out: list[str] = []
    for g in getattr(obj, "guids", None) or []:
        gid = getattr(g, "id", None) or (g if isinstance(g, str) else None)
        if gid:
            out.append(str(gid))
    return out


def movie_from_plex(obj: Any) -> LocalMovie:
    ref = external_ref(getattr(obj, "guid", None), guid_strings(obj), MOVIE_GUID_ORDER)
    return LocalMovie(
        id=str(getattr(obj, "ratingKey", "")),
        title=str(getattr(obj, "title", "") or ""),
        provider=ref.provider if ref else None,
        provider_id=ref.provider_id if ref else None,
        view_count=parse_int_or_none(getattr(obj, "viewCount", 0)) or 0,
        year=parse_int_or_none(getattr(obj, "year", None)),
    )


def show_from_plex(obj: Any) -> LocalShow:
    ref = external_ref(getattr(obj, "guid", None), guid_strings(obj), SHOW_GUID_ORDER)
    return LocalShow(
        id=str(getattr(obj, "ratingKey", "")),
        title=str(getattr(obj, "title", "") or ""),
        provider=ref.provider if ref else None,
        provider_id=ref.provider_id if ref else None,
        year=parse_int_or_none(getattr(obj, "year", None)),
    )


def season_from_plex(obj: Any) -> LocalSeason:
    return LocalSeason(
        id=str(getattr(obj, "ratingKey", "")),
        number=parse_int_or_none(getattr(obj, "index", None)) or 0,
    )


def episode_from_plex(obj: Any) -> LocalEpisode:
    return LocalEpisode(
        id=str(getattr(obj, "ratingKey", "")),
        number=parse_int_or_none(getattr(obj, "index", None)) or 0,
        view_count=parse_int_or_none(getattr(obj, "viewCount", 0)) or 0,
        title=str(getattr(obj, "title", "") or ""),
    )
