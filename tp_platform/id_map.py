# tp_platform/id_map.py
# Identity matching between local (Plex) items and remote (Trakt) records.
# - Parse the remote cross-reference id set (tolerant: bad values become "absent").
# - Extract the (provider, id) match key from Plex GUIDs.
# - Table-driven local->remote matching and remote->remote comparison.

from __future__ import annotations
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, NamedTuple, Optional, Sequence, Tuple, TypeVar

__all__ = [
    "RemoteIds", "MatchKey", "MatchOutcome",
    "MOVIE_MATCH", "SHOW_MATCH", "MOVIE_SEARCH", "SHOW_SEARCH", "SHOW_UNSUPPORTED",
    "external_ref", "match_outcome", "matches", "first_match", "matches_ids",
]

# Default policy tables: local provider name -> remote id field.
MOVIE_MATCH: Mapping[str, str] = {"imdb": "imdb", "tmdb": "tmdb", "themoviedb": "tmdb"}
SHOW_MATCH: Mapping[str, str] = {"imdb": "imdb", "tmdb": "tmdb", "thetvdb": "tvdb", "tvrage": "tvrage"}
# local provider name -> search id kind
MOVIE_SEARCH: Mapping[str, str] = {"imdb": "imdb", "themoviedb": "tmdb", "tmdb": "tmdb"}
SHOW_SEARCH: Mapping[str, str] = {"thetvdb": "tvdb"}
SHOW_UNSUPPORTED: Tuple[str, ...] = ("themoviedb",)

# --- tiny utils ---------------------------------------------------------------

def _norm_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None

def _parse_uint(v: Any) -> Optional[int]:
    """Unsigned integer or None; never raises."""
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v if v >= 0 else None
    s = _norm_str(v)
    if not s or not s.isdigit():
        return None
    return int(s)

# --- Remote id set ------------------------------------------------------------

@dataclass(frozen=True)
class RemoteIds:
    trakt: Optional[int] = None
    slug: Optional[str] = None
    imdb: Optional[str] = None
    tmdb: Optional[int] = None
    tvdb: Optional[int] = None
    tvrage: Optional[int] = None

    @property
    def has_any_id(self) -> bool:
        return any(v is not None for v in (self.trakt, self.slug, self.imdb, self.tmdb, self.tvdb, self.tvrage))

    @classmethod
    def from_mapping(cls, ids: Mapping[str, Any] | None) -> "RemoteIds":
        if not isinstance(ids, Mapping):
            return cls()
        return cls(
            trakt=_parse_uint(ids.get("trakt")),
            slug=_norm_str(ids.get("slug")),
            imdb=_norm_str(ids.get("imdb")),
            tmdb=_parse_uint(ids.get("tmdb")),
            tvdb=_parse_uint(ids.get("tvdb")),
            tvrage=_parse_uint(ids.get("tvrage")),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in (
            ("trakt", self.trakt), ("slug", self.slug), ("imdb", self.imdb),
            ("tmdb", self.tmdb), ("tvdb", self.tvdb), ("tvrage", self.tvrage),
        ) if v is not None}

    def field(self, name: str) -> Any:
        return getattr(self, name, None) if name in ("imdb", "tmdb", "tvdb", "tvrage", "trakt") else None


class MatchKey(NamedTuple):
    provider: str
    provider_id: str

# --- Plex GUID to match key ---------------------------------------------------

# com.plexapp.agents.imdb://tt0111161?lang=en
_LEGACY_GUID = re.compile(r"\.(?P<provider>[a-z]+)://(?P<id>[^?]+)")
# <Guid id="imdb://tt0111161"/> children of new-agent items
_CHILD_GUID = re.compile(r"^(?P<scheme>[a-z]+)://(?P<id>[^?]+)", re.I)
_CHILD_PROVIDER = {"imdb": "imdb", "tmdb": "tmdb", "tvdb": "thetvdb"}

def external_ref(
    guid: Optional[str],
    guids: Iterable[str] = (),
    prefer: Sequence[str] = ("imdb", "tmdb", "tvdb"),
) -> Optional[MatchKey]:
    """
    Match key from a Plex item. Legacy agent GUIDs carry the provider in the
    agent name; new-agent (plex://) items carry it in their Guid children,
    which are tried in `prefer` order. None when nothing usable is present.
    """
    g = _norm_str(guid)
    if g and not g.lower().startswith("plex://"):
        m = _LEGACY_GUID.search(g)
        if m:
            return MatchKey(m.group("provider"), m.group("id"))

    found: Dict[str, str] = {}
    for raw in guids or ():
        m = _CHILD_GUID.match(_norm_str(raw) or "")
        if not m:
            continue
        scheme = m.group("scheme").lower()
        if scheme in _CHILD_PROVIDER:
            found.setdefault(scheme, m.group("id"))
    for scheme in prefer:
        if scheme in found:
            return MatchKey(_CHILD_PROVIDER[scheme], found[scheme])
    return None

# --- Matching -----------------------------------------------------------------

class MatchOutcome(Enum):
    MATCH = "match"
    NO_MATCH = "no_match"
    NOT_SUPPORTED = "not_supported"


def match_outcome(
    provider: Optional[str],
    provider_id: Optional[str],
    ids: RemoteIds,
    table: Mapping[str, str] = MOVIE_MATCH,
) -> MatchOutcome:
    field = table.get(str(provider or "").lower())
    if not field:
        return MatchOutcome.NOT_SUPPORTED
    remote = ids.field(field)
    if remote is None:
        return MatchOutcome.NO_MATCH
    if field == "imdb":
        return MatchOutcome.MATCH if provider_id is not None and remote == provider_id else MatchOutcome.NO_MATCH
    local = _parse_uint(provider_id)
    if local is None:
        return MatchOutcome.NO_MATCH
    return MatchOutcome.MATCH if local == remote else MatchOutcome.NO_MATCH


def matches(
    provider: Optional[str],
    provider_id: Optional[str],
    ids: RemoteIds,
    table: Mapping[str, str] = MOVIE_MATCH,
) -> bool:
    return match_outcome(provider, provider_id, ids, table) is MatchOutcome.MATCH


T = TypeVar("T")

def first_match(
    provider: Optional[str],
    provider_id: Optional[str],
    candidates: Iterable[T],
    table: Mapping[str, str] = MOVIE_MATCH,
) -> Optional[T]:
    """First candidate (anything with an `ids: RemoteIds`) matching the local key."""
    if not table.get(str(provider or "").lower()):
        return None
    for c in candidates:
        if matches(provider, provider_id, getattr(c, "ids"), table):
            return c
    return None


def matches_ids(a: Optional[RemoteIds], b: Optional[RemoteIds]) -> bool:
    """Two remote records are the same when both carry ids and their trakt ids agree."""
    if a is None or b is None:
        return False
    if not (a.has_any_id and b.has_any_id):
        return False
    return a.trakt is not None and b.trakt is not None and a.trakt == b.trakt
