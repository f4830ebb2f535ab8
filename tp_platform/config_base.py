# tp_platform/config_base.py
from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .id_map import MOVIE_MATCH, MOVIE_SEARCH, SHOW_MATCH, SHOW_SEARCH, SHOW_UNSUPPORTED

# ------------------------------------------------------------
# Base dir resolution
# ------------------------------------------------------------
def CONFIG_BASE() -> Path:
    """
    Determine the base directory for config files.

    Priority:
      1) $CONFIG_BASE if set
      2) /config (when running in a container that mounts /config)
      3) Project root (one level up from this package)
    """
    env = os.getenv("CONFIG_BASE")
    if env:
        return Path(env)

    if Path("/app").exists():
        return Path("/config")

    return Path(__file__).resolve().parents[1]


# Default config structure
DEFAULT_CFG: Dict[str, Any] = {
    # --- Local media server ---------------------------------------------------
    "plex": {
        "server_url": "",                               # http(s)://host:32400. If empty, `servers` / `server_name` are used.
        "account_token": "",                            # Plex token (X-Plex-Token)
        "server_name": "",                              # Server to pick from `servers` or from the account resources
        "servers": [],                                  # [{"name": "...", "url": "..."}]
        "client_id": "",                                # X-Plex-Client-Identifier
        "verify_ssl": False,                            # Verify TLS certificates
        "timeout": 10.0,                                # HTTP timeout (seconds)
        "max_retries": 3,                               # Retry budget for metadata fetches
        "libraries": [],                                # Section keys whitelist (empty = all)
    },

    # --- Remote tracker -------------------------------------------------------
    "trakt": {
        "client_id": "",                                # From your Trakt app (trakt-api-key)
        "access_token": "",                             # OAuth2 access token
        "timeout": 10,                                  # HTTP timeout (seconds)
        "max_retries": 5,                               # Retry budget for API calls (429/5xx backoff)
    },

    # --- Sync agent -----------------------------------------------------------
    "sync": {
        "movies": True,                                 # Run the movies process
        "shows": True,                                  # Run the TV shows process
        "batch_limit": 2,                               # Items reconciled concurrently per batch
        "batch_limit_by_process": {},                   # {"movies": 4, "shows": 1}
        "remove_from_collection": False,                # Execute removal of remote-only items (off = report only)
        "allow_mass_delete": True,                      # If False, block removals above suspect_shrink_ratio
        "suspect_shrink_ratio": 0.10,                   # Fraction of the remote collection considered suspect
        "write_pause_ms": 500,                          # Fixed pause after every remote write
        "providers": {
            "movie_match": dict(MOVIE_MATCH),
            "show_match": dict(SHOW_MATCH),
            "movie_search": dict(MOVIE_SEARCH),
            "show_search": dict(SHOW_SEARCH),
            "show_unsupported": list(SHOW_UNSUPPORTED),
        },
    },

    # --- Runtime / Diagnostics ----------------------------------------------
    "runtime": {
        "debug": False,                                 # Extra verbose logging (debug level)
        "log_level": "info",                            # silent | error | warn | info | debug
        "log_json": "",                                 # Optional path of a JSON-lines log file
    },
}


# ------------------------------------------------------------
# Helpers: paths, IO, merging, legacy keys
# ------------------------------------------------------------
def config_path() -> Path:
    return CONFIG_BASE() / "config.json"


def _read_json(p: Path) -> Dict[str, Any]:
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def _write_json_atomic(p: Path, data: Dict[str, Any]) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(f".{os.getpid()}.tmp")
    with tmp.open("w", encoding="utf-8", newline="\n") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    tmp.replace(p)


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)  # type: ignore[assignment]
        else:
            out[k] = v
    return out


def _map_legacy(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Translate the old console-client keys (traktConfig/plexConfig) into sections."""
    out: Dict[str, Any] = {k: v for k, v in raw.items() if k not in ("traktConfig", "plexConfig", "removeFromCollection")}

    tc = raw.get("traktConfig")
    if isinstance(tc, dict):
        trakt = dict(out.get("trakt") or {})
        if tc.get("clientId"):
            trakt.setdefault("client_id", str(tc["clientId"]))
        if tc.get("key"):
            trakt.setdefault("access_token", str(tc["key"]))
        out["trakt"] = trakt

    pc = raw.get("plexConfig")
    if isinstance(pc, dict):
        plex = dict(out.get("plex") or {})
        if pc.get("plexServerKey"):
            plex.setdefault("account_token", str(pc["plexServerKey"]))
        if pc.get("clientSecret"):
            plex.setdefault("client_id", str(pc["clientSecret"]))
        if pc.get("server"):
            plex.setdefault("server_name", str(pc["server"]))
        servers = pc.get("servers")
        if isinstance(servers, list):
            mapped = []
            for s in servers:
                if not isinstance(s, dict):
                    continue
                name = s.get("name") or s.get("Name") or ""
                url = s.get("url") or s.get("Url") or ""
                if url:
                    mapped.append({"name": str(name), "url": str(url)})
            plex.setdefault("servers", mapped)
        out["plex"] = plex

    if "removeFromCollection" in raw:
        sync = dict(out.get("sync") or {})
        sync.setdefault("remove_from_collection", bool(raw["removeFromCollection"]))
        out["sync"] = sync

    return out


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------
def load_config(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """
    Read config.json (or `path`) and merge it over DEFAULT_CFG.
    A missing file yields the defaults; a malformed one raises ValueError.
    """
    p = Path(path) if path else config_path()
    user_cfg: Dict[str, Any] = {}
    if p.exists():
        try:
            user_cfg = _read_json(p)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid config file {p}: {e}") from e
        if not isinstance(user_cfg, dict):
            raise ValueError(f"invalid config file {p}: expected an object")
    return _deep_merge(DEFAULT_CFG, _map_legacy(user_cfg))


def save_config(cfg: Dict[str, Any], path: Optional[str | Path] = None) -> None:
    _write_json_atomic(Path(path) if path else config_path(), dict(cfg or {}))
