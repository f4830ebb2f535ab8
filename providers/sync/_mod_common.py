# /providers/sync/_mod_common.py
# TraktPlex shared HTTP plumbing: hit counting, rate-limit headers and retries
from __future__ import annotations

import json
import os
import time
from typing import Any, Callable, Mapping
from urllib.parse import urlparse

import requests

from tp_platform._logging import log as _log

__all__ = [
    "HitSession",
    "build_session",
    "parse_rate_limit",
    "safe_json",
    "request_with_retries",
    "label_trakt",
    "RETRY_STATUSES",
]

FeatureLabelFn = Callable[[str, str, Mapping[str, Any]], str]

RETRY_STATUSES: tuple[int, ...] = (429, 500, 502, 503, 504)

log = _log.child("HTTP")


def _segments(url: str) -> list[str]:
    return [s for s in (urlparse(url).path or "/").split("/") if s]


def _path_label(method: str, url: str, kw: Mapping[str, Any]) -> str:
    return "/".join(_segments(url)[:3]).lower() or "unknown"


def label_trakt(method: str, url: str, kw: Mapping[str, Any]) -> str:
    """Map a Trakt URL onto the feature it serves (collection, watched, history, search, shows)."""
    segs = _segments(url)
    head, tail = segs[:2], segs[2] if len(segs) > 2 else ""
    if head == ["sync", "collection"]:
        if tail == "remove":
            return "collection:remove"
        return f"collection:index:{tail}" if tail in ("movies", "shows") else "collection:add"
    if head == ["sync", "watched"]:
        return f"watched:index:{tail}" if tail else "watched:index"
    if head == ["sync", "history"]:
        return "history:remove" if tail == "remove" else "history:add"
    if segs[:1] == ["search"]:
        return "search"
    if segs[:1] == ["shows"]:
        if "episodes" in segs[3:] and len(segs) > 5:
            return "shows:episode"
        return "shows:seasons" if "seasons" in segs else "shows:summary"
    return _path_label(method, url, kw)


class HitSession(requests.Session):
    """Session that tallies requests per feature label for the run stats."""

    def __init__(self, provider: str, feature_label: FeatureLabelFn | None = None):
        super().__init__()
        self.provider = provider
        self._label = feature_label or _path_label
        self._trace = bool(os.getenv("TP_API_HITS"))
        self.hits: dict[str, int] = {}

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:  # type: ignore[override]
        feature = self._label(method.upper(), url, kwargs)
        self.hits[feature] = self.hits.get(feature, 0) + 1
        if self._trace:
            log.debug(f"{self.provider} {method.upper()} {feature}")
        return super().request(method, url, **kwargs)


def build_session(provider: str, *, feature_label: FeatureLabelFn | None = None) -> HitSession:
    return HitSession(provider, feature_label)


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_rate_limit(headers: Mapping[str, Any]) -> dict[str, int | None]:
    out: dict[str, int | None] = {}
    for key in ("limit", "remaining", "reset"):
        suffix = key.capitalize()
        raw = headers.get(f"X-RateLimit-{suffix}") or headers.get(f"RateLimit-{suffix}")
        out[key] = _int_or_none(raw)
    return out


def safe_json(resp: requests.Response) -> Any:
    body = resp.text or ""
    if not body.strip():
        return {}
    try:
        return json.loads(body)
    except ValueError:
        return {}


def _retry_wait(resp: requests.Response | None, attempt: int, backoff_base: float) -> float:
    wait = backoff_base * (2 ** attempt)
    if resp is not None and resp.status_code == 429:
        after = resp.headers.get("Retry-After")
        try:
            wait = max(wait, float(after)) if after else wait
        except ValueError:
            pass
    return wait


def request_with_retries(
    session: requests.Session,
    method: str,
    url: str,
    *,
    timeout: float = 10.0,
    max_retries: int = 3,
    retry_on: tuple[int, ...] = RETRY_STATUSES,
    backoff_base: float = 0.5,
    **kwargs: Any,
) -> requests.Response:
    """Send one request, retrying transport errors and retryable statuses.

    The last retryable response is returned as-is once attempts run out;
    a transport error on the final attempt raises ``requests.RequestException``.
    """
    attempts = max(1, int(max_retries))
    error: requests.RequestException | None = None
    for attempt in range(attempts):
        final = attempt == attempts - 1
        try:
            resp = session.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as e:
            error = e
            if final:
                break
            log.debug(f"{method} {urlparse(url).path} failed ({e}); attempt {attempt + 1}/{attempts}")
            time.sleep(_retry_wait(None, attempt, backoff_base))
            continue
        if resp.status_code not in retry_on or final:
            return resp
        wait = _retry_wait(resp, attempt, backoff_base)
        if resp.status_code == 429:
            remaining = parse_rate_limit(resp.headers)["remaining"]
            log.warn(f"rate limited on {urlparse(url).path}; remaining={remaining} retry in {wait:.1f}s")
        time.sleep(wait)
    raise requests.RequestException(f"request failed after {attempts} attempts: {method} {url}: {error}")
