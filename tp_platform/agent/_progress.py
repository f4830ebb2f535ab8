# tp_platform/agent/_progress.py
# progress events and the channel they travel on.
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Optional, Union

from .._logging import log as _log
from ._telemetry import Stats


class ProgressStatus(str, Enum):
    NOTHING = "Nothing"
    MESSAGE = "Message"
    SYNC = "Sync"
    REMOVE = "Remove"
    NOT_FOUND_REMOTE = "NotFoundRemote"
    NOT_WATCHED_REMOTE = "NotWatchedRemote"
    ERROR_ADD_REMOTE = "ErrorAddRemote"
    WATCHED_REMOTE = "WatchedRemote"
    PROCESSING = "Processing"
    NOT_SUPPORTED = "NotSupported"
    ADD_REMOTE = "AddRemote"
    SHOULD_REMOVE = "ShouldRemove"


PROCESS_MOVIES = (1, "Movies")
PROCESS_SHOWS = (2, "TV Shows")


@dataclass(frozen=True)
class ProgressHeader:
    process_id: int
    process_name: str
    item_name: str
    current: int
    total: int
    status: ProgressStatus


@dataclass(frozen=True)
class MessagePayload:
    message: str


@dataclass(frozen=True)
class MoviePayload:
    year: Optional[int] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class EpisodePayload:
    season: Optional[int] = None
    episode: Optional[int] = None
    external_provider_id: Optional[str] = None
    message: Optional[str] = None


Payload = Union[MessagePayload, MoviePayload, EpisodePayload]


@dataclass(frozen=True)
class ProgressEvent:
    header: ProgressHeader
    payload: Payload

    @property
    def status(self) -> ProgressStatus:
        return self.header.status

    @property
    def kind(self) -> str:
        if isinstance(self.payload, MoviePayload):
            return "movie"
        if isinstance(self.payload, EpisodePayload):
            return "episode"
        return "message"


class ProgressChannel:
    """Unbounded queue of ProgressEvents. Producers `emit`, one consumer iterates."""

    _CLOSED = object()

    def __init__(self, *, keep_history: bool = False) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self.history: list[ProgressEvent] | None = [] if keep_history else None

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: ProgressEvent) -> None:
        if self._closed:
            raise RuntimeError("progress channel is closed")
        if self.history is not None:
            self.history.append(event)
        self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)

    def drain(self) -> list[ProgressEvent]:
        """Pop whatever is queued right now without waiting."""
        out: list[ProgressEvent] = []
        while True:
            try:
                ev = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return out
            if ev is self._CLOSED:
                self._queue.put_nowait(ev)
                return out
            out.append(ev)

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            ev = await self._queue.get()
            if ev is self._CLOSED:
                return
            yield ev


class ProgressReporter:
    """Builds events for one process (Movies / TV Shows) and sends them to the channel."""

    def __init__(self, channel: ProgressChannel, process: tuple[int, str], total: int = 0,
                 stats: Stats | None = None) -> None:
        self.channel = channel
        self.process_id, self.process_name = process
        self.total = total
        self.stats = stats
        self.log = _log.child(self.process_name.upper().replace(" ", "_"))

    def _header(self, item_name: str, current: int, status: ProgressStatus) -> ProgressHeader:
        return ProgressHeader(self.process_id, self.process_name, item_name, current, self.total, status)

    def _send(self, event: ProgressEvent) -> ProgressEvent:
        if self.stats is not None:
            self.stats.record(event.header.status)
        self.log.debug(
            f"{event.header.status.value} {event.header.item_name}",
            extra={"current": event.header.current, "total": event.header.total},
        )
        self.channel.emit(event)
        return event

    def message(self, text: str, *, item_name: str = "", current: int = 0,
                status: ProgressStatus = ProgressStatus.MESSAGE) -> ProgressEvent:
        return self._send(ProgressEvent(self._header(item_name, current, status), MessagePayload(text)))

    def movie(self, item_name: str, current: int, status: ProgressStatus, *,
              year: Optional[int] = None, message: Optional[str] = None) -> ProgressEvent:
        return self._send(ProgressEvent(self._header(item_name, current, status), MoviePayload(year, message)))

    def episode(self, item_name: str, current: int, status: ProgressStatus, *,
                season: Optional[int] = None, episode: Optional[int] = None, external_provider_id: Optional[str] = None,
                message: Optional[str] = None) -> ProgressEvent:
        return self._send(ProgressEvent(
            self._header(item_name, current, status),
            EpisodePayload(season, episode, external_provider_id, message),
        ))


__all__ = [
    "ProgressStatus", "ProgressHeader", "MessagePayload", "MoviePayload", "EpisodePayload",
    "ProgressEvent", "ProgressChannel", "ProgressReporter", "PROCESS_MOVIES", "PROCESS_SHOWS",
]
