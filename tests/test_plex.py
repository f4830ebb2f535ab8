# TraktPlex test scripts
from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest
from plexapi.exceptions import NotFound

from providers.sync._mod_PLEX import PLEXAuthError, PLEXClient, PLEXConfig, PLEXModule
from providers.sync.plex._common import (
    episode_from_plex,
    movie_from_plex,
    plex_headers,
    season_from_plex,
    show_from_plex,
)
from tp_platform.agent._types import LocalSeason, LocalShow


def _guid(gid: str) -> SimpleNamespace:
    return SimpleNamespace(id=gid)


def test_legacy_agent_movie_mapping() -> None:
    obj = SimpleNamespace(ratingKey=12, title="Heat", guid="com.plexapp.agents.imdb://tt0113277?lang=en",
                          guids=[], viewCount=2, year=1995)
    m = movie_from_plex(obj)
    assert (m.id, m.title, m.provider, m.provider_id, m.view_count, m.year) == ("12", "Heat", "imdb", "tt0113277", 2, 1995)


def test_new_agent_items_use_guid_children() -> None:
    movie = SimpleNamespace(ratingKey=1, title="Fight Club", guid="plex://movie/5d776",
                            guids=[_guid("tmdb://550"), _guid("imdb://tt0137523")], viewCount=None, year=None)
    m = movie_from_plex(movie)
    assert (m.provider, m.provider_id, m.view_count) == ("imdb", "tt0137523", 0)

    show = SimpleNamespace(ratingKey=2, title="Lost", guid="plex://show/5d9c0",
                           guids=[_guid("imdb://tt0411008"), _guid("tvdb://73739")], year="2004")
    s = show_from_plex(show)
    assert (s.provider, s.provider_id, s.year, s.seasons) == ("thetvdb", "73739", 2004, [])


def test_item_without_usable_guid() -> None:
    m = movie_from_plex(SimpleNamespace(ratingKey=3, title="Home Video", guid="local://3", guids=[]))
    assert m.provider is None and m.provider_id is None


def test_season_and_episode_mapping() -> None:
    season = season_from_plex(SimpleNamespace(ratingKey=20, index=2))
    assert (season.id, season.number, season.episodes) == ("20", 2, [])
    ep = episode_from_plex(SimpleNamespace(ratingKey=21, index="5", viewCount=1, title="Pilot"))
    assert (ep.id, ep.number, ep.view_count, ep.title) == ("21", 5, 1, "Pilot")


def test_plex_headers() -> None:
    h = plex_headers("tok", "cid", {"X-Extra": 1})
    assert h["X-Plex-Token"] == "tok" and h["X-Plex-Client-Identifier"] == "cid" and h["X-Extra"] == "1"
    assert "X-Plex-Token" not in plex_headers()


def test_config_from_sections() -> None:
    cfg = PLEXConfig.from_config({"plex": {"account_token": "t", "servers": [{"name": "Den", "url": "http://d"}, "x"],
                                           "server_name": "den", "libraries": [1, "2"]}})
    assert cfg.token == "t" and cfg.libraries == ["1", "2"]
    assert PLEXClient(cfg)._server_url() == "http://d"
    assert PLEXClient(PLEXConfig(token="t", baseurl="http://b"))._server_url() == "http://b"
    assert PLEXClient(PLEXConfig(token="t", servers=[{"name": "A", "url": "http://a"},
                                                     {"name": "B", "url": "http://b"}]))._server_url() is None


def test_connect_requires_token() -> None:
    with pytest.raises(PLEXAuthError):
        PLEXClient(PLEXConfig()).connect()


# --- fake server --------------------------------------------------------------

class FakeItem(SimpleNamespace):
    def seasons(self) -> list[Any]:
        return self.children

    def episodes(self) -> list[Any]:
        return self.children

    def markPlayed(self) -> None:
        self.viewCount = (self.viewCount or 0) + 1


class FakeSection(SimpleNamespace):
    def all(self) -> list[Any]:
        return self.items


class FakeServer:
    def __init__(self, sections: list[FakeSection], items: dict[int, FakeItem]) -> None:
        self.library = SimpleNamespace(sections=lambda: sections)
        self.items = items

    def fetchItem(self, key: int) -> FakeItem:
        if key not in self.items:
            raise NotFound(f"no item {key}")
        return self.items[key]


def _connected(libraries: list[str] | None = None) -> tuple[PLEXClient, FakeServer]:
    ep = FakeItem(ratingKey=301, index=1, viewCount=0, title="Pilot")
    season = FakeItem(ratingKey=201, index=1, children=[ep])
    show = FakeItem(ratingKey=101, title="Lost", guid="com.plexapp.agents.thetvdb://73739?lang=en",
                    guids=[], year=2004, children=[season])
    movie = FakeItem(ratingKey=1, title="Heat", guid="com.plexapp.agents.imdb://tt0113277", guids=[],
                     viewCount=0, year=1995)
    sections = [
        FakeSection(key=1, type="movie", items=[movie]),
        FakeSection(key=2, type="show", items=[show]),
        FakeSection(key=3, type="movie", items=[FakeItem(ratingKey=9, title="Other", guid="", guids=[])]),
        FakeSection(key=4, type="artist", items=[]),
    ]
    server = FakeServer(sections, {1: movie, 101: show, 201: season, 301: ep})
    client = PLEXClient(PLEXConfig(token="t", libraries=libraries or [], max_retries=1))
    client.server = server  # type: ignore[assignment]
    return client, server


def test_fetch_movies_respects_library_whitelist() -> None:
    client, _ = _connected()
    assert [m.title for m in client.fetch_movies().value] == ["Heat", "Other"]

    client, _ = _connected(["1", "2"])
    assert [m.title for m in client.fetch_movies().value] == ["Heat"]


def test_module_walks_show_tree_and_marks_watched() -> None:
    client, server = _connected()
    module = PLEXModule({}, client=client)

    async def go():
        shows = (await module.fetch_shows()).value
        show = (await module.populate_seasons(shows[0])).value
        season = (await module.populate_episodes(show.seasons[0])).value
        marked = await module.mark_watched(season.episodes[0].id)
        return show, season, marked

    show, season, marked = asyncio.run(go())
    assert isinstance(show, LocalShow) and show.provider == "thetvdb"
    assert isinstance(season, LocalSeason) and [e.number for e in season.episodes] == [1]
    assert marked.ok and server.items[301].viewCount == 1


def test_missing_item_is_a_failed_result() -> None:
    client, _ = _connected()
    res = client.mark_watched("999")
    assert not res.ok and res.status == 404
