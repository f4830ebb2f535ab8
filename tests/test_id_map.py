# TraktPlex test scripts
from __future__ import annotations

import pytest

from tp_platform.id_map import (
    MOVIE_MATCH,
    SHOW_MATCH,
    MatchKey,
    MatchOutcome,
    RemoteIds,
    external_ref,
    first_match,
    match_outcome,
    matches,
    matches_ids,
)
from conftest import rmovie


def test_remote_ids_tolerates_bad_values() -> None:
    ids = RemoteIds.from_mapping({"trakt": "42", "imdb": " tt0111161 ", "tmdb": "abc", "tvdb": -3, "tvrage": None})
    assert ids.trakt == 42
    assert ids.imdb == "tt0111161"
    assert ids.tmdb is None
    assert ids.tvdb is None
    assert ids.tvrage is None
    assert ids.has_any_id

    assert RemoteIds.from_mapping(None) == RemoteIds()
    assert RemoteIds.from_mapping(["not", "a", "mapping"]) == RemoteIds()
    assert not RemoteIds().has_any_id


def test_remote_ids_as_dict_drops_absent() -> None:
    assert RemoteIds(trakt=1, imdb="tt1").as_dict() == {"trakt": 1, "imdb": "tt1"}


def test_external_ref_legacy_agent_guid() -> None:
    assert external_ref("com.plexapp.agents.imdb://tt0111161?lang=en") == MatchKey("imdb", "tt0111161")
    assert external_ref("com.plexapp.agents.themoviedb://550?lang=en") == MatchKey("themoviedb", "550")
    assert external_ref("com.plexapp.agents.thetvdb://81189?lang=en") == MatchKey("thetvdb", "81189")


def test_external_ref_new_agent_uses_guid_children() -> None:
    guids = ["tmdb://550", "imdb://tt0137523", "tvdb://1234"]
    assert external_ref("plex://movie/5d776", guids) == MatchKey("imdb", "tt0137523")
    assert external_ref("plex://show/5d9c0", guids, ("tvdb", "imdb")) == MatchKey("thetvdb", "1234")
    assert external_ref("plex://movie/5d776", []) is None
    assert external_ref(None, ["garbage", "tmdb://77"]) == MatchKey("tmdb", "77")


@pytest.mark.parametrize(
    "provider, provider_id, ids, table, expected",
    [
        ("imdb", "tt1", RemoteIds(imdb="tt1"), MOVIE_MATCH, MatchOutcome.MATCH),
        ("imdb", "tt1", RemoteIds(imdb="tt2"), MOVIE_MATCH, MatchOutcome.NO_MATCH),
        ("tmdb", "550", RemoteIds(tmdb=550), MOVIE_MATCH, MatchOutcome.MATCH),
        ("tmdb", "x550", RemoteIds(tmdb=550), MOVIE_MATCH, MatchOutcome.NO_MATCH),
        ("tmdb", "550", RemoteIds(), MOVIE_MATCH, MatchOutcome.NO_MATCH),
        ("themoviedb", "603", RemoteIds(tmdb=603), MOVIE_MATCH, MatchOutcome.MATCH),
        ("thetvdb", "81189", RemoteIds(tvdb=81189), SHOW_MATCH, MatchOutcome.MATCH),
        ("tvrage", "18164", RemoteIds(tvrage=18164), SHOW_MATCH, MatchOutcome.MATCH),
        ("thetvdb", "81189", RemoteIds(tvdb=81189), MOVIE_MATCH, MatchOutcome.NOT_SUPPORTED),
        ("themoviedb", "1399", RemoteIds(tmdb=1399), SHOW_MATCH, MatchOutcome.NOT_SUPPORTED),
        (None, None, RemoteIds(trakt=1), SHOW_MATCH, MatchOutcome.NOT_SUPPORTED),
    ],
)
def test_match_outcome_table(provider, provider_id, ids, table, expected) -> None:
    assert match_outcome(provider, provider_id, ids, table) is expected
    assert matches(provider, provider_id, ids, table) is (expected is MatchOutcome.MATCH)


def test_first_match_returns_first_hit_only() -> None:
    a, b, c = rmovie(1, "tt9"), rmovie(2, "tt1"), rmovie(3, "tt1")
    assert first_match("imdb", "tt1", [a, b, c]) is b
    assert first_match("imdb", "tt404", [a, b, c]) is None
    assert first_match("plex", "whatever", [a, b, c]) is None


def test_matches_ids_requires_trakt_on_both_sides() -> None:
    assert matches_ids(RemoteIds(trakt=5, imdb="tt1"), RemoteIds(trakt=5))
    assert not matches_ids(RemoteIds(trakt=5), RemoteIds(trakt=6))
    assert not matches_ids(RemoteIds(imdb="tt1"), RemoteIds(imdb="tt1"))
    assert not matches_ids(RemoteIds(), RemoteIds())
    assert not matches_ids(None, RemoteIds(trakt=5))
