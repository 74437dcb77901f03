"""Tests for title metadata lookup."""

import asyncio

import pytest

from livetv_proxy.metadata import MetadataLookup, format_runtime, parse_title

TMDB = "https://api.themoviedb.org/3"


class TestParseTitle:
    """Test suite for programme title parsing."""

    def test_plain(self):
        parsed = parse_title("  The Matrix ")
        assert parsed.title == "The Matrix"
        assert parsed.year is None

    def test_year(self):
        parsed = parse_title("The Matrix (1999)")
        assert parsed.title == "The Matrix"
        assert parsed.year == "1999"

    def test_short_episode(self):
        parsed = parse_title("Star Trek - S02E05")
        assert parsed.title == "Star Trek"
        assert (parsed.season, parsed.episode) == (2, 5)

    def test_long_episode(self):
        parsed = parse_title("Cheers: Season 3 Episode 12")
        assert parsed.title == "Cheers"
        assert (parsed.season, parsed.episode) == (3, 12)


class TestFormatRuntime:
    @pytest.mark.parametrize(
        "minutes,expected",
        [(None, "Unknown"), (0, "Unknown"), (45, "45m"), (120, "2h"), (136, "2h 16m")],
    )
    def test_format(self, minutes, expected):
        assert format_runtime(minutes) == expected


class TestMetadataLookup:
    """Test suite for the metadata boundary."""

    def test_no_api_key(self, upstream):
        lookup = MetadataLookup(upstream.fetcher(), api_key="")

        assert asyncio.run(lookup.lookup_content("The Matrix")) is None
        assert upstream.requests == []

    def test_title_too_short(self, upstream):
        lookup = MetadataLookup(upstream.fetcher(), api_key="key")

        assert asyncio.run(lookup.lookup_content("X")) is None
        assert upstream.requests == []

    def test_movie(self, upstream):
        upstream.add(
            f"{TMDB}/search/multi",
            json_body={
                "results": [
                    {"id": 1, "media_type": "person", "name": "The Matrix"},
                    {"id": 9, "media_type": "movie", "title": "The Matrix Reloaded"},
                    {"id": 603, "media_type": "movie", "title": "The Matrix"},
                ]
            },
        )
        upstream.add(
            f"{TMDB}/movie/603",
            json_body={
                "title": "The Matrix",
                "original_title": "The Matrix",
                "overview": "A hacker learns the truth.",
                "release_date": "1999-03-30",
                "runtime": 136,
                "vote_average": 8.216,
                "vote_count": 25000,
                "genres": [{"name": "Action"}, {"name": "Science Fiction"}],
                "poster_path": "/poster.jpg",
            },
        )
        upstream.add(
            f"{TMDB}/movie/603/credits",
            json_body={
                "cast": [{"name": "Keanu Reeves", "character": "Neo", "profile_path": "/keanu.jpg"}],
                "crew": [
                    {"name": "Lana Wachowski", "job": "Director"},
                    {"name": "Lilly Wachowski", "job": "Writer"},
                ],
            },
        )
        lookup = MetadataLookup(upstream.fetcher(), api_key="key")

        metadata = asyncio.run(lookup.lookup_content("The Matrix (1999)"))

        assert metadata.id == 603
        assert metadata.type == "movie"
        assert metadata.runtime == "2h 16m"
        assert metadata.rating == 8.2
        assert metadata.genres == ["Action", "Science Fiction"]
        assert metadata.cast[0].photo == "https://image.tmdb.org/t/p/w185/keanu.jpg"
        assert metadata.directors == ["Lana Wachowski"]
        assert metadata.writers == ["Lilly Wachowski"]
        assert metadata.poster_url == "https://image.tmdb.org/t/p/w500/poster.jpg"

        search = upstream.last_request(f"{TMDB}/search/multi").url.params
        assert search["query"] == "The Matrix"
        assert search["year"] == "1999"
        assert search["api_key"] == "key"

    def test_tv_series(self, upstream):
        upstream.add(f"{TMDB}/search/multi", json_body={"results": [{"id": 7, "media_type": "tv", "name": "Cheers"}]})
        upstream.add(
            f"{TMDB}/tv/7",
            json_body={
                "name": "Cheers",
                "first_air_date": "1982-09-30",
                "number_of_seasons": 11,
                "number_of_episodes": 275,
                "networks": [{"name": "NBC"}],
            },
        )
        upstream.add(f"{TMDB}/tv/7/credits", json_body={"cast": [], "crew": []})
        lookup = MetadataLookup(upstream.fetcher(), api_key="key")

        metadata = asyncio.run(lookup.lookup_content("Cheers S03E12"))

        assert metadata.runtime == "Series"
        assert metadata.seasons == 11
        assert metadata.networks == ["NBC"]
        assert metadata.release_date == "1982-09-30"

    def test_no_results(self, upstream):
        upstream.add(f"{TMDB}/search/multi", json_body={"results": []})
        lookup = MetadataLookup(upstream.fetcher(), api_key="key")

        assert asyncio.run(lookup.lookup_content("Nothing Here")) is None

    def test_upstream_failure_returns_none(self, upstream):
        upstream.add(f"{TMDB}/search/multi", status=401)
        lookup = MetadataLookup(upstream.fetcher(), api_key="bad")

        assert asyncio.run(lookup.lookup_content("The Matrix")) is None

    @pytest.mark.parametrize(
        "search_body",
        [[], {"results": ["x"]}, {"results": [None, 7]}, "unexpected"],
    )
    def test_malformed_search_payload_returns_none(self, upstream, search_body):
        """Test that unexpected search payload shapes never escape the lookup."""
        upstream.add(f"{TMDB}/search/multi", json_body=search_body)
        lookup = MetadataLookup(upstream.fetcher(), api_key="key")

        assert asyncio.run(lookup.lookup_content("The Matrix")) is None

    def test_malformed_details_payload_returns_none(self, upstream):
        upstream.add(f"{TMDB}/search/multi", json_body={"results": [{"id": 603, "media_type": "movie", "title": "The Matrix"}]})
        upstream.add(f"{TMDB}/movie/603", json_body=["not", "a", "dict"])
        upstream.add(f"{TMDB}/movie/603/credits", json_body={"cast": [], "crew": []})
        lookup = MetadataLookup(upstream.fetcher(), api_key="key")

        assert asyncio.run(lookup.lookup_content("The Matrix")) is None
