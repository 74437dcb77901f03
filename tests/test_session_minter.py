"""Tests for session minting and the provider fallback chain."""

import asyncio
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from livetv_proxy.exceptions import AllProvidersFailedError
from livetv_proxy.session_minter import (
    BootstrapEndpoint,
    IdentifierFactory,
    SessionMinter,
    SimpleChannelsEndpoint,
    StructuredChannelsEndpoint,
    current_program,
    device_params,
    extract_channel_records,
    isoformat_utc,
    mint_session,
    refresh_stream_url,
    rewrite_channel,
)

CHANNELS_URL = "https://api.pluto.tv/v2/channels"
SIMPLE_URL = "https://api.pluto.tv/v2/channels.json"
BOOT_URL = "https://boot.pluto.tv/v4/start"


class FixedIdentifiers(IdentifierFactory):
    """Deterministic identifiers for assertions."""

    def device_id(self) -> str:
        return "device-1"

    def session_id(self) -> str:
        return "sid-1"

    def now(self) -> datetime:
        return datetime(2025, 1, 1, 10, 30, tzinfo=timezone.utc)


def channel_record(name: str = "News", stream_url: str = "https://service-stitcher.clusters.pluto.tv/v1/x.m3u8?deviceId=old&foo=bar&sid=old"):
    return {
        "_id": f"id-{name}",
        "name": name,
        "stitched": {"urls": [{"type": "hls", "url": stream_url}]},
        "timelines": [
            {
                "title": "Morning Show",
                "start": "2025-01-01T10:00:00.000Z",
                "stop": "2025-01-01T11:00:00.000Z",
                "episode": {"description": "Daily news", "rating": "TV-G", "genre": "News"},
            },
            {
                "title": "Afternoon Show",
                "start": "2025-01-01T11:00:00.000Z",
                "stop": "2025-01-01T12:00:00.000Z",
            },
        ],
    }


@pytest.fixture
def endpoints():
    return [
        StructuredChannelsEndpoint(CHANNELS_URL),
        SimpleChannelsEndpoint(SIMPLE_URL),
        BootstrapEndpoint(BOOT_URL),
    ]


@pytest.fixture
def minter(upstream, endpoints):
    return SessionMinter(
        upstream.fetcher(),
        endpoints=endpoints,
        identifiers=FixedIdentifiers(),
        server_side_ads=False,
        window_hours=6,
    )


class TestMintSession:
    """Test suite for session minting."""

    def test_window_is_floored_to_the_hour(self):
        session = mint_session(FixedIdentifiers(), window_hours=6)

        assert isoformat_utc(session.window_start) == "2025-01-01T10:00:00.000Z"
        assert isoformat_utc(session.window_stop) == "2025-01-01T16:00:00.000Z"

    def test_default_identifiers_are_distinct(self):
        """Test that the device and session identifiers are independent values."""
        identifiers = IdentifierFactory()
        first = mint_session(identifiers)
        second = mint_session(identifiers)

        assert first.device_id != first.sid
        assert first.sid != second.sid
        assert first.device_id != second.device_id


class TestRefreshStreamUrl:
    """Test suite for query-key refreshing."""

    def test_overwrites_forced_and_keeps_others(self):
        url = "https://stitcher.pluto.tv/x.m3u8?deviceId=old&foo=bar&sid=old"

        refreshed = refresh_stream_url(url, {"deviceId": "device-1", "sid": "sid-1"})
        query = parse_qs(urlparse(refreshed).query)

        assert query["deviceId"] == ["device-1"]
        assert query["sid"] == ["sid-1"]
        assert query["foo"] == ["bar"]

    def test_duplicates_collapsed(self):
        url = "https://stitcher.pluto.tv/x.m3u8?sid=a&sid=b"

        refreshed = refresh_stream_url(url, {"sid": "sid-1"})

        assert parse_qs(urlparse(refreshed).query)["sid"] == ["sid-1"]

    def test_missing_keys_appended(self):
        refreshed = refresh_stream_url("https://stitcher.pluto.tv/x.m3u8", {"sid": "sid-1"})

        assert refreshed == "https://stitcher.pluto.tv/x.m3u8?sid=sid-1"


class TestCurrentProgram:
    """Test suite for schedule lookup."""

    def test_airing_entry(self):
        now = datetime(2025, 1, 1, 10, 30, tzinfo=timezone.utc)

        program = current_program(channel_record(), now)

        assert program["title"] == "Morning Show"
        assert program["description"] == "Daily news"
        assert program["genre"] == "News"

    def test_stop_is_exclusive(self):
        now = datetime(2025, 1, 1, 11, 0, tzinfo=timezone.utc)

        assert current_program(channel_record(), now)["title"] == "Afternoon Show"

    def test_nothing_airing(self):
        now = datetime(2025, 1, 2, 0, 0, tzinfo=timezone.utc)

        assert current_program(channel_record(), now) is None


class TestExtractChannelRecords:
    """Test suite for payload shape handling."""

    def test_list_payload(self):
        assert extract_channel_records([{"name": "a"}, "junk"]) == [{"name": "a"}]

    def test_channels_key(self):
        assert extract_channel_records({"channels": [{"name": "a"}]}) == [{"name": "a"}]

    def test_epg_key(self):
        assert extract_channel_records({"EPG": [{"name": "a"}]}) == [{"name": "a"}]

    def test_unknown_shape(self):
        assert extract_channel_records("nope") == []


class TestRewriteChannel:
    """Test suite for per-record rewriting."""

    def test_unparseable_stream_url_dropped(self):
        session = mint_session(FixedIdentifiers())
        record = channel_record(stream_url="http://[bad/x.m3u8")

        assert rewrite_channel(record, device_params(session, False), session.generated_at) is None

    def test_non_string_stream_url_dropped(self):
        session = mint_session(FixedIdentifiers())
        record = {"name": "Odd", "stitched": {"urls": [{"type": "hls", "url": 42}]}}

        assert rewrite_channel(record, device_params(session, False), session.generated_at) is None


class TestSessionMinter:
    """Test suite for the fallback chain."""

    def test_first_endpoint_wins(self, upstream, minter):
        upstream.add(CHANNELS_URL, json_body=[channel_record()])

        response = asyncio.run(minter.channel_session())

        assert len(response.channels) == 1
        assert upstream.count(SIMPLE_URL) == 0
        assert upstream.count(BOOT_URL) == 0

    def test_structured_endpoint_window_params(self, upstream, minter):
        upstream.add(CHANNELS_URL, json_body=[channel_record()])

        asyncio.run(minter.channel_session())

        params = upstream.last_request(CHANNELS_URL).url.params
        assert params["start"] == "2025-01-01T10:00:00.000Z"
        assert params["stop"] == "2025-01-01T16:00:00.000Z"

    def test_fallback_to_third_endpoint(self, upstream, minter):
        """Test that failures advance the chain until an endpoint succeeds."""
        upstream.add(CHANNELS_URL, status=500, content="boom")
        upstream.add(SIMPLE_URL, status=404, content="missing")
        upstream.add(BOOT_URL, json_body={"EPG": [channel_record("News"), channel_record("Movies")]})

        response = asyncio.run(minter.channel_session())

        assert [channel["name"] for channel in response.channels] == ["News", "Movies"]
        assert upstream.count(CHANNELS_URL) == 1
        assert upstream.count(SIMPLE_URL) == 1
        assert upstream.count(BOOT_URL) == 1

        query = parse_qs(urlparse(response.channels[0]["streamUrl"]).query)
        assert query["deviceId"] == ["device-1"]
        assert query["sid"] == ["sid-1"]
        assert query["foo"] == ["bar"]

    def test_bootstrap_sends_device_params(self, upstream, minter):
        upstream.add(CHANNELS_URL, status=500)
        upstream.add(SIMPLE_URL, status=500)
        upstream.add(BOOT_URL, json_body=[channel_record()])

        asyncio.run(minter.channel_session())

        params = upstream.last_request(BOOT_URL).url.params
        assert params["deviceId"] == "device-1"
        assert params["sid"] == "sid-1"
        assert params["serverSideAds"] == "false"

    def test_current_program_attached(self, upstream, minter):
        upstream.add(CHANNELS_URL, json_body=[channel_record()])

        response = asyncio.run(minter.channel_session())

        assert response.channels[0]["currentProgram"]["title"] == "Morning Show"

    def test_session_info(self, upstream, minter):
        upstream.add(CHANNELS_URL, json_body=[channel_record()])

        response = asyncio.run(minter.channel_session())
        payload = response.model_dump(by_alias=True)

        assert payload["sessionInfo"]["deviceId"] == "device-1"
        assert payload["sessionInfo"]["sid"] == "sid-1"

    def test_records_without_stitched_url_dropped(self, upstream, minter):
        no_stream = {"_id": "x", "name": "Broken", "stitched": {"urls": [{"type": "dash", "url": "https://x"}]}}
        upstream.add(CHANNELS_URL, json_body=[no_stream, channel_record()])

        response = asyncio.run(minter.channel_session())

        assert [channel["name"] for channel in response.channels] == ["News"]

    def test_empty_payload_advances_chain(self, upstream, minter):
        upstream.add(CHANNELS_URL, json_body=[])
        upstream.add(SIMPLE_URL, content="not json", content_type="text/html")
        upstream.add(BOOT_URL, json_body=[channel_record()])

        response = asyncio.run(minter.channel_session())

        assert len(response.channels) == 1
        assert upstream.count(SIMPLE_URL) == 1

    def test_all_fail(self, upstream, minter):
        """Test that exhausting the chain raises with one attempt per endpoint."""
        upstream.add(CHANNELS_URL, status=500)
        upstream.add(SIMPLE_URL, network_error=True)
        upstream.add(BOOT_URL, json_body={"EPG": []})

        with pytest.raises(AllProvidersFailedError) as exc_info:
            asyncio.run(minter.channel_session())

        error = exc_info.value
        assert error.status_code == 503
        assert [attempt["endpoint"] for attempt in error.attempts] == ["channels", "channels-simple", "boot"]
        assert error.attempts[0]["statusCode"] == 500
        assert upstream.count(CHANNELS_URL) == 1
        assert upstream.count(SIMPLE_URL) == 1
        assert upstream.count(BOOT_URL) == 1

    def test_unparseable_record_does_not_abort_chain(self, upstream, minter):
        """Test that one malformed stream URL only drops its own channel."""
        upstream.add(
            CHANNELS_URL,
            json_body=[channel_record("Broken", stream_url="http://[bad/x.m3u8"), channel_record("News")],
        )

        response = asyncio.run(minter.channel_session())

        assert [channel["name"] for channel in response.channels] == ["News"]
