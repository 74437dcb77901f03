"""Session identifier minting and the ordered provider fallback chain."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from livetv_proxy.config import settings
from livetv_proxy.exceptions import AllProvidersFailedError, UpstreamHTTPError, UpstreamNetworkError
from livetv_proxy.fetcher import UpstreamFetcher
from livetv_proxy.models import ChannelSessionResponse, ProviderAttempt, SessionInfo

logger = logging.getLogger(__name__)

STITCHED_STREAM_TYPE = "hls"


def isoformat_utc(value: datetime) -> str:
    """Format an instant the way provider APIs expect it (``...T10:00:00.000Z``)."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from provider JSON, or None if unusable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class IdentifierFactory:
    """Source of ephemeral identifiers and the current instant."""

    def device_id(self) -> str:
        """Time-ordered unique device identifier."""
        return str(uuid.uuid1())

    def session_id(self) -> str:
        """Random session identifier, independent of the device identifier."""
        return str(uuid.uuid4())

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class Session:
    """Identifiers and schedule window for a single incoming request."""

    device_id: str
    sid: str
    generated_at: datetime
    window_start: datetime
    window_stop: datetime

    def to_info(self) -> SessionInfo:
        return SessionInfo(device_id=self.device_id, sid=self.sid, generated_at=self.generated_at)


def mint_session(identifiers: IdentifierFactory, window_hours: int = 6) -> Session:
    """
    Mint a new session.

    The schedule window starts at the current hour (floored) and extends
    ``window_hours`` forward.
    """
    now = identifiers.now()
    window_start = now.replace(minute=0, second=0, microsecond=0)
    return Session(
        device_id=identifiers.device_id(),
        sid=identifiers.session_id(),
        generated_at=now,
        window_start=window_start,
        window_stop=window_start + timedelta(hours=window_hours),
    )


def device_params(session: Session, server_side_ads: bool) -> dict[str, str]:
    """Query keys that identify the session on every signed stream request."""
    return {
        "appName": "web",
        "appVersion": settings.pluto_app_version,
        "deviceVersion": settings.pluto_device_version,
        "deviceId": session.device_id,
        "deviceType": "web",
        "deviceMake": "Chrome",
        "deviceModel": "web",
        "deviceDNT": "0",
        "clientID": session.device_id,
        "userId": "",
        "advertisingId": "",
        "sid": session.sid,
        "clientTime": isoformat_utc(session.generated_at),
        "serverSideAds": "true" if server_side_ads else "false",
    }


def refresh_stream_url(url: str, forced: dict[str, str]) -> str:
    """
    Overwrite selected query keys of a stitched stream URL.

    Keys in ``forced`` replace any stale value (and duplicates are dropped);
    every other key keeps its value and position. Missing forced keys are
    appended.
    """
    parsed = urlparse(url)
    pairs = []
    seen = set()
    for key, value in parse_qsl(parsed.query, keep_blank_values=True):
        if key in forced:
            if key in seen:
                continue
            seen.add(key)
            value = forced[key]
        pairs.append((key, value))
    pairs.extend((key, value) for key, value in forced.items() if key not in seen)
    return urlunparse(parsed._replace(query=urlencode(pairs)))


def find_stitched_url(record: dict[str, Any], stream_type: str = STITCHED_STREAM_TYPE) -> Optional[str]:
    """Return the record's stitched URL of the given type, if any."""
    stitched = record.get("stitched")
    if not isinstance(stitched, dict):
        return None
    for entry in stitched.get("urls") or []:
        if not isinstance(entry, dict) or entry.get("type") != stream_type:
            continue
        url = entry.get("url")
        if isinstance(url, str) and url:
            return url
    return None


def current_program(record: dict[str, Any], now: datetime) -> Optional[dict[str, Any]]:
    """Find the schedule entry airing at ``now``."""
    for entry in record.get("timelines") or []:
        if not isinstance(entry, dict):
            continue
        start = parse_instant(entry.get("start"))
        stop = parse_instant(entry.get("stop"))
        if start is None or stop is None or not start <= now < stop:
            continue
        episode = entry.get("episode") if isinstance(entry.get("episode"), dict) else {}
        return {
            "title": entry.get("title") or episode.get("name"),
            "description": episode.get("description"),
            "start": entry.get("start"),
            "stop": entry.get("stop"),
            "rating": episode.get("rating"),
            "genre": episode.get("genre"),
        }
    return None


def rewrite_channel(
    record: dict[str, Any],
    forced: dict[str, str],
    now: datetime,
) -> Optional[dict[str, Any]]:
    """
    Produce the client-facing channel record.

    Returns None when the record has no usable stitched stream URL.
    """
    stitched_url = find_stitched_url(record)
    if stitched_url is None:
        return None
    try:
        stream_url = refresh_stream_url(stitched_url, forced)
    except ValueError as e:
        logger.warning(f"[SESSION] Dropping channel {record.get('name')!r}: unparseable stream URL: {e}")
        return None
    channel = dict(record)
    channel["streamUrl"] = stream_url
    channel["currentProgram"] = current_program(record, now)
    return channel


def extract_channel_records(payload: Any) -> list[dict[str, Any]]:
    """Pull the channel list out of any of the provider's payload shapes."""
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, dict):
        records = payload.get("channels") or payload.get("EPG") or []
    else:
        records = []
    return [record for record in records if isinstance(record, dict)]


class ProviderEndpoint:
    """One integration surface of the channel provider."""

    name = "provider"

    def __init__(self, url: str):
        self.url = url

    def build_params(self, session: Session, forced: dict[str, str]) -> Optional[dict[str, str]]:
        return None

    async def fetch(self, fetcher: UpstreamFetcher, session: Session, forced: dict[str, str]) -> list[dict[str, Any]]:
        """
        Fetch channel records from this endpoint.

        Raises:
            UpstreamHTTPError: Non-2xx answer
            UpstreamNetworkError: Transport failure
            ValueError: Payload is not JSON
        """
        payload = await fetcher.get_json(self.url, params=self.build_params(session, forced))
        return extract_channel_records(payload)


class StructuredChannelsEndpoint(ProviderEndpoint):
    """Primary API returning channels with their schedule for a time window."""

    name = "channels"

    def build_params(self, session: Session, forced: dict[str, str]) -> Optional[dict[str, str]]:
        return {
            "start": isoformat_utc(session.window_start),
            "stop": isoformat_utc(session.window_stop),
        }


class SimpleChannelsEndpoint(ProviderEndpoint):
    """Secondary API returning the plain channel list."""

    name = "channels-simple"


class BootstrapEndpoint(ProviderEndpoint):
    """Session-negotiation API, used as the last resort."""

    name = "boot"

    def build_params(self, session: Session, forced: dict[str, str]) -> Optional[dict[str, str]]:
        params = dict(forced)
        params.update({"clientModelNumber": "na", "channelSlug": ""})
        return params


def default_endpoints() -> list[ProviderEndpoint]:
    """Provider endpoints in priority order."""
    return [
        StructuredChannelsEndpoint(settings.pluto_channels_url),
        SimpleChannelsEndpoint(settings.pluto_channels_simple_url),
        BootstrapEndpoint(settings.pluto_boot_url),
    ]


class SessionMinter:
    """Mints a session per request and walks the provider fallback chain."""

    def __init__(
        self,
        fetcher: UpstreamFetcher,
        endpoints: Optional[list[ProviderEndpoint]] = None,
        identifiers: Optional[IdentifierFactory] = None,
        server_side_ads: Optional[bool] = None,
        window_hours: Optional[int] = None,
    ):
        self.fetcher = fetcher
        self.endpoints = endpoints if endpoints is not None else default_endpoints()
        self.identifiers = identifiers or IdentifierFactory()
        self.server_side_ads = settings.pluto_server_side_ads if server_side_ads is None else server_side_ads
        self.window_hours = settings.schedule_window_hours if window_hours is None else window_hours

    async def channel_session(self) -> ChannelSessionResponse:
        """
        Fetch provider channels with freshly signed stream URLs.

        Endpoints are tried one at a time in order, each exactly once. The
        first one yielding at least one usable channel wins.

        Raises:
            AllProvidersFailedError: If no endpoint produced usable channels
        """
        session = mint_session(self.identifiers, self.window_hours)
        forced = device_params(session, self.server_side_ads)
        attempts: list[ProviderAttempt] = []

        logger.info(f"[SESSION] Minted session: device_id={session.device_id}, sid={session.sid}")

        for endpoint in self.endpoints:
            try:
                records = await endpoint.fetch(self.fetcher, session, forced)
            except UpstreamHTTPError as e:
                logger.warning(f"[SESSION] Endpoint {endpoint.name} returned {e.status_code}")
                attempts.append(ProviderAttempt(endpoint=endpoint.name, error=e.detail, status_code=e.status_code))
                continue
            except UpstreamNetworkError as e:
                logger.warning(f"[SESSION] Endpoint {endpoint.name} unreachable: {e.reason}")
                attempts.append(ProviderAttempt(endpoint=endpoint.name, error="Network error"))
                continue
            except ValueError as e:
                logger.warning(f"[SESSION] Endpoint {endpoint.name} returned invalid JSON: {e}")
                attempts.append(ProviderAttempt(endpoint=endpoint.name, error="Invalid JSON payload"))
                continue

            channels = []
            for record in records:
                channel = rewrite_channel(record, forced, session.generated_at)
                if channel is not None:
                    channels.append(channel)

            if not channels:
                logger.warning(
                    f"[SESSION] Endpoint {endpoint.name} returned no usable channels "
                    f"({len(records)} records)"
                )
                attempts.append(ProviderAttempt(endpoint=endpoint.name, error="No usable channels"))
                continue

            logger.info(
                f"[SESSION] Endpoint {endpoint.name} returned {len(channels)} channels "
                f"({len(records) - len(channels)} dropped)"
            )
            return ChannelSessionResponse(channels=channels, session_info=session.to_info())

        logger.error(f"[SESSION] All {len(self.endpoints)} provider endpoints failed")
        raise AllProvidersFailedError(attempts=[attempt.model_dump(by_alias=True) for attempt in attempts])
