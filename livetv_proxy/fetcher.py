"""Outbound HTTP access to upstream playlist, segment and API servers."""

import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from livetv_proxy.config import settings
from livetv_proxy.exceptions import InvalidURLError, UpstreamHTTPError, UpstreamNetworkError

logger = logging.getLogger(__name__)


def create_http_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Build the shared async HTTP client with the configured limits and timeout."""
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_keepalive_connections=settings.http_max_keepalive_connections,
            max_connections=settings.http_max_connections,
        ),
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
        transport=transport,
    )


class UpstreamFetcher:
    """Issues GET requests upstream with browser-like headers."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: Optional[str] = None,
        provider_origins: Optional[dict[str, str]] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            client: Shared async HTTP client (owned by the application lifespan)
            user_agent: User-Agent sent upstream (defaults to config value)
            provider_origins: Host suffix -> origin map for providers that check
                Origin/Referer on playlist and segment requests
        """
        self.client = client
        self.user_agent = user_agent or settings.user_agent
        if provider_origins is None:
            provider_origins = settings.provider_origin_map
        self.provider_origins = provider_origins

    def build_headers(self, url: str, accept: str = "*/*", media: bool = False) -> dict[str, str]:
        """
        Build request headers for an upstream URL.

        Args:
            url: Upstream URL being requested
            accept: Accept header value
            media: Whether this is a playlist/segment request, which gets the
                provider's Origin and Referer when the host is a known provider

        Returns:
            Header dictionary
        """
        headers = {
            "User-Agent": self.user_agent,
            "Accept": accept,
        }
        if media:
            origin = self._origin_for(url)
            if origin:
                headers["Origin"] = origin
                headers["Referer"] = f"{origin}/"
        return headers

    def _origin_for(self, url: str) -> Optional[str]:
        host = (urlparse(url).hostname or "").lower()
        for suffix, origin in self.provider_origins.items():
            if host == suffix or host.endswith("." + suffix):
                return origin
        return None

    async def open_stream(self, url: str) -> httpx.Response:
        """
        Open a streaming GET for a playlist or segment.

        The caller owns the returned response and must close it with ``aclose()``.

        Raises:
            UpstreamHTTPError: If upstream answers with a non-2xx status
            UpstreamNetworkError: If upstream cannot be reached
            InvalidURLError: If the URL cannot be requested at all
        """
        try:
            request = self.client.build_request("GET", url, headers=self.build_headers(url, media=True))
            response = await self.client.send(request, stream=True)
        except httpx.InvalidURL as e:
            raise InvalidURLError(f"Invalid URL: {e}")
        except httpx.HTTPError as e:
            logger.error(f"[FETCH] Network error fetching {url}: {e!r}")
            raise UpstreamNetworkError(url, reason=repr(e))

        if not response.is_success:
            await response.aclose()
            logger.warning(f"[FETCH] Upstream returned {response.status_code}: {url}")
            raise UpstreamHTTPError(response.status_code, url)

        return response

    async def get(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        accept: str = "*/*",
    ) -> httpx.Response:
        """
        Perform a buffered GET (used for JSON APIs and HTML pages).

        Args:
            url: Upstream URL
            params: Optional query parameters
            headers: Extra headers merged over the browser defaults
            accept: Accept header value

        Returns:
            The fully read response (always 2xx)

        Raises:
            UpstreamHTTPError: If upstream answers with a non-2xx status
            UpstreamNetworkError: If upstream cannot be reached
        """
        request_headers = self.build_headers(url, accept=accept)
        if headers:
            request_headers.update(headers)

        try:
            response = await self.client.get(url, params=params, headers=request_headers)
        except httpx.InvalidURL as e:
            raise InvalidURLError(f"Invalid URL: {e}")
        except httpx.HTTPError as e:
            logger.error(f"[FETCH] Network error fetching {url}: {e!r}")
            raise UpstreamNetworkError(url, reason=repr(e))

        if not response.is_success:
            logger.warning(f"[FETCH] Upstream returned {response.status_code}: {url}")
            raise UpstreamHTTPError(response.status_code, url)

        return response

    async def get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET a JSON document; invalid JSON raises ``ValueError``."""
        response = await self.get(url, params=params, accept="application/json")
        return response.json()
