"""Fetch, classify and rewrite upstream content for the stream proxy endpoint."""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from livetv_proxy.cache import TTLCache
from livetv_proxy.classifier import (
    ContentKind,
    classify,
    is_manifest_content_type,
    looks_like_text_manifest,
)
from livetv_proxy.direct_stream import wrap_bare_manifest
from livetv_proxy.exceptions import UpstreamNetworkError
from livetv_proxy.fetcher import UpstreamFetcher
from livetv_proxy.playlist_rewriter import PlaylistRewriter

logger = logging.getLogger(__name__)

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"
DEFAULT_SEGMENT_MEDIA_TYPE = "video/mp2t"


@dataclass
class ProxyResult:
    """Outcome of proxying one upstream URL."""

    kind: ContentKind
    media_type: str
    body: Optional[bytes] = None
    stream: Optional[AsyncIterator[bytes]] = None
    from_cache: bool = False


class StreamProxy:
    """Routes a single upstream URL through fetch, classification and rewriting."""

    def __init__(self, fetcher: UpstreamFetcher, cache: TTLCache, rewriter: PlaylistRewriter):
        self.fetcher = fetcher
        self.cache = cache
        self.rewriter = rewriter

    async def proxy(self, url: str) -> ProxyResult:
        """
        Proxy an upstream URL.

        Playlists are served from the cache while fresh; otherwise fetched,
        rewritten and stored. Bare manifests are wrapped into a one-entry
        playlist. Anything else is relayed as an opaque byte stream.

        Args:
            url: Decoded absolute upstream URL

        Returns:
            ProxyResult with either a body or a byte stream

        Raises:
            UpstreamHTTPError: Upstream answered non-2xx
            UpstreamNetworkError: Upstream unreachable or the body read failed
            ClassificationError: Declared manifest with unrecognisable content
        """
        cached = self.cache.get(url)
        if cached is not None:
            logger.info(f"[PROXY] Playlist cache hit: {url}")
            return ProxyResult(
                kind=ContentKind.PLAYLIST,
                media_type=PLAYLIST_MEDIA_TYPE,
                body=cached.encode("utf-8"),
                from_cache=True,
            )

        response = await self.fetcher.open_stream(url)
        content_type = response.headers.get("Content-Type", "")
        chunks = response.aiter_bytes()

        try:
            first_chunk = await self._first_chunk(chunks)
        except httpx.HTTPError as e:
            await response.aclose()
            raise UpstreamNetworkError(url, reason=repr(e))

        if not (looks_like_text_manifest(first_chunk) or is_manifest_content_type(content_type)):
            logger.info(f"[PROXY] Relaying segment: url={url}, content_type={content_type or 'unknown'}")
            return ProxyResult(
                kind=ContentKind.BINARY_SEGMENT,
                media_type=content_type or DEFAULT_SEGMENT_MEDIA_TYPE,
                stream=self._relay(response, first_chunk, chunks),
            )

        try:
            remainder = [chunk async for chunk in chunks]
        except httpx.HTTPError as e:
            raise UpstreamNetworkError(url, reason=repr(e))
        finally:
            await response.aclose()

        raw = first_chunk + b"".join(remainder)
        text = raw.decode(response.charset_encoding or "utf-8", errors="replace")
        kind = classify(text, content_type)
        logger.info(f"[PROXY] Classified {url} as {kind.value} ({len(raw)} bytes)")

        if kind is ContentKind.PLAYLIST:
            rewritten = self.rewriter.rewrite(text, base_url=url)
            self.cache.set(url, rewritten)
            return ProxyResult(kind=kind, media_type=PLAYLIST_MEDIA_TYPE, body=rewritten.encode("utf-8"))

        if kind is ContentKind.BARE_MEDIA_MANIFEST:
            return ProxyResult(kind=kind, media_type=PLAYLIST_MEDIA_TYPE, body=wrap_bare_manifest(url).encode("utf-8"))

        return ProxyResult(kind=kind, media_type=content_type or DEFAULT_SEGMENT_MEDIA_TYPE, body=raw)

    @staticmethod
    async def _first_chunk(chunks: AsyncIterator[bytes]) -> bytes:
        async for chunk in chunks:
            if chunk:
                return chunk
        return b""

    @staticmethod
    async def _relay(
        response: httpx.Response,
        first_chunk: bytes,
        chunks: AsyncIterator[bytes],
    ) -> AsyncIterator[bytes]:
        """Yield the sniffed chunk and the rest of the body, closing upstream afterwards."""
        try:
            if first_chunk:
                yield first_chunk
            async for chunk in chunks:
                yield chunk
        except httpx.HTTPError as e:
            logger.warning(f"[PROXY] Segment relay interrupted: {response.url}: {e!r}")
        finally:
            await response.aclose()
