"""Best-effort HLS manifest extraction from third-party video pages."""

import logging
import re
from abc import ABC, abstractmethod
from typing import Optional

from livetv_proxy.exceptions import UpstreamHTTPError, UpstreamNetworkError
from livetv_proxy.fetcher import UpstreamFetcher
from livetv_proxy.models import ExtractionResult

logger = logging.getLogger(__name__)

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


class ManifestExtractor(ABC):
    """Capability interface: page URL in, manifest URL (maybe) out."""

    @abstractmethod
    def supports(self, page_url: str) -> bool:
        """Whether this extractor recognises ``page_url``."""

    @abstractmethod
    async def extract_manifest(self, page_url: str) -> ExtractionResult:
        """Fetch the page and report the manifest URL, or an error."""


class YouTubeExtractor(ManifestExtractor):
    """Scrapes ``hlsManifestUrl`` from YouTube watch and channel live pages."""

    PATTERNS = [
        (re.compile(r"youtube\.com/watch\?v=([a-zA-Z0-9_-]{11})"), "video"),
        (re.compile(r"youtu\.be/([a-zA-Z0-9_-]{11})"), "video"),
        (re.compile(r"youtube\.com/live/([a-zA-Z0-9_-]{11})"), "video"),
        (re.compile(r"youtube\.com/@([^/?]+)"), "channel"),
        (re.compile(r"youtube\.com/channel/([^/?]+)"), "channel"),
        (re.compile(r"youtube\.com/c/([^/?]+)"), "channel"),
    ]
    TITLE_PATTERN = re.compile(r"<title>([^<]+)</title>")
    MANIFEST_PATTERN = re.compile(r'"hlsManifestUrl":"([^"]+)"')
    VIDEO_ID_PATTERN = re.compile(r"/watch\?v=([a-zA-Z0-9_-]{11})")

    def __init__(self, fetcher: UpstreamFetcher):
        self.fetcher = fetcher

    @classmethod
    def parse_url(cls, page_url: str) -> Optional[tuple[str, str]]:
        """Return ``(kind, id)`` for a recognised YouTube URL."""
        for pattern, kind in cls.PATTERNS:
            match = pattern.search(page_url)
            if match:
                return kind, match.group(1)
        return None

    def supports(self, page_url: str) -> bool:
        return self.parse_url(page_url) is not None

    async def extract_manifest(self, page_url: str) -> ExtractionResult:
        parsed = self.parse_url(page_url)
        if parsed is None:
            return ExtractionResult(error="Unrecognised YouTube URL")

        kind, identifier = parsed
        try:
            if kind == "channel":
                return await self._extract_channel(identifier)
            return await self._extract_video(identifier)
        except (UpstreamHTTPError, UpstreamNetworkError) as e:
            logger.warning(f"[EXTRACT] Failed to fetch {page_url}: {e.detail}")
            return ExtractionResult(error=e.detail)

    async def _page(self, url: str) -> str:
        response = await self.fetcher.get(url, headers={"Accept-Language": "en-US,en;q=0.5"}, accept=HTML_ACCEPT)
        return response.text

    async def _extract_video(self, video_id: str) -> ExtractionResult:
        html = await self._page(f"https://www.youtube.com/watch?v={video_id}")

        title = self.TITLE_PATTERN.search(html)
        is_live = '"isLive":true' in html or '"isLiveContent":true' in html
        manifest = self.MANIFEST_PATTERN.search(html)

        return ExtractionResult(
            manifest_url=manifest.group(1).replace("\\u0026", "&") if manifest else None,
            is_live=is_live,
            title=title.group(1).replace(" - YouTube", "").strip() if title else None,
            error=None if manifest else "No HLS manifest found",
        )

    async def _extract_channel(self, channel: str) -> ExtractionResult:
        if channel.startswith("UC"):
            url = f"https://www.youtube.com/channel/{channel}/live"
        else:
            url = f"https://www.youtube.com/@{channel.lstrip('@')}/live"

        html = await self._page(url)
        video_id = self.VIDEO_ID_PATTERN.search(html)
        if video_id is None:
            return ExtractionResult(error="No live stream currently active")
        return await self._extract_video(video_id.group(1))


def find_extractor(extractors: list[ManifestExtractor], page_url: str) -> Optional[ManifestExtractor]:
    """Return the first extractor that recognises ``page_url``."""
    return next((extractor for extractor in extractors if extractor.supports(page_url)), None)
