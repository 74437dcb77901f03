"""Aggregation of the public iptv-org channel catalog."""

import asyncio
import logging
from collections import Counter
from typing import Any

from livetv_proxy.cache import TTLCache
from livetv_proxy.exceptions import CatalogUnavailableError, UpstreamHTTPError, UpstreamNetworkError
from livetv_proxy.fetcher import UpstreamFetcher
from livetv_proxy.models import CatalogChannel, CatalogSearchResponse, CatalogStream, FacetCount

logger = logging.getLogger(__name__)

CATALOG_CACHE_KEY = "catalog"
MANDATORY_FEEDS = ("channels", "streams")
OPTIONAL_FEEDS = ("categories", "countries")


class CatalogAggregator:
    """Joins channel, stream, category and country feeds into one catalog."""

    def __init__(self, fetcher: UpstreamFetcher, cache: TTLCache, api_base: str):
        self.fetcher = fetcher
        self.cache = cache
        self.api_base = api_base.rstrip("/")

    def feed_url(self, feed: str) -> str:
        return f"{self.api_base}/{feed}.json"

    async def _fetch_mandatory(self, feed: str) -> list[dict[str, Any]]:
        try:
            data = await self.fetcher.get_json(self.feed_url(feed))
        except (UpstreamHTTPError, UpstreamNetworkError, ValueError) as e:
            logger.error(f"[CATALOG] Mandatory feed {feed} failed: {e!r}")
            raise CatalogUnavailableError(feed)
        return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []

    async def _fetch_optional(self, feed: str) -> list[dict[str, Any]]:
        try:
            data = await self.fetcher.get_json(self.feed_url(feed))
        except (UpstreamHTTPError, UpstreamNetworkError, ValueError) as e:
            logger.warning(f"[CATALOG] Optional feed {feed} failed, continuing without it: {e!r}")
            return []
        return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []

    async def load(self) -> list[CatalogChannel]:
        """
        Return the joined catalog, fetching all feeds concurrently on a cache miss.

        Raises:
            CatalogUnavailableError: If the channel or stream feed failed
        """
        cached = self.cache.get(CATALOG_CACHE_KEY)
        if cached is not None:
            return cached

        results = await asyncio.gather(
            *(self._fetch_mandatory(feed) for feed in MANDATORY_FEEDS),
            *(self._fetch_optional(feed) for feed in OPTIONAL_FEEDS),
            return_exceptions=True,
        )
        # Every fetch has settled; report the first mandatory failure in feed order
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            raise failures[0]
        channels, streams, categories, countries = results

        catalog = join_catalog(channels, streams, categories, countries)
        logger.info(
            f"[CATALOG] Aggregated {len(catalog)} channels from {len(channels)} channels "
            f"and {len(streams)} streams"
        )
        self.cache.set(CATALOG_CACHE_KEY, catalog)
        return catalog

    async def search(
        self,
        query: str = "",
        category: str = "",
        country: str = "",
        limit: int = 50,
        offset: int = 0,
    ) -> CatalogSearchResponse:
        """Filter the catalog by free text, category and country, then paginate."""
        catalog = await self.load()
        query = query.strip().lower()
        category = category.strip().lower()
        country = country.strip().lower()

        matches = []
        for channel in catalog:
            if query:
                haystack = " ".join(
                    [channel.name, *channel.alt_names, channel.country or "", *channel.categories]
                ).lower()
                if query not in haystack:
                    continue
            if category and category not in (c.lower() for c in channel.categories):
                continue
            if country and (channel.country or "").lower() != country:
                continue
            matches.append(channel)

        matches.sort(key=lambda channel: channel.name.lower())
        return CatalogSearchResponse(
            results=matches[offset : offset + limit],
            total=len(matches),
            limit=limit,
            offset=offset,
            query=query,
            filters={"category": category, "country": country},
        )

    async def categories(self) -> list[FacetCount]:
        catalog = await self.load()
        counts = Counter(category for channel in catalog for category in channel.categories)
        return _facets(counts, {})

    async def countries(self) -> list[FacetCount]:
        catalog = await self.load()
        counts = Counter(channel.country for channel in catalog if channel.country)
        names = {channel.country: channel.country_name for channel in catalog if channel.country_name}
        return _facets(counts, names)


def _facets(counts: Counter, names: dict[str, str]) -> list[FacetCount]:
    return [
        FacetCount(id=key, name=names.get(key, key), count=count)
        for key, count in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    ]


def join_catalog(
    channels: list[dict[str, Any]],
    streams: list[dict[str, Any]],
    categories: list[dict[str, Any]],
    countries: list[dict[str, Any]],
) -> list[CatalogChannel]:
    """
    Join channels with their streams.

    Channels without streams, closed channels and NSFW channels are left out.
    Category ids are replaced by their display names when the category feed
    is available; otherwise the ids are kept.
    """
    streams_by_channel: dict[str, list[CatalogStream]] = {}
    for stream in streams:
        channel_id = stream.get("channel")
        url = stream.get("url")
        if not channel_id or not url:
            continue
        streams_by_channel.setdefault(channel_id, []).append(
            CatalogStream(
                url=url,
                title=stream.get("title"),
                quality=stream.get("quality"),
                user_agent=stream.get("user_agent"),
                referrer=stream.get("referrer"),
            )
        )

    category_names = {c["id"]: c.get("name") or c["id"] for c in categories if c.get("id")}
    country_names = {c["code"]: c.get("name") for c in countries if c.get("code")}

    catalog = []
    for channel in channels:
        channel_id = channel.get("id")
        if not channel_id or channel_id not in streams_by_channel:
            continue
        if channel.get("is_nsfw") or channel.get("closed"):
            continue
        catalog.append(
            CatalogChannel(
                id=channel_id,
                name=channel.get("name") or channel_id,
                alt_names=channel.get("alt_names") or [],
                country=channel.get("country"),
                country_name=country_names.get(channel.get("country")),
                categories=[category_names.get(c, c) for c in channel.get("categories") or []],
                languages=channel.get("languages") or [],
                logo=channel.get("logo"),
                website=channel.get("website"),
                streams=streams_by_channel[channel_id],
            )
        )
    return catalog
