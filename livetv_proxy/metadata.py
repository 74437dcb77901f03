"""Title metadata enrichment backed by TMDB."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from livetv_proxy.config import settings
from livetv_proxy.exceptions import UpstreamHTTPError, UpstreamNetworkError
from livetv_proxy.fetcher import UpstreamFetcher
from livetv_proxy.models import CastMember, ContentMetadata

logger = logging.getLogger(__name__)

YEAR_PATTERN = re.compile(r"\((\d{4})\)")
SHORT_EPISODE_PATTERN = re.compile(r"S(\d+)E(\d+)", re.IGNORECASE)
LONG_EPISODE_PATTERN = re.compile(r"Season\s*(\d+)\s*Episode\s*(\d+)", re.IGNORECASE)
WRITER_JOBS = {"Writer", "Screenplay", "Story"}


@dataclass
class ParsedTitle:
    title: str
    year: Optional[str] = None
    season: Optional[int] = None
    episode: Optional[int] = None


def parse_title(raw_title: str) -> ParsedTitle:
    """Split a free-text programme title into name, year and season/episode."""
    title = raw_title.strip()
    parsed = ParsedTitle(title=title)

    year = YEAR_PATTERN.search(title)
    if year:
        parsed.year = year.group(1)
        title = YEAR_PATTERN.sub(" ", title, count=1)

    for pattern in (SHORT_EPISODE_PATTERN, LONG_EPISODE_PATTERN):
        match = pattern.search(title)
        if match:
            parsed.season = int(match.group(1))
            parsed.episode = int(match.group(2))
            title = pattern.sub("", title, count=1)

    title = re.sub(r"\s+", " ", title).strip()
    parsed.title = re.sub(r"\s*[-:]\s*$", "", title).strip()
    return parsed


def format_runtime(minutes: Optional[int]) -> str:
    if not minutes:
        return "Unknown"
    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins}m"
    return f"{hours}h {mins}m" if mins else f"{hours}h"


class MetadataLookup:
    """Looks up cast, crew and synopsis for a programme title."""

    def __init__(self, fetcher: UpstreamFetcher, api_key: Optional[str] = None):
        self.fetcher = fetcher
        self.api_key = settings.tmdb_api_key if api_key is None else api_key
        self.api_base = settings.tmdb_api_base.rstrip("/")
        self.image_base = settings.tmdb_image_base.rstrip("/")

    async def _get(self, path: str, **params: Any) -> Any:
        params["api_key"] = self.api_key
        return await self.fetcher.get_json(f"{self.api_base}{path}", params=params)

    async def lookup_content(self, raw_title: str) -> Optional[ContentMetadata]:
        """
        Look up metadata by title.

        Returns None when no API key is configured, nothing matches, or any
        upstream call fails; errors never propagate past this boundary.
        """
        if not self.api_key:
            return None

        parsed = parse_title(raw_title)
        if len(parsed.title) < 2:
            return None

        try:
            return await self._lookup(parsed)
        except (UpstreamHTTPError, UpstreamNetworkError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"[METADATA] Lookup failed for {parsed.title!r}: {e!r}")
            return None

    async def _lookup(self, parsed: ParsedTitle) -> Optional[ContentMetadata]:
        search_params = {"query": parsed.title, "include_adult": "false"}
        if parsed.year:
            search_params["year"] = parsed.year
        search = await self._get("/search/multi", **search_params)
        if not isinstance(search, dict):
            return None

        results = [
            r
            for r in search.get("results") or []
            if isinstance(r, dict) and r.get("media_type") in ("movie", "tv")
        ]
        if not results:
            return None

        wanted = parsed.title.lower()
        best = next(
            (r for r in results if (r.get("title") or r.get("name") or "").lower() == wanted),
            results[0],
        )
        media_type = best["media_type"]
        is_movie = media_type == "movie"

        details, credits = await asyncio.gather(
            self._get(f"/{media_type}/{best['id']}"),
            self._get(f"/{media_type}/{best['id']}/credits"),
        )
        if not isinstance(details, dict) or not isinstance(credits, dict):
            return None
        crew = [c for c in credits.get("crew") or [] if isinstance(c, dict)]

        metadata = ContentMetadata(
            type=media_type,
            id=best["id"],
            title=details.get("title") if is_movie else details.get("name"),
            original_title=(details.get("original_title") if is_movie else details.get("original_name")) or "",
            tagline=details.get("tagline") or "",
            overview=details.get("overview") or "",
            release_date=(details.get("release_date") if is_movie else details.get("first_air_date")) or "",
            runtime=format_runtime(details.get("runtime")) if is_movie else "Series",
            rating=round(float(details.get("vote_average") or 0), 1),
            rating_count=details.get("vote_count") or 0,
            genres=[g["name"] for g in details.get("genres") or []],
            cast=[
                CastMember(
                    name=c["name"],
                    character=c.get("character") or "",
                    photo=f"{self.image_base}/w185{c['profile_path']}" if c.get("profile_path") else None,
                )
                for c in (credits.get("cast") or [])[:10]
            ],
            directors=[c["name"] for c in crew if c.get("job") == "Director"],
            writers=[c["name"] for c in crew if c.get("job") in WRITER_JOBS][:5],
            poster_url=f"{self.image_base}/w500{details['poster_path']}" if details.get("poster_path") else None,
        )

        if not is_movie:
            metadata.seasons = details.get("number_of_seasons")
            metadata.episodes = details.get("number_of_episodes")
            metadata.networks = [n["name"] for n in details.get("networks") or []]

        return metadata
