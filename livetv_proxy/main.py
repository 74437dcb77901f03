"""Main FastAPI application for the live-TV HLS proxy."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from livetv_proxy import __version__
from livetv_proxy.cache import TTLCache
from livetv_proxy.catalog import CatalogAggregator
from livetv_proxy.classifier import ContentKind
from livetv_proxy.config import settings
from livetv_proxy.exceptions import AllProvidersFailedError, UnsupportedPageError
from livetv_proxy.extractors import ManifestExtractor, YouTubeExtractor, find_extractor
from livetv_proxy.fetcher import UpstreamFetcher, create_http_client
from livetv_proxy.metadata import MetadataLookup
from livetv_proxy.models import (
    CatalogSearchResponse,
    ChannelSessionFailure,
    ChannelSessionResponse,
    ContentMetadata,
    ErrorResponse,
    ExtractionResult,
    FacetCount,
)
from livetv_proxy.playlist_rewriter import PlaylistRewriter
from livetv_proxy.session_minter import SessionMinter
from livetv_proxy.stream_proxy import StreamProxy
from livetv_proxy.url_validation import decode_target_url

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
}
PREFLIGHT_HEADERS = {**CORS_HEADERS, "Access-Control-Allow-Headers": "*"}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan (startup and shutdown)."""
    # Startup
    logger.info("Starting live-TV HLS proxy")
    http_client = create_http_client()
    fetcher = UpstreamFetcher(http_client)
    logger.info(f"HTTP client initialized with timeout={settings.http_timeout_seconds}s")

    playlist_cache = TTLCache(
        ttl=settings.playlist_cache_ttl_seconds,
        purge_factor=settings.playlist_cache_purge_factor,
    )
    app.state.playlist_cache = playlist_cache
    app.state.stream_proxy = StreamProxy(fetcher, playlist_cache, PlaylistRewriter(settings.proxy_path))
    app.state.session_minter = SessionMinter(fetcher)
    app.state.catalog = CatalogAggregator(
        fetcher,
        TTLCache(ttl=settings.catalog_cache_ttl_seconds, purge_factor=2),
        settings.iptv_org_api_base,
    )
    app.state.metadata = MetadataLookup(fetcher)
    app.state.extractors = [YouTubeExtractor(fetcher)]
    logger.info(f"Playlist cache initialized with ttl={settings.playlist_cache_ttl_seconds}s")

    yield

    # Shutdown
    logger.info("Shutting down live-TV HLS proxy")
    await http_client.aclose()
    logger.info("HTTP client closed")


# Initialize FastAPI app
app = FastAPI(
    title="Live-TV HLS Proxy",
    description="Streaming proxy for live-TV playlists and segments behind CORS or signed URLs",
    version=__version__,
    lifespan=lifespan,
)


def get_stream_proxy(request: Request) -> StreamProxy:
    return request.app.state.stream_proxy


def get_session_minter(request: Request) -> SessionMinter:
    return request.app.state.session_minter


def get_catalog(request: Request) -> CatalogAggregator:
    return request.app.state.catalog


def get_metadata_lookup(request: Request) -> MetadataLookup:
    return request.app.state.metadata


def get_extractors(request: Request) -> list[ManifestExtractor]:
    return request.app.state.extractors


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render every HTTP error as ``{"error": ...}`` with permissive CORS headers."""
    if isinstance(exc, AllProvidersFailedError):
        body = ChannelSessionFailure(
            error="Failed to fetch channels",
            message="All provider endpoints failed",
            attempts=exc.attempts,
        ).model_dump(by_alias=True)
    else:
        body = ErrorResponse(error=str(exc.detail)).model_dump()

    return JSONResponse(content=body, status_code=exc.status_code, headers=CORS_HEADERS)


@app.get(
    settings.proxy_path,
    summary="Proxy a playlist or segment",
    description="Fetch upstream HLS content and route every embedded reference back through this proxy",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def proxy_stream(
    url: Optional[str] = Query(None, description="Percent-encoded absolute upstream URL"),
    stream_proxy: StreamProxy = Depends(get_stream_proxy),
) -> Response:
    """
    Proxy upstream HLS content to the browser player.

    1. Decodes and validates the target URL
    2. Serves a fresh cached playlist when available
    3. Otherwise fetches, classifies and rewrites or relays the content
    """
    target = decode_target_url(url)
    logger.info(f"[PROXY] Request: url={target}")

    result = await stream_proxy.proxy(target)

    if result.kind is ContentKind.BINARY_SEGMENT:
        headers = {**CORS_HEADERS, "Cache-Control": f"max-age={settings.segment_cache_max_age_seconds}"}
        if result.stream is not None:
            return StreamingResponse(result.stream, media_type=result.media_type, headers=headers)
        return Response(content=result.body, media_type=result.media_type, headers=headers)

    headers = {**CORS_HEADERS, "Cache-Control": "no-cache"}
    if result.kind is ContentKind.PLAYLIST:
        headers["X-Proxy-Cache"] = "HIT" if result.from_cache else "MISS"
    return Response(content=result.body, media_type=result.media_type, headers=headers)


@app.options(settings.proxy_path, include_in_schema=False)
async def proxy_stream_preflight() -> Response:
    """Handle CORS preflight for the proxy endpoint."""
    return Response(content=b"", headers=PREFLIGHT_HEADERS)


@app.get(
    "/channels/session",
    response_model=ChannelSessionResponse,
    summary="Provider channels with fresh stream URLs",
    description="Mint a new device/session identity and return channels whose stream URLs carry it",
    responses={503: {"model": ChannelSessionFailure}},
)
async def channel_session(
    response: Response,
    minter: SessionMinter = Depends(get_session_minter),
) -> ChannelSessionResponse:
    """Return provider channels signed with a session minted for this request."""
    result = await minter.channel_session()
    response.headers["Cache-Control"] = (
        f"public, s-maxage={settings.channels_cache_max_age_seconds}, "
        f"stale-while-revalidate={settings.channels_stale_while_revalidate_seconds}"
    )
    response.headers.update(CORS_HEADERS)
    return result


@app.get(
    "/catalog",
    response_model=CatalogSearchResponse,
    summary="Search the public channel catalog",
)
async def search_catalog(
    q: str = Query("", description="Free-text search"),
    category: str = Query("", description="Category name"),
    country: str = Query("", description="Country code"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    catalog: CatalogAggregator = Depends(get_catalog),
) -> CatalogSearchResponse:
    """Search the aggregated catalog."""
    return await catalog.search(query=q, category=category, country=country, limit=limit, offset=offset)


@app.get("/catalog/categories", response_model=list[FacetCount], summary="Catalog categories")
async def catalog_categories(catalog: CatalogAggregator = Depends(get_catalog)) -> list[FacetCount]:
    return await catalog.categories()


@app.get("/catalog/countries", response_model=list[FacetCount], summary="Catalog countries")
async def catalog_countries(catalog: CatalogAggregator = Depends(get_catalog)) -> list[FacetCount]:
    return await catalog.countries()


@app.get(
    "/metadata",
    response_model=Optional[ContentMetadata],
    summary="Programme metadata",
    description="Look up cast, crew and synopsis for a programme title; null when unknown",
)
async def programme_metadata(
    title: str = Query(..., min_length=1),
    lookup: MetadataLookup = Depends(get_metadata_lookup),
) -> Optional[ContentMetadata]:
    return await lookup.lookup_content(title)


@app.get(
    "/extract",
    response_model=ExtractionResult,
    summary="Extract a manifest from a video page",
    responses={400: {"model": ErrorResponse}},
)
async def extract_manifest(
    url: str = Query(..., min_length=1),
    extractors: list[ManifestExtractor] = Depends(get_extractors),
) -> ExtractionResult:
    """Best-effort manifest extraction; unreliable by nature."""
    extractor = find_extractor(extractors, url)
    if extractor is None:
        raise UnsupportedPageError(url)
    return await extractor.extract_manifest(url)


@app.get(
    "/health",
    summary="Health check",
)
async def health_check(request: Request) -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "cached_playlists": len(request.app.state.playlist_cache),
        "version": __version__,
    }


def run() -> None:
    """Run the server with uvicorn."""
    import uvicorn

    uvicorn.run("livetv_proxy.main:app", host=settings.host, port=settings.port, log_level=settings.log_level)
