"""Data models for the proxy server."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Error body returned by every failing endpoint."""

    error: str = Field(..., description="Human-readable error message")


class SessionInfo(BaseModel):
    """Identifiers minted for one channel-catalog request."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(..., alias="deviceId")
    sid: str
    generated_at: datetime = Field(..., alias="generatedAt")


class ChannelSessionResponse(BaseModel):
    """Provider channels with freshly signed stream URLs."""

    channels: list[dict[str, Any]] = Field(default_factory=list)
    session_info: SessionInfo = Field(..., alias="sessionInfo")

    model_config = ConfigDict(populate_by_name=True)


class ProviderAttempt(BaseModel):
    """Diagnostic record of one fallback-chain attempt."""

    endpoint: str
    error: Optional[str] = None
    status_code: Optional[int] = Field(None, alias="statusCode")

    model_config = ConfigDict(populate_by_name=True)


class ChannelSessionFailure(BaseModel):
    """Body returned when every provider endpoint failed."""

    error: str
    message: str
    channels: list[dict[str, Any]] = Field(default_factory=list)
    attempts: list[ProviderAttempt] = Field(default_factory=list)


class CatalogStream(BaseModel):
    """A playable stream of a catalog channel."""

    url: str
    title: Optional[str] = None
    quality: Optional[str] = None
    user_agent: Optional[str] = Field(None, alias="userAgent")
    referrer: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class CatalogChannel(BaseModel):
    """A catalog channel joined with its streams and facet names."""

    id: str
    name: str
    alt_names: list[str] = Field(default_factory=list, alias="altNames")
    country: Optional[str] = None
    country_name: Optional[str] = Field(None, alias="countryName")
    categories: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    logo: Optional[str] = None
    website: Optional[str] = None
    streams: list[CatalogStream] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class CatalogSearchResponse(BaseModel):
    """Paginated catalog search result."""

    results: list[CatalogChannel]
    total: int
    limit: int
    offset: int
    query: str = ""
    filters: dict[str, str] = Field(default_factory=dict)


class FacetCount(BaseModel):
    """A category or country with the number of channels carrying it."""

    id: str
    name: str
    count: int


class CastMember(BaseModel):
    """A cast credit."""

    name: str
    character: str = ""
    photo: Optional[str] = None


class ContentMetadata(BaseModel):
    """Metadata record for a movie or TV show."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    id: int
    title: str
    original_title: str = Field("", alias="originalTitle")
    tagline: str = ""
    overview: str = ""
    release_date: str = Field("", alias="releaseDate")
    runtime: str = ""
    rating: float = 0.0
    rating_count: int = Field(0, alias="ratingCount")
    genres: list[str] = Field(default_factory=list)
    cast: list[CastMember] = Field(default_factory=list)
    directors: list[str] = Field(default_factory=list)
    writers: list[str] = Field(default_factory=list)
    poster_url: Optional[str] = Field(None, alias="posterUrl")
    seasons: Optional[int] = None
    episodes: Optional[int] = None
    networks: list[str] = Field(default_factory=list)


class ExtractionResult(BaseModel):
    """Outcome of a best-effort manifest extraction from a web page."""

    model_config = ConfigDict(populate_by_name=True)

    manifest_url: Optional[str] = Field(None, alias="manifestUrl")
    is_live: bool = Field(False, alias="isLive")
    title: Optional[str] = None
    error: Optional[str] = None
