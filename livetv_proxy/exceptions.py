"""Custom exceptions for the proxy server."""

from typing import Optional

from fastapi import HTTPException, status


class InvalidURLError(HTTPException):
    """Raised when the target URL is missing or malformed."""

    def __init__(self, message: str = "Invalid URL"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
        )


class UpstreamHTTPError(HTTPException):
    """Raised when an upstream server answers with a non-2xx status."""

    def __init__(self, status_code: int, url: str):
        super().__init__(
            status_code=status_code,
            detail=f"Upstream error: {status_code}",
        )
        self.url = url


class UpstreamNetworkError(HTTPException):
    """Raised when an upstream server cannot be reached."""

    def __init__(self, url: str, reason: str = ""):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to proxy stream",
        )
        self.url = url
        self.reason = reason


class ClassificationError(HTTPException):
    """Raised when a declared manifest matches no playlist heuristic."""

    def __init__(self, content_type: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Response does not appear to be a valid playlist ({content_type})",
        )


class AllProvidersFailedError(HTTPException):
    """Raised when every endpoint of a fallback chain has been exhausted."""

    def __init__(self, attempts: Optional[list[dict]] = None):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="All provider endpoints failed",
        )
        self.attempts = attempts or []


class CatalogUnavailableError(HTTPException):
    """Raised when a mandatory catalog feed cannot be fetched."""

    def __init__(self, feed: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Catalog feed unavailable: {feed}",
        )
        self.feed = feed


class UnsupportedPageError(HTTPException):
    """Raised when a page URL is not recognised by any manifest extractor."""

    def __init__(self, url: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported page URL: {url}",
        )
