"""Decoding and validation of client-supplied target URLs."""

from typing import Optional
from urllib.parse import unquote

from livetv_proxy.exceptions import InvalidURLError

ALLOWED_PREFIXES = ("http://", "https://")


def decode_target_url(raw: Optional[str]) -> str:
    """
    Decode and validate the ``url`` query parameter of a proxy request.

    The framework has already percent-decoded the query string once. The value
    is decoded a second time only when it is not yet an absolute http(s) URL,
    which covers clients that double-encode without corrupting signed upstream
    URLs that legitimately contain percent-escapes.

    Args:
        raw: Value of the ``url`` query parameter (may be None)

    Returns:
        The absolute upstream URL, used verbatim as fetch target and cache key

    Raises:
        InvalidURLError: If the parameter is missing, cannot be decoded, or is
            not an http(s) URL
    """
    if raw is None or not raw.strip():
        raise InvalidURLError("Missing url parameter")

    decoded = raw
    if not decoded.startswith(ALLOWED_PREFIXES):
        try:
            decoded = unquote(raw, errors="strict")
        except UnicodeDecodeError:
            raise InvalidURLError("Invalid URL encoding")

    if not decoded.startswith(ALLOWED_PREFIXES):
        raise InvalidURLError("Invalid URL")

    return decoded
