"""Wraps a bare media manifest into a minimal single-entry playlist."""

import re
from urllib.parse import unquote, urlparse

CONTENT_ID_LENGTH = 24
FALLBACK_NAME = "stream"
SEPARATOR_PATTERN = re.compile(r"[-_.+\s]+")


def derive_stream_name(url: str) -> str:
    """
    Derive a display name from a stream URL's path.

    Prefers a path segment of exactly 24 characters (an opaque content
    identifier), then the second-to-last segment. Separators in the chosen
    segment become spaces and each word is capitalised. Without a usable
    segment the name is the literal ``"stream"``.
    """
    segments = [unquote(segment) for segment in urlparse(url).path.split("/") if segment]

    chosen = next((segment for segment in segments if len(segment) == CONTENT_ID_LENGTH), None)
    if chosen is None and len(segments) >= 2:
        chosen = segments[-2]

    words = SEPARATOR_PATTERN.sub(" ", chosen or "").split()
    if not words:
        return FALLBACK_NAME
    return " ".join(word[0].upper() + word[1:] for word in words)


def wrap_bare_manifest(url: str) -> str:
    """
    Build a playlist with a single entry pointing at ``url``.

    The target URL is emitted as-is: it is the terminal reference the player
    opens next.
    """
    name = derive_stream_name(url)
    return "\n".join(
        [
            "#EXTM3U",
            f'#EXTINF:-1 tvg-id="{name}" tvg-name="{name}",{name}',
            url,
        ]
    )
