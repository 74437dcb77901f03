"""Content-based classification of upstream responses."""

from enum import Enum

from livetv_proxy.exceptions import ClassificationError

PLAYLIST_HEADER = "#EXTM3U"
ENTRY_MARKERS = ("#EXTINF", "#EXT-X-STREAM-INF")
MANIFEST_DIRECTIVES = (
    "#EXT-X-VERSION",
    "#EXT-X-TARGETDURATION",
    "#EXT-X-STREAM-INF",
    "#EXT-X-MEDIA-SEQUENCE",
)
MANIFEST_MIME_MARKER = "mpegurl"


class ContentKind(str, Enum):
    """What an upstream response turned out to be."""

    PLAYLIST = "playlist"
    BARE_MEDIA_MANIFEST = "bare_media_manifest"
    BINARY_SEGMENT = "binary_segment"


def is_manifest_content_type(content_type: str) -> bool:
    """Whether the declared content type names an HLS/M3U manifest."""
    return MANIFEST_MIME_MARKER in (content_type or "").lower()


def looks_like_text_manifest(chunk: bytes) -> bool:
    """
    Sniff the first bytes of a body for an M3U-style text document.

    Manifests always open with a ``#`` directive, so a body that does not is
    relayed as a binary segment without reading any further.
    """
    head = chunk[:64].lstrip(b"\xef\xbb\xbf").lstrip()
    return head.startswith(b"#")


def classify(body: str, content_type: str = "") -> ContentKind:
    """
    Classify a response body.

    Args:
        body: Decoded response text
        content_type: Declared Content-Type header (may be empty)

    Returns:
        The detected ContentKind

    Raises:
        ClassificationError: If the content type declares a manifest but the
            body matches neither the playlist nor the bare-manifest heuristic
    """
    has_header = PLAYLIST_HEADER in body
    has_entry = any(marker in body for marker in ENTRY_MARKERS)

    if has_header and has_entry:
        return ContentKind.PLAYLIST

    if any(directive in body for directive in MANIFEST_DIRECTIVES):
        return ContentKind.BARE_MEDIA_MANIFEST

    if is_manifest_content_type(content_type):
        raise ClassificationError(content_type)

    return ContentKind.BINARY_SEGMENT
