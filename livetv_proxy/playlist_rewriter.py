"""HLS/M3U playlist rewriter that routes every reference back through the proxy."""

import re
from typing import Optional
from urllib.parse import parse_qs, quote, urlparse

# Matches a URI scheme such as "https:" or "skd:"
SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")


def resolve_reference(reference: str, base_url: str) -> str:
    """
    Resolve a playlist reference against the URL of the playlist containing it.

    Resolution order:
        1. Already absolute (has a scheme) -> unchanged
        2. Protocol-relative ("//host/x") -> base scheme prefixed
        3. Root-relative ("/x") -> base scheme and host prefixed
        4. Relative ("x") -> base directory prefixed

    Args:
        reference: Raw reference from the playlist
        base_url: Absolute URL of the playlist being rewritten

    Returns:
        Absolute URL
    """
    if SCHEME_PATTERN.match(reference):
        return reference

    base = urlparse(base_url)

    if reference.startswith("//"):
        return f"{base.scheme}:{reference}"

    if reference.startswith("/"):
        return f"{base.scheme}://{base.netloc}{reference}"

    directory = base.path[: base.path.rfind("/") + 1] or "/"
    return f"{base.scheme}://{base.netloc}{directory}{reference}"


class PlaylistRewriter:
    """Rewrites playlists so players fetch every sub-resource through the proxy."""

    # Quoted URI attribute used by #EXT-X-KEY, #EXT-X-MAP, #EXT-X-MEDIA, ...
    URI_PATTERN = re.compile(r'URI="([^"]+)"')

    def __init__(self, proxy_path: str = "/proxy/stream"):
        """
        Initialize the rewriter.

        Args:
            proxy_path: Path of the proxy endpoint that rewritten references re-enter
        """
        self.proxy_path = proxy_path.rstrip("/")

    def rewrite(self, content: str, base_url: str) -> str:
        """
        Rewrite all references in a playlist.

        Line order and line count are preserved.

        Args:
            content: Original playlist text
            base_url: Absolute upstream URL of the playlist

        Returns:
            Rewritten playlist text
        """
        return "\n".join(self._rewrite_line(line, base_url) for line in content.split("\n"))

    def _rewrite_line(self, line: str, base_url: str) -> str:
        stripped = line.strip()

        if not stripped:
            return line

        if stripped.startswith("#"):
            if 'URI="' not in stripped:
                return line
            return self._rewrite_uri_attributes(stripped, base_url)

        return self.wrap(resolve_reference(stripped, base_url))

    def _rewrite_uri_attributes(self, line: str, base_url: str) -> str:
        def replace_uri(match: re.Match) -> str:
            absolute = resolve_reference(match.group(1), base_url)
            return f'URI="{self.wrap(absolute)}"'

        return self.URI_PATTERN.sub(replace_uri, line)

    def wrap(self, absolute_url: str) -> str:
        """
        Express an absolute upstream URL as a proxy path.

        Non-HTTP references (``data:``, ``skd:``) are not fetchable upstream
        resources and are returned unchanged.
        """
        if not absolute_url.startswith(("http://", "https://")):
            return absolute_url
        return f"{self.proxy_path}?url={quote(absolute_url, safe='')}"

    @staticmethod
    def unwrap(proxy_reference: str) -> Optional[str]:
        """
        Extract the upstream URL from a proxy reference produced by ``wrap``.

        Returns:
            The decoded upstream URL, or None if the reference carries none
        """
        query = urlparse(proxy_reference).query
        values = parse_qs(query).get("url")
        return values[0] if values else None
