"""HTML utility functions for Darkroom.

This module provides the small HTML and URL helpers shared by the renderers,
the template engine and the feed generator.

Functions:
    escape_html: Escape special HTML characters in a string.
    join_root_url: Join a base URL with a path.
    is_external_url: Check whether a reference points outside the article.
    local_image_name: Filename an image reference points to.
    url_quote: Percent-encode a filename for use in a URL.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from urllib.parse import quote, unquote

# URL prefixes that never refer to a file beside the article
_EXTERNAL_PREFIXES = (
    "http://",
    "https://",
    "//",
    "/",
    "data:",
    "mailto:",
    "#",
)


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Converts the following characters to their HTML entity equivalents:
    - & becomes &amp;
    - < becomes &lt;
    - > becomes &gt;
    - " becomes &quot;

    Args:
        text: The string to escape.

    Returns:
        The escaped string, safe for inclusion in HTML.

    Examples:
        >>> escape_html('<script>alert("XSS")</script>')
        '&lt;script&gt;alert(&quot;XSS&quot;)&lt;/script&gt;'

        >>> escape_html('Tom & Jerry')
        'Tom &amp; Jerry'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Args:
        root_url: Base URL (e.g., https://example.com/blog).
        path: Path beginning with or without a leading slash.

    Returns:
        Combined URL with proper slash handling.

    Examples:
        >>> join_root_url('https://example.com', '/about')
        'https://example.com/about'

        >>> join_root_url('https://example.com/', 'about')
        'https://example.com/about'
    """
    if not root_url:
        return path
    if path.startswith(("http://", "https://")):
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def is_external_url(src: str) -> bool:
    """Return True when an image reference is not a file beside the article."""
    return not src or src.startswith(_EXTERNAL_PREFIXES) or "{{" in src


def local_image_name(src: str) -> str:
    """Return the filename a local image reference points to.

    References may be percent-encoded (``my%20photo.jpg``), as written by
    hand or as handed over by the Markdown parser.

    Examples:
        >>> local_image_name("my%20photo.jpg")
        'my photo.jpg'

        >>> local_image_name("./shots/dusk.jpg")
        'dusk.jpg'
    """
    return PurePosixPath(unquote(src)).name


def url_quote(filename: str) -> str:
    """Percent-encode a filename so it can be used in ``src`` or ``srcset``.

    Examples:
        >>> url_quote("my photo.jpg")
        'my%20photo.jpg'
    """
    return quote(filename)
