"""HTML utility functions for Quire.

This module provides the small amount of HTML string manipulation the filters
need: tag stripping, escaping, and rewriting root-relative URLs.

Functions:
    strip_tags: Remove anything that looks like an HTML tag.
    escape_html: Escape special HTML characters in a string.
    join_root_url: Join a base URL with a path.
    absolutize_html_urls: Convert root-relative URLs to absolute in HTML.
"""

from __future__ import annotations

import re
from collections.abc import Callable

TAG_RE = re.compile(r"<[^>]+>", re.IGNORECASE)

# URL attribute regex pattern for finding href and src attributes
_URL_ATTR_RE = re.compile(
    r'(?P<prefix>\b(?:href|src)=["\'])(?P<url>[^"\']+)(?P<suffix>["\'])'
)

# URL prefixes that should not be modified
_URL_SKIP_PREFIXES = (
    "http://",
    "https://",
    "//",
    "mailto:",
    "tel:",
    "javascript:",
    "data:",
)


def strip_tags(html: str) -> str:
    """Remove every ``<...>`` sequence from a string.

    Examples:
        >>> strip_tags("<p>hello <b>world</b></p>")
        'hello world'
    """
    return TAG_RE.sub("", html)


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Examples:
        >>> escape_html('Tom & "Jerry"')
        'Tom &amp; &quot;Jerry&quot;'
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
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def absolutize_html_urls(
    html: str,
    root_url: str,
    join: Callable[[str, str], str] = join_root_url,
    keep_fragments: bool = True,
) -> str:
    """Rewrite relative URLs in href and src attributes to absolute URLs.

    External URLs, mailto/tel/data links and javascript: URLs are left
    unchanged. ``join`` combines the root URL with each relative URL and
    defaults to join_root_url. ``#fragment`` links are left alone unless
    ``keep_fragments`` is False, in which case they are resolved too.

    Examples:
        >>> absolutize_html_urls('<a href="/about">About</a>', 'https://example.com')
        '<a href="https://example.com/about">About</a>'
    """
    if not root_url:
        return html

    def repl(match: re.Match) -> str:
        url = match.group("url")
        if not url or url.startswith(_URL_SKIP_PREFIXES):
            return match.group(0)
        if keep_fragments and url.startswith("#"):
            return match.group(0)
        absolute = join(root_url, url)
        return f"{match.group('prefix')}{absolute}{match.group('suffix')}"

    return _URL_ATTR_RE.sub(repl, html)
