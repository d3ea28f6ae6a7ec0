"""RSS helper filters for Quire.

Feeds are ordinary templates in the input directory (for example a
``feed.xml.jinja`` with ``permalink: /feed.xml``). This module provides the
filters such a template needs to emit valid RSS or Atom: absolute links,
absolute URLs inside post HTML, and RFC 3339 / RFC 822 dates.

Functions:
    absolute_url: Resolve a URL against a base URL.
    html_to_absolute_urls: Resolve every href/src in an HTML fragment.
    date_to_rfc3339: Format a date for Atom.
    date_to_rfc822: Format a date for RSS 2.0.
    get_newest_collection_item_date: Latest date in a collection.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any
from urllib.parse import urljoin

from markupsafe import Markup

from .filters import to_utc
from .html_utils import absolutize_html_urls


def absolute_url(url: str, base: str) -> str:
    """Resolve ``url`` against ``base``.

    Examples:
        >>> absolute_url("/posts/hello/", "https://example.com")
        'https://example.com/posts/hello/'
    """
    if not base:
        return url
    return urljoin(base, url)


def html_to_absolute_urls(html: str, base: str) -> Markup:
    """Rewrite relative href and src attributes to absolute URLs.

    Args:
        html: Rendered HTML, usually a post's content.
        base: Absolute URL the relative links are resolved against.

    Returns:
        Markup with absolute URLs, safe to embed in a feed.
    """
    return Markup(
        absolutize_html_urls(str(html or ""), base, join=urljoin, keep_fragments=False)
    )


def date_to_rfc3339(value: date | datetime) -> str:
    """Format a date as RFC 3339 in UTC, e.g. ``2024-03-05T00:00:00Z``."""
    return to_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def date_to_rfc822(value: date | datetime) -> str:
    """Format a date as RFC 822 in UTC, e.g. ``Tue, 05 Mar 2024 00:00:00 +0000``."""
    return to_utc(value).strftime("%a, %d %b %Y %H:%M:%S +0000")


def get_newest_collection_item_date(collection: Iterable[Any]) -> datetime | None:
    """Return the most recent ``date`` of a collection, or None when empty."""
    dates = [to_utc(item.date) for item in collection]
    if not dates:
        return None
    return max(dates)
