"""Presentation filters for Quire templates.

Every filter here is a pure function of its arguments: no I/O and no shared
state, so a template may call them in any order.

Key functions:
- excerpt: Plain-text teaser of an HTML fragment.
- readable_date / html_date_string: UTC date formatting.
- head: First or last n items of a sequence.
- page_tags: User-facing tags of a single page.
- reading_time: Estimated reading time of a page.
- normalize_tags: Coerce a raw ``tags`` value to a list of strings.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import date, datetime, time, timezone
from typing import Any

from .html_utils import strip_tags

RESERVED_TAGS = frozenset({"all", "nav", "post", "posts", "post_cn"})

EXCERPT_LENGTH = 200
ELLIPSIS = "..."
WORDS_PER_MINUTE = 200


def normalize_tags(value: Any) -> list[str]:
    """Coerce a ``tags`` value to a list of strings.

    Front matter may give tags as nothing at all, a single string, or a list.

    Examples:
        >>> normalize_tags(None)
        []
        >>> normalize_tags("post")
        ['post']
        >>> normalize_tags(["post", "go"])
        ['post', 'go']
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(tag) for tag in value]
    return [str(value)]


def is_reserved_tag(tag: str) -> bool:
    return tag in RESERVED_TAGS


def excerpt(html: str) -> str:
    """Return a plain-text teaser of an HTML fragment.

    Tags are stripped. Text longer than 200 characters is cut at the last
    space at or before character 200; when there is no such space the teaser
    is empty. An ellipsis is always appended.

    Examples:
        >>> excerpt("<p>hello world</p>")
        'hello world...'
        >>> excerpt("")
        '...'
    """
    content = strip_tags(str(html or ""))
    if len(content) <= EXCERPT_LENGTH:
        return content + ELLIPSIS
    cut = content.rfind(" ", 0, EXCERPT_LENGTH + 1)
    return content[: max(cut, 0)] + ELLIPSIS


def to_utc(value: date | datetime) -> datetime:
    """Return a timezone-aware UTC datetime.

    Naive datetimes and plain dates are taken to already be in UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise TypeError(f"Expected a date or datetime, got {type(value).__name__}")


def readable_date(value: date | datetime) -> str:
    """Format a date as ``DD Mon YYYY`` in UTC, e.g. ``05 Mar 2024``."""
    return to_utc(value).strftime("%d %b %Y")


def html_date_string(value: date | datetime) -> str:
    """Format a date as ``YYYY-MM-DD`` in UTC for datetime attributes."""
    return to_utc(value).strftime("%Y-%m-%d")


def head(sequence: Sequence | Any, n: int) -> Sequence:
    """Return the first ``n`` items, or the last ``|n|`` items when n < 0.

    Examples:
        >>> head([1, 2, 3, 4], 2)
        [1, 2]
        >>> head([1, 2, 3, 4], -2)
        [3, 4]
    """
    items = sequence if isinstance(sequence, Sequence) else list(sequence)
    n = int(n)
    if n < 0:
        return items[n:]
    return items[:n]


def page_tags(value: Any) -> list[str]:
    """Return the user-facing tags of a page, in their original order.

    Tags are joined with commas and split again, so ``"go,rust"`` yields two
    tags; entries are otherwise kept exactly as written, matching tag_list.

    Examples:
        >>> page_tags(["post", "go", "rust"])
        ['go', 'rust']
        >>> page_tags("go,posts")
        ['go']
    """
    tags = normalize_tags(value)
    if not tags:
        return []
    joined = ",".join(tags)
    return [tag for tag in joined.split(",") if not is_reserved_tag(tag)]


def reading_time(value: Any) -> str:
    """Estimate the reading time of an HTML string or a content item.

    Args:
        value: HTML string, or an object with a ``content`` attribute.

    Returns:
        A label such as ``"3 min read"``; never less than one minute.
    """
    text = getattr(value, "content", value)
    words = strip_tags(str(text or "")).split()
    minutes = max(1, math.ceil(len(words) / WORDS_PER_MINUTE))
    return f"{minutes} min read"
