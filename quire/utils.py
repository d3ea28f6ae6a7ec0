"""Utility functions for Quire.

Key functions:
    slugify: Convert filenames to URL slugs.
    extract_date_from_name: Extract date from filename prefix.
    template_format: Map a path to its template format.
    deep_merge: Merge data cascade layers.
    resolve_dotted: Look up ``a.b.c`` paths in nested data.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

DATE_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})-")


def strip_date_prefix(name: str) -> str:
    """Drop a ``YYYY-MM-DD-`` prefix from a filename stem.

    Examples:
        >>> strip_date_prefix("2024-01-02-post-title")
        'post-title'
    """
    return DATE_PREFIX_RE.sub("", name, count=1)


def slugify(name: str) -> str:
    """Convert filename (without extension) to slug, dropping date prefix.

    Unicode letters and digits are kept, so non-Latin filenames keep
    distinct slugs.

    Args:
        name: Filename stem.

    Returns:
        URL-friendly slug.

    Examples:
        >>> slugify("2024-05-01-你好 世界")
        '你好-世界'
    """
    cleaned = strip_date_prefix(name)
    cleaned = re.sub(r"[\W_]+", "-", cleaned)
    cleaned = cleaned.strip("-").lower()
    return cleaned or "index"


def extract_date_from_name(name: str) -> datetime | None:
    """Extract a UTC date from a filename with YYYY-MM-DD prefix.

    Args:
        name: Filename stem (without extension).

    Returns:
        datetime at midnight UTC if a valid date prefix is found, None otherwise.
    """
    match = DATE_PREFIX_RE.match(f"{name}-")
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError:
        return None


def template_format(path: Path, formats: Iterable[str]) -> str | None:
    """Return the template format of a file, or None when it is not a template.

    ``page.html.jinja`` is a "jinja" template; ``page.html`` is "html".

    Args:
        path: File to classify.
        formats: Recognized template extensions without the dot.
    """
    suffix = path.suffix.lower().lstrip(".")
    if suffix in formats:
        return suffix
    return None


def output_stem(path: Path) -> str:
    """Return a filename stem with every template extension removed.

    Examples:
        >>> output_stem(Path("feed.xml.jinja"))
        'feed'
    """
    name = path.name
    while "." in name:
        name = name.rsplit(".", 1)[0]
    return name


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge two data layers.

    Nested mappings are merged recursively; lists are combined keeping the
    first occurrence of each item; anything else in ``override`` wins.

    Examples:
        >>> deep_merge({"tags": ["post"]}, {"tags": ["go", "post"]})
        {'tags': ['post', 'go']}
    """
    out: dict[str, Any] = dict(base)
    for key, value in override.items():
        current = out.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            out[key] = deep_merge(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            out[key] = current + [item for item in value if item not in current]
        else:
            out[key] = value
    return out


def resolve_dotted(data: Mapping[str, Any], dotted: str) -> Any:
    """Resolve a dotted path such as ``collections.tagList``.

    Raises:
        KeyError: If any segment is missing.
    """
    current: Any = data
    for part in dotted.split("."):
        if isinstance(current, Mapping):
            current = current[part]
        else:
            try:
                current = getattr(current, part)
            except AttributeError as exc:
                raise KeyError(dotted) from exc
    return current
