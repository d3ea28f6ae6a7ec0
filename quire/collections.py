"""Page collections and the tag aggregator for Quire.

Collections are computed once per build from a complete snapshot of the
pages and exposed to templates as ``collections``:
- ``all``: every page, oldest first.
- one collection per tag, reserved tags included (``collections.post``).
- every named collection from the build configuration, e.g. ``tagList``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from typing import Any

from .content import Page
from .filters import is_reserved_tag, normalize_tags


def tag_list(items: Iterable[Any]) -> list[str]:
    """Collect the user-facing tags of a whole collection.

    Items whose data has no ``tags`` key are skipped. Reserved tags are
    dropped and each tag appears once, in first-seen order.

    Args:
        items: Content items with a ``data`` mapping.

    Returns:
        Deduplicated list of tags.

    Examples:
        >>> class Item:
        ...     def __init__(self, tags):
        ...         self.data = {"tags": tags}
        >>> tag_list([Item(["post", "go"]), Item(["post", "rust", "all"]), Item(["nav"])])
        ['go', 'rust']
    """
    tag_set: dict[str, None] = {}
    for item in items:
        if "tags" not in item.data:
            continue
        for tag in normalize_tags(item.data["tags"]):
            if not is_reserved_tag(tag):
                tag_set.setdefault(tag, None)
    return list(tag_set)


class PageCollection(Sequence[Page]):
    """Lightweight helper for working with lists of Pages in templates and code."""

    def __init__(self, pages: Iterable[Page]):
        self._pages = list(pages)

    def __iter__(self) -> Iterator[Page]:
        return iter(self._pages)

    def __len__(self) -> int:
        return len(self._pages)

    def __getitem__(self, item):
        return self._pages[item]

    def with_tag(self, tag: str) -> PageCollection:
        return PageCollection(p for p in self._pages if tag in p.tags)

    def sorted(self, reverse: bool = False) -> PageCollection:
        """Sort pages by date, then by input path.

        Args:
            reverse: If True, newest first. Defaults to oldest first.
        """
        return PageCollection(
            sorted(
                self._pages,
                key=lambda p: (p.date, str(p.input_path)),
                reverse=reverse,
            )
        )

    def latest(self, count: int = 5) -> PageCollection:
        return PageCollection(self.sorted(reverse=True)[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PageCollection({len(self._pages)} pages)"


def build_collections(
    pages: Iterable[Page],
    named: Mapping[str, Callable[[PageCollection], Any]] | None = None,
) -> dict[str, Any]:
    """Build every collection from a single snapshot of the pages.

    Args:
        pages: All pages of the build.
        named: Collection table from the build configuration; each function
            receives the ``all`` collection.

    Returns:
        Mapping of collection name to collection.
    """
    everything = PageCollection(pages).sorted()
    collections: dict[str, Any] = {"all": everything}
    by_tag: dict[str, list[Page]] = {}
    for page in everything:
        for tag in page.tags:
            by_tag.setdefault(tag, []).append(page)
    for tag, tagged in by_tag.items():
        collections.setdefault(tag, PageCollection(tagged))
    for name, fn in (named or {}).items():
        collections[name] = fn(everything)
    return collections
