"""Content discovery for Quire.

This module finds the templates under the input directory and turns each one
into a Page: its front matter is parsed, its data cascade merged, its date
resolved and its default URL derived. Rendering happens later in the template
engine.

Key classes:
- Page: Dataclass representing one output page (a content item).
- FileContentLoader: Discovers template files in the input directory.
- DataCascade: Merges global, directory and front matter data.
- UrlDeriver: Derives default URLs and output paths.
- PageBuilder: Builds Page objects from source files.
- ContentProcessor: Facade loading every page of a project.

Data cascade, lowest priority first:
1. Global data from the data directory, keyed by file stem.
2. Directory data files (``posts/posts.json``) for each ancestor directory.
3. Template data files (``posts/hello.json`` beside ``posts/hello.md``).
4. Front matter.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from .filters import normalize_tags, to_utc
from .utils import (
    deep_merge,
    extract_date_from_name,
    output_stem,
    resolve_dotted,
    slugify,
    template_format,
)

if TYPE_CHECKING:
    from .config import BuildConfig

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n|$)", re.DOTALL)

DATA_SUFFIXES = (".json", ".yaml", ".yml")


class ContentError(Exception):
    """Error raised when a content file or data file cannot be parsed.

    Attributes:
        source_path: File that failed to parse.
        message: Human-readable error message.
    """

    def __init__(self, source_path: Path, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")


@dataclass
class Page:
    """A content item: one page of the site.

    Attributes:
        input_path: Source template path.
        template_format: "md", "html" or "jinja".
        body: Template source with front matter removed.
        data: Merged data cascade for this page.
        date: Publication date, always timezone-aware UTC.
        file_slug: Filename stem without date prefix, used in default URLs.
        url: URL path, or None when the page is not written.
        output_path: Output file, or None when the page is not written.
        content: Rendered template content without layout.
    """

    input_path: Path
    template_format: str
    body: str
    data: dict[str, Any]
    date: datetime
    file_slug: str
    url: str | None = None
    output_path: Path | None = None
    content: str = ""
    pagination: dict[str, Any] | None = field(default=None, repr=False)

    @property
    def tags(self) -> list[str]:
        return normalize_tags(self.data.get("tags"))

    @property
    def layout(self) -> str | None:
        return self.data.get("layout") or None

    @property
    def draft(self) -> bool:
        return bool(self.data.get("draft", False))

    @property
    def title(self) -> str:
        return str(self.data.get("title") or "")

    @property
    def template_content(self) -> str:
        return self.content

    def page_info(self) -> dict[str, Any]:
        """Return the ``page`` variable exposed to templates."""
        return {
            "url": self.url,
            "date": self.date,
            "inputPath": str(self.input_path),
            "fileSlug": self.file_slug,
            "outputPath": str(self.output_path) if self.output_path else None,
        }


def extract_frontmatter(text: str, path: Path | None = None) -> tuple[dict[str, Any], str]:
    """Extract YAML front matter from content.

    Args:
        text: Raw file content.
        path: Source file, used in error messages.

    Returns:
        Tuple of (front matter dict, remaining content).

    Raises:
        ContentError: If the front matter is not valid YAML.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise ContentError(path or Path("<string>"), f"invalid front matter: {exc}") from exc
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end() :]


def load_data_file(path: Path) -> Any:
    """Parse a JSON or YAML data file.

    Raises:
        ContentError: If the file cannot be parsed.
    """
    raw = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            return json.loads(raw)
        return yaml.safe_load(raw)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ContentError(path, f"invalid data file: {exc}") from exc


def _normalize_layer(layer: Mapping[str, Any]) -> dict[str, Any]:
    """Coerce ``tags`` to a list so cascade layers merge as lists."""
    out = dict(layer)
    if "tags" in out:
        out["tags"] = normalize_tags(out["tags"])
    return out


class FileContentLoader:
    """Discovers template files in the input directory.

    Files inside the includes, layouts and data directories are never pages.

    Attributes:
        input_dir: Directory containing site content.
        excluded_dirs: Directories skipped during discovery.
        formats: Recognized template extensions.
    """

    def __init__(self, input_dir: Path, excluded_dirs: Iterable[Path], formats: Iterable[str]):
        self.input_dir = input_dir
        self.excluded_dirs = [d for d in excluded_dirs]
        self.formats = tuple(formats)

    def iter_files(self) -> list[Path]:
        files: list[Path] = []
        for path in sorted(self.input_dir.rglob("*")):
            if path.is_dir():
                continue
            if any(_is_relative_to(path, excluded) for excluded in self.excluded_dirs):
                continue
            if template_format(path, self.formats):
                files.append(path)
        return files


def _is_relative_to(path: Path, other: Path) -> bool:
    try:
        path.relative_to(other)
        return True
    except ValueError:
        return False


class DataCascade:
    """Merges the data layers that apply to a template.

    Attributes:
        input_dir: Directory containing site content.
        global_data: Data loaded from the data directory.
    """

    def __init__(self, input_dir: Path, global_data: Mapping[str, Any]):
        self.input_dir = input_dir
        self.global_data = dict(global_data)
        self._dir_cache: dict[Path, dict[str, Any]] = {}

    def directory_data(self, directory: Path) -> dict[str, Any]:
        """Return the merged directory data files for ``directory`` and its parents."""
        if directory in self._dir_cache:
            return self._dir_cache[directory]
        if directory == self.input_dir or not _is_relative_to(directory, self.input_dir):
            merged: dict[str, Any] = {}
        else:
            merged = self.directory_data(directory.parent)
            own = self._read_first(directory, directory.name)
            if own:
                merged = deep_merge(merged, _normalize_layer(own))
        self._dir_cache[directory] = merged
        return merged

    def template_data(self, path: Path) -> dict[str, Any]:
        """Return the data file sitting beside a template, if any."""
        return self._read_first(path.parent, output_stem(path))

    def merge(self, path: Path, frontmatter: Mapping[str, Any]) -> dict[str, Any]:
        data = deep_merge({}, self.global_data)
        data = deep_merge(data, self.directory_data(path.parent))
        data = deep_merge(data, _normalize_layer(self.template_data(path)))
        return deep_merge(data, _normalize_layer(frontmatter))

    def _read_first(self, directory: Path, stem: str) -> dict[str, Any]:
        for suffix in DATA_SUFFIXES:
            candidate = directory / f"{stem}{suffix}"
            if candidate.is_file():
                payload = load_data_file(candidate)
                return payload if isinstance(payload, dict) else {}
        return {}


class UrlDeriver:
    """Derives URLs and output paths for pages."""

    def derive(self, rel: Path, file_slug: str) -> str:
        """Derive the default URL for a page.

        ``index`` templates map to their directory; everything else gets a
        directory of its own: ``posts/hello.md`` becomes ``/posts/hello/``.
        """
        segments = [p for p in rel.parent.parts if p]
        if file_slug != "index":
            segments.append(file_slug)
        path = "/".join(segments)
        return f"/{path}/" if path else "/"

    def output_path(self, output_dir: Path, url: str) -> Path:
        """Map a URL to the file written under ``output_dir``."""
        rel = url.lstrip("/")
        if not rel or url.endswith("/"):
            return output_dir / rel / "index.html"
        return output_dir / rel


def resolve_date(value: Any, path: Path) -> datetime:
    """Resolve a page date from front matter, filename or modification time."""
    if isinstance(value, (datetime, date)):
        return to_utc(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        try:
            return to_utc(datetime.fromisoformat(text))
        except ValueError as exc:
            raise ContentError(path, f"invalid date {value!r}") from exc
    from_name = extract_date_from_name(output_stem(path))
    if from_name is not None:
        return from_name
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


class PageBuilder:
    """Builds Page objects from source files.

    Attributes:
        input_dir: Directory containing site content.
        cascade: Data cascade for the project.
        formats: Recognized template extensions.
        url_deriver: URL deriver instance.
    """

    def __init__(self, input_dir: Path, cascade: DataCascade, formats: Iterable[str]):
        self.input_dir = input_dir
        self.cascade = cascade
        self.formats = tuple(formats)
        self.url_deriver = UrlDeriver()

    def build(self, path: Path) -> Page:
        rel = path.relative_to(self.input_dir)
        raw = path.read_text(encoding="utf-8")
        frontmatter, body = extract_frontmatter(raw, path)
        data = self.cascade.merge(path, frontmatter)
        stem = output_stem(path)
        file_slug = slugify(stem) if stem != "index" else "index"
        return Page(
            input_path=path,
            template_format=template_format(path, self.formats) or "html",
            body=body,
            data=data,
            date=resolve_date(data.get("date"), path),
            file_slug=file_slug,
            url=self.url_deriver.derive(rel, file_slug),
        )


class ContentProcessor:
    """Facade for loading every page of a project.

    Attributes:
        config: Build configuration.
        input_dir: Directory containing site content.
    """

    def __init__(self, config: BuildConfig, project_root: Path, global_data: Mapping[str, Any]):
        self.config = config
        self.input_dir = config.dirs.input_path(project_root)
        dirs = config.dirs
        self._loader = FileContentLoader(
            self.input_dir,
            excluded_dirs=[
                dirs.includes_path(project_root),
                dirs.layouts_path(project_root),
                dirs.data_path(project_root),
            ],
            formats=config.template_formats,
        )
        self._builder = PageBuilder(
            self.input_dir,
            DataCascade(self.input_dir, global_data),
            formats=config.template_formats,
        )

    def load(self, include_drafts: bool = False) -> list[Page]:
        """Load all content files and create Page objects.

        Args:
            include_drafts: Whether to include pages marked ``draft: true``.

        Returns:
            List of Page objects in input path order.
        """
        pages: list[Page] = []
        for path in self._loader.iter_files():
            page = self._builder.build(path)
            if page.draft and not include_drafts:
                continue
            pages.append(page)
        return pages


def paginate(page: Page, context: Mapping[str, Any]) -> list[Page]:
    """Expand a template with ``pagination`` front matter into several pages.

    The ``pagination`` mapping accepts ``data`` (a dotted path into the render
    context, e.g. ``collections.tagList``), ``size`` (items per page, default
    1) and ``alias`` (variable name bound to the page's items, or to the single
    item when size is 1).

    Args:
        page: Template carrying pagination front matter.
        context: Render context used to resolve ``data``.

    Returns:
        One Page per chunk, each with a ``pagination`` variable in its data.

    Raises:
        ContentError: If the pagination data path cannot be resolved.
    """
    settings = page.data.get("pagination")
    if not isinstance(settings, Mapping) or "data" not in settings:
        return [page]
    try:
        source = resolve_dotted(context, str(settings["data"]))
    except KeyError as exc:
        raise ContentError(
            page.input_path, f"pagination data {settings['data']!r} not found"
        ) from exc
    if isinstance(source, Mapping):
        items = list(source.keys())
    else:
        items = list(source)
    size = max(1, int(settings.get("size", 1)))
    chunks = [items[i : i + size] for i in range(0, len(items), size)] or [[]]
    alias = settings.get("alias")

    expanded: list[Page] = []
    for number, chunk in enumerate(chunks):
        info = {
            "items": chunk,
            "pageNumber": number,
            "size": size,
            "pages": chunks,
            "total": len(chunks),
        }
        data = dict(page.data)
        data["pagination"] = info
        if alias:
            data[alias] = chunk[0] if size == 1 and chunk else chunk
        url = page.url
        if number and url:
            url = f"{url.rstrip('/')}/{number}/"
        expanded.append(replace(page, data=data, url=url, pagination=info))
    return expanded
