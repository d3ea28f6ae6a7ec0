"""Build configuration for Quire.

configure() is called once at the start of every build. It declares the
directory contract shared with theme and template sets, the template formats
and engines, and the explicit tables of filters, shortcodes and collections
the template engine installs. It does no I/O.

Key classes and functions:
- DirectoryConfig: Input, output, includes, layouts and data directories.
- BuildConfig: Everything the build needs besides settings and content.
- configure: Emit the BuildConfig for a project.
- manifest_path: Location of the bundler's asset manifest.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from . import feeds, filters
from .collections import tag_list
from .manifest import make_shortcodes
from .markdown import AnchorOptions, MarkdownOptions, toc
from .settings import Settings

TEMPLATE_FORMATS = ("html", "jinja", "md")
TOC_TAGS = ("h1",)


@dataclass(frozen=True)
class DirectoryConfig:
    """Directory layout of a project.

    ``includes``, ``layouts`` and ``data`` are relative to ``input``; ``input``
    and ``output`` are relative to the project root.
    """

    input: str = "src"
    output: str = "docs"
    includes: str = "includes"
    layouts: str = "layouts"
    data: str = "data"

    def input_path(self, project_root: Path) -> Path:
        return project_root / self.input

    def output_path(self, project_root: Path) -> Path:
        return project_root / self.output

    def includes_path(self, project_root: Path) -> Path:
        return self.input_path(project_root) / self.includes

    def layouts_path(self, project_root: Path) -> Path:
        return self.input_path(project_root) / self.layouts

    def data_path(self, project_root: Path) -> Path:
        return self.input_path(project_root) / self.data


@dataclass(frozen=True)
class BuildConfig:
    """Static configuration returned by configure().

    Attributes:
        dirs: Directory layout.
        passthrough_file_copy: Whether passthrough copies are performed.
        template_formats: Extensions treated as templates.
        html_template_engine: Engine used to preprocess HTML templates.
        markdown_template_engine: Engine used to preprocess Markdown.
        passthrough_copy: Source path (project relative) to output path.
        watch_files: Extra files the dev server watches.
        markdown: Markdown parser options.
        filters: Template filters by name.
        shortcodes: Template shortcodes by name.
        collections: Named collections by name.
    """

    dirs: DirectoryConfig = DirectoryConfig()
    passthrough_file_copy: bool = True
    template_formats: tuple[str, ...] = TEMPLATE_FORMATS
    html_template_engine: str = "jinja"
    markdown_template_engine: str = "jinja"
    passthrough_copy: Mapping[str, str] = field(default_factory=dict)
    watch_files: tuple[Path, ...] = ()
    markdown: MarkdownOptions = MarkdownOptions()
    filters: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    shortcodes: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    collections: Mapping[str, Callable[..., Any]] = field(default_factory=dict)


def manifest_path(settings: Settings, dirs: DirectoryConfig | None = None) -> Path:
    """Return where the asset bundler writes its manifest."""
    dirs = dirs or DirectoryConfig()
    return dirs.output_path(settings.project_root) / "assets" / "manifest.json"


def filter_table() -> dict[str, Callable[..., Any]]:
    """Return the filters installed in every template environment."""
    return {
        "excerpt": filters.excerpt,
        "readableDate": filters.readable_date,
        "htmlDateString": filters.html_date_string,
        "head": filters.head,
        "pageTags": filters.page_tags,
        "readingTime": filters.reading_time,
        "toc": lambda html: toc(html, tags=TOC_TAGS),
        "absoluteUrl": feeds.absolute_url,
        "htmlToAbsoluteUrls": feeds.html_to_absolute_urls,
        "dateToRfc3339": feeds.date_to_rfc3339,
        "dateToRfc822": feeds.date_to_rfc822,
        "getNewestCollectionItemDate": feeds.get_newest_collection_item_date,
    }


def configure(settings: Settings, manifest: Mapping[str, str]) -> BuildConfig:
    """Emit the build configuration.

    Args:
        settings: Resolved project settings.
        manifest: Asset manifest, already resolved.

    Returns:
        BuildConfig for this build.
    """
    dirs = DirectoryConfig()
    return BuildConfig(
        dirs=dirs,
        passthrough_file_copy=True,
        template_formats=TEMPLATE_FORMATS,
        html_template_engine="jinja",
        markdown_template_engine="jinja",
        passthrough_copy={f"{dirs.input}/images": "images"},
        watch_files=(manifest_path(settings, dirs),),
        markdown=MarkdownOptions(
            html=True,
            breaks=True,
            linkify=True,
            typographer=True,
            anchors=AnchorOptions(
                permalink=True,
                permalink_before=True,
                permalink_symbol="",
                permalink_class="anchor-link",
                levels=(1,),
            ),
        ),
        filters=filter_table(),
        shortcodes=make_shortcodes(manifest),
        collections={"tagList": tag_list},
    )
