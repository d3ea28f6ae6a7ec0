"""Template rendering engine for Quire.

This module uses Jinja2 to render page content and wrap it in layouts.

Key classes:
- FrontMatterLoader: FileSystemLoader that hides YAML front matter.
- TemplateEngine: Installs the configured filters, shortcodes and
  collections and renders pages.

Rendering a page happens in two steps so listings can read other pages'
content: render_content fills ``page.content`` and render_page wraps that
content in its layout chain.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    TemplateNotFound,
    TemplateRuntimeError,
    select_autoescape,
)
from markupsafe import Markup

from .config import BuildConfig
from .content import Page, extract_frontmatter
from .markdown import MarkdownRenderer, pygments_css
from .utils import deep_merge

LAYOUT_SUFFIXES = ("", ".jinja", ".html.jinja", ".html")


class FrontMatterLoader(FileSystemLoader):
    """Loads templates with their YAML front matter removed."""

    def get_source(self, environment: Environment, template: str):
        source, filename, uptodate = super().get_source(environment, template)
        _, body = extract_frontmatter(source, Path(filename))
        return body, filename, uptodate


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        config: Build configuration providing directories and tables.
        project_root: Root directory of the project.
        site: Site settings exposed as the ``site`` global.
        env: Jinja2 environment.
        collections: Collections exposed to templates.
    """

    def __init__(
        self,
        config: BuildConfig,
        project_root: Path,
        site: Mapping[str, Any] | None = None,
    ):
        self.config = config
        self.project_root = project_root
        self.site = dict(site or {})
        self.layouts_dir = config.dirs.layouts_path(project_root)
        self.includes_dir = config.dirs.includes_path(project_root)
        self.env = Environment(
            loader=FrontMatterLoader([self.layouts_dir, self.includes_dir]),
            autoescape=select_autoescape(["html", "xml", "jinja"]),
            enable_async=False,
        )
        self.markdown = MarkdownRenderer(config.markdown)
        self.collections: Mapping[str, Any] = {}
        self._install()

    def _install(self) -> None:
        """Install the configured tables in the Jinja environment."""
        self.env.filters.update(self.config.filters)
        self.env.globals.update(self.config.shortcodes)
        self.env.globals["site"] = self.site
        self.env.globals["pygments_css"] = pygments_css
        self.env.globals["collections"] = self.collections

    def update_collections(self, collections: Mapping[str, Any]) -> None:
        """Replace the collections visible to templates."""
        self.collections = collections
        self.env.globals["collections"] = collections

    def context_for(
        self, page: Page, data: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Build the template context for a page.

        Args:
            page: Page being rendered.
            data: Data to expose instead of ``page.data`` (used for layouts).

        Returns:
            Context dictionary.
        """
        context: dict[str, Any] = dict(page.data if data is None else data)
        context["page"] = page.page_info()
        context["collections"] = self.collections
        context["site"] = self.site
        return context

    def render_string(self, template: str, context: Mapping[str, Any]) -> str:
        """Render a template string.

        Args:
            template: Template string to render.
            context: Variables to make available in the template.

        Returns:
            Rendered string.
        """
        return self.env.from_string(template).render(**context)

    def render_permalink(self, page: Page) -> str | None:
        """Resolve the URL of a page.

        A ``permalink`` of ``false`` means the page is not written. Any other
        permalink is rendered as a template against the page data.

        Returns:
            URL path starting with "/", or None.
        """
        permalink = page.data.get("permalink")
        if permalink is False:
            return None
        if not permalink:
            return page.url
        url = self.render_string(str(permalink), self.context_for(page)).strip()
        return url if url.startswith("/") else f"/{url}"

    def render_content(self, page: Page) -> str:
        """Render a page's own template, without layouts.

        Markdown is preprocessed with the configured markdown template engine
        and then converted to HTML.
        """
        context = self.context_for(page)
        if page.template_format == "md":
            body = page.body
            if self.config.markdown_template_engine == "jinja":
                body = self.render_string(body, context)
            return self.markdown.render(body)
        if page.template_format == "html" and self.config.html_template_engine != "jinja":
            return page.body
        return self.render_string(page.body, context)

    def render_page(self, page: Page) -> str:
        """Wrap ``page.content`` in its layout chain.

        Each layout may name its own parent layout in its front matter. Layout
        front matter sits below page data in priority.

        Raises:
            TemplateNotFound: If a layout cannot be found.
            TemplateRuntimeError: If layouts form a cycle.
        """
        html = page.content
        data: dict[str, Any] = dict(page.data)
        layout = page.layout
        seen: set[str] = set()
        while layout:
            if layout in seen:
                raise TemplateRuntimeError(f"Circular layout chain at {layout!r}")
            seen.add(layout)
            name, layout_data = self._resolve_layout(layout)
            data = deep_merge(layout_data, data)
            context = self.context_for(page, data)
            context["content"] = Markup(html)
            html = self.env.get_template(name).render(**context)
            layout = layout_data.get("layout")
        return html

    def _resolve_layout(self, layout: str) -> tuple[str, dict[str, Any]]:
        """Find a layout file and read its front matter.

        Returns:
            Tuple of (template name relative to the layouts directory, front matter).
        """
        for suffix in LAYOUT_SUFFIXES:
            candidate = self.layouts_dir / f"{layout}{suffix}"
            if candidate.is_file():
                layout_data, _ = extract_frontmatter(
                    candidate.read_text(encoding="utf-8"), candidate
                )
                return candidate.relative_to(self.layouts_dir).as_posix(), layout_data
        raise TemplateNotFound(layout)
