"""Markdown rendering for Quire.

Markdown is rendered with mistune. The renderer adds permalink anchors to the
configured heading levels, applies typographic replacements to text runs and
highlights fenced code with Pygments.

Key classes and functions:
- MarkdownOptions / AnchorOptions: Parser and anchor settings.
- MarkdownRenderer: Renders a Markdown string to HTML.
- toc: Builds a table of contents from rendered HTML.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import mistune
from markupsafe import Markup
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .html_utils import escape_html, strip_tags

HEADING_RE = re.compile(
    r'<h(?P<level>[1-6])\b[^>]*\bid="(?P<id>[^"]+)"[^>]*>(?P<body>.*?)</h(?P=level)>',
    re.IGNORECASE | re.DOTALL,
)

TYPOGRAPHER_REPLACEMENTS = (
    (re.compile(r"\(c\)", re.IGNORECASE), "©"),
    (re.compile(r"\(r\)", re.IGNORECASE), "®"),
    (re.compile(r"\(tm\)", re.IGNORECASE), "™"),
    (re.compile(r"\+-"), "±"),
    (re.compile(r"\.{3}"), "…"),
    (re.compile(r"(?<!-)---(?!-)"), "—"),
    (re.compile(r"(?<!-)--(?!-)"), "–"),
)


@dataclass(frozen=True)
class AnchorOptions:
    """Permalink anchors added to headings.

    Attributes:
        permalink: Whether to insert a link to the heading itself.
        permalink_before: Place the link before the heading text.
        permalink_symbol: Text of the link.
        permalink_class: CSS class of the link.
        levels: Heading levels that receive ids and permalinks.
    """

    permalink: bool = True
    permalink_before: bool = True
    permalink_symbol: str = ""
    permalink_class: str = "anchor-link"
    levels: tuple[int, ...] = (1,)


@dataclass(frozen=True)
class MarkdownOptions:
    """Markdown parser options.

    Attributes:
        html: Pass raw HTML through unescaped.
        breaks: Turn single newlines into ``<br />``.
        linkify: Turn bare URLs into links.
        typographer: Replace (c), --, ... and friends with typographic symbols.
        anchors: Heading anchor settings.
    """

    html: bool = True
    breaks: bool = True
    linkify: bool = True
    typographer: bool = True
    anchors: AnchorOptions = AnchorOptions()


@dataclass
class Heading:
    """A heading found in rendered HTML, used for the table of contents."""

    id: str
    text: str
    level: int


def generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text.

    Examples:
        >>> generate_heading_id("Hello, World!")
        'hello-world'
    """
    slug = strip_tags(text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


def apply_typographer(text: str) -> str:
    for pattern, replacement in TYPOGRAPHER_REPLACEMENTS:
        text = pattern.sub(replacement, text)
    return text


class _BlogRenderer(mistune.HTMLRenderer):
    """mistune renderer with heading anchors, typography and highlighting."""

    def __init__(self, options: MarkdownOptions):
        super().__init__(escape=not options.html)
        self.options = options
        self._heading_id_counts: dict[str, int] = {}

    def text(self, text: str) -> str:
        if self.options.typographer:
            text = apply_typographer(text)
        return super().text(text)

    def heading(self, text: str, level: int, **attrs) -> str:
        anchors = self.options.anchors
        if level not in anchors.levels:
            return f"<h{level}>{text}</h{level}>\n"

        base_id = generate_heading_id(text) or "section"
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id

        body = text
        if anchors.permalink:
            link = (
                f'<a class="{anchors.permalink_class}" href="#{heading_id}" '
                f'aria-hidden="true">{anchors.permalink_symbol}</a>'
            )
            body = f"{link} {text}" if anchors.permalink_before else f"{text} {link}"
        return f'<h{level} id="{heading_id}">{body}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info and info.strip() else None
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = escape_html(code)
        lang_class = f' class="language-{lang}"' if lang else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown content to HTML.

    A fresh mistune instance is created per render so heading ids are unique
    within a page, not across the site.
    """

    def __init__(self, options: MarkdownOptions | None = None):
        self.options = options or MarkdownOptions()

    def render(self, content: str) -> str:
        """Render Markdown source to HTML."""
        plugins = ["strikethrough", "footnotes", "table"]
        if self.options.linkify:
            plugins.append("url")
        markdown = mistune.create_markdown(
            renderer=_BlogRenderer(self.options),
            hard_wrap=self.options.breaks,
            plugins=plugins,
        )
        return markdown(content)


def extract_headings(html: str, levels: tuple[int, ...] = (1,)) -> list[Heading]:
    """Find headings with ids in rendered HTML."""
    headings: list[Heading] = []
    for match in HEADING_RE.finditer(html):
        level = int(match.group("level"))
        if level not in levels:
            continue
        text = strip_tags(match.group("body")).strip()
        headings.append(Heading(id=match.group("id"), text=text, level=level))
    return headings


def _render_toc_from_headings(headings: list[Heading]) -> str:
    """Render headings as nested ordered lists."""
    html_parts: list[str] = []
    level_stack: list[int] = []

    for heading in headings:
        level = heading.level

        # Close nested lists if going to a shallower level
        while level_stack and level_stack[-1] > level:
            level_stack.pop()
            html_parts.append("</li></ol>")

        if level_stack and level_stack[-1] == level:
            html_parts.append("</li>")
        elif not level_stack or level > level_stack[-1]:  # pragma: no branch
            html_parts.append("<ol>")
            level_stack.append(level)

        html_parts.append(
            f'<li><a href="#{escape_html(heading.id)}">{heading.text}</a>'
        )

    while level_stack:
        level_stack.pop()
        html_parts.append("</li></ol>")

    return "".join(html_parts)


def toc(html: str, tags: tuple[str, ...] = ("h1",)) -> Markup:
    """Build a table of contents from the headings of rendered HTML.

    Args:
        html: Rendered page content.
        tags: Heading tag names to include, e.g. ("h1", "h2").

    Returns:
        ``<nav class="toc">`` markup, or empty Markup when no heading matches.
    """
    levels = tuple(int(tag.lstrip("hH")) for tag in tags)
    headings = extract_headings(str(html or ""), levels)
    if not headings:
        return Markup("")
    return Markup(f'<nav class="toc">{_render_toc_from_headings(headings)}</nav>')


def pygments_css() -> str:
    """Return Pygments CSS for the ``highlight`` class."""
    return HtmlFormatter().get_style_defs(".highlight")
