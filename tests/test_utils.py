from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urljoin

import pytest

from quire.html_utils import absolutize_html_urls, escape_html, join_root_url, strip_tags
from quire.utils import (
    deep_merge,
    extract_date_from_name,
    output_stem,
    resolve_dotted,
    slugify,
    strip_date_prefix,
    template_format,
)


def test_slugify_strips_date_and_normalizes():
    assert slugify("2024-01-15-My Post!") == "my-post"
    assert slugify("Hello_World") == "hello-world"
    assert slugify("---") == "index"
    assert slugify("2024-05-01-你好") == "你好"
    assert slugify("2024-05-02-世界") == "世界"
    assert slugify("Café Notes") == "café-notes"
    assert strip_date_prefix("2024-01-15-post") == "post"
    assert strip_date_prefix("post-2024") == "post-2024"


def test_extract_date_from_name():
    assert extract_date_from_name("2024-03-05-hello") == datetime(
        2024, 3, 5, tzinfo=timezone.utc
    )
    assert extract_date_from_name("2024-03-05") == datetime(2024, 3, 5, tzinfo=timezone.utc)
    assert extract_date_from_name("2024-13-40-bad") is None
    assert extract_date_from_name("hello") is None


def test_template_format_and_output_stem():
    formats = ("html", "jinja", "md")
    assert template_format(Path("a.md"), formats) == "md"
    assert template_format(Path("feed.xml.jinja"), formats) == "jinja"
    assert template_format(Path("page.HTML"), formats) == "html"
    assert template_format(Path("logo.png"), formats) is None
    assert output_stem(Path("feed.xml.jinja")) == "feed"
    assert output_stem(Path("posts/2024-01-01-a.md")) == "2024-01-01-a"


def test_deep_merge():
    base = {"tags": ["post"], "meta": {"a": 1, "b": 2}, "title": "Base"}
    override = {"tags": ["go", "post"], "meta": {"b": 3}, "title": "Page"}
    merged = deep_merge(base, override)
    assert merged == {"tags": ["post", "go"], "meta": {"a": 1, "b": 3}, "title": "Page"}
    assert base["tags"] == ["post"]
    assert deep_merge({"tags": "x"}, {"tags": ["y"]}) == {"tags": ["y"]}


def test_resolve_dotted():
    class Holder:
        value = 42

    data = {"collections": {"tagList": ["go"]}, "obj": Holder()}
    assert resolve_dotted(data, "collections.tagList") == ["go"]
    assert resolve_dotted(data, "obj.value") == 42
    with pytest.raises(KeyError):
        resolve_dotted(data, "collections.missing")
    with pytest.raises(KeyError):
        resolve_dotted(data, "obj.missing")


def test_html_helpers():
    assert strip_tags("<p>a <b>b</b></p>") == "a b"
    assert escape_html('<a href="x">&</a>') == "&lt;a href=&quot;x&quot;&gt;&amp;&lt;/a&gt;"
    assert join_root_url("https://example.com/", "about") == "https://example.com/about"
    assert join_root_url("", "/about") == "/about"


def test_absolutize_html_urls_skips_external_links():
    html = (
        '<a href="/about">A</a><a href="https://x.org">X</a>'
        '<a href="mailto:a@b.c">M</a><img src="data:image/png;base64,xx">'
    )
    result = absolutize_html_urls(html, "https://example.com")
    assert 'href="https://example.com/about"' in result
    assert 'href="https://x.org"' in result
    assert 'href="mailto:a@b.c"' in result
    assert 'src="data:image/png;base64,xx"' in result
    assert absolutize_html_urls(html, "") == html


def test_absolutize_html_urls_fragments():
    html = '<a href="#notes">Notes</a>'
    assert absolutize_html_urls(html, "https://example.com") == html
    resolved = absolutize_html_urls(
        html, "https://example.com/posts/a/", join=urljoin, keep_fragments=False
    )
    assert resolved == '<a href="https://example.com/posts/a/#notes">Notes</a>'
