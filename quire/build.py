"""Site building functionality for Quire.

This module contains the build loop: it resolves settings and the asset
manifest, emits the build configuration, loads content, computes collections,
renders every page and copies passthrough files.

Key functions:
- build_site: Main function to build the entire site.
- load_data: Loads global data from the data directory.
"""

from __future__ import annotations

import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import TemplateSyntaxError

from .collections import build_collections
from .config import BuildConfig, configure, manifest_path
from .content import (
    DATA_SUFFIXES,
    ContentError,
    ContentProcessor,
    Page,
    UrlDeriver,
    load_data_file,
    paginate,
)
from .manifest import load_manifest
from .settings import Settings, load_settings
from .templates import TemplateEngine


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        pages: Pages written to the output directory.
        output_dir: Directory where the site was built.
        settings: Settings used for the build.
        config: Build configuration used for the build.
        manifest: Asset manifest used for the build.
        collections: Collections exposed to templates.
    """

    pages: list[Page]
    output_dir: Path
    settings: Settings
    config: BuildConfig
    manifest: dict[str, str]
    collections: dict[str, Any]


def load_data(data_dir: Path) -> dict[str, Any]:
    """Load global data from JSON and YAML files in the data directory.

    Each file becomes a top-level key named after its stem.

    Args:
        data_dir: Data directory inside the input directory.

    Returns:
        Dictionary of global data.
    """
    data: dict[str, Any] = {}
    if not data_dir.exists():
        return data
    for path in sorted(data_dir.iterdir()):
        if path.is_file() and path.suffix.lower() in DATA_SUFFIXES:
            data[path.stem] = load_data_file(path)
    return data


def build_site(
    project_root: Path,
    include_drafts: bool = False,
    development: bool | None = None,
    output_dir_override: Path | None = None,
) -> BuildResult:
    """Build the entire site.

    The asset manifest is resolved before anything else; when it cannot be
    loaded ConfigLoadError propagates and nothing is written.

    Args:
        project_root: Root directory of the project.
        include_drafts: Whether to include pages marked as drafts.
        development: Explicit mode; when None the APP_ENV variable decides.
        output_dir_override: Optional path to write the build output to.

    Returns:
        BuildResult describing the build.

    Raises:
        ConfigLoadError: If the asset manifest cannot be loaded.
        BuildError: If a content file fails to load or render.
        FileNotFoundError: If the input directory is missing.
    """
    settings = load_settings(project_root, development=development)
    manifest = load_manifest(settings.development, manifest_path(settings))
    config = configure(settings, manifest)

    input_dir = config.dirs.input_path(project_root)
    if not input_dir.exists():
        raise FileNotFoundError(f"Expected input directory at {input_dir}")
    output_dir = output_dir_override or config.dirs.output_path(project_root)

    try:
        global_data = load_data(config.dirs.data_path(project_root))
        templates = ContentProcessor(config, project_root, global_data).load(
            include_drafts=include_drafts
        )
    except ContentError as exc:
        raise BuildError(exc.source_path, exc.message, exc) from exc

    engine = TemplateEngine(config, project_root, site=settings.site_data())
    paginated = [t for t in templates if "pagination" in t.data]
    pages = [t for t in templates if "pagination" not in t.data]
    collections = build_collections(pages, config.collections)
    engine.update_collections(collections)

    for template in paginated:
        try:
            pages.extend(paginate(template, engine.context_for(template)))
        except ContentError as exc:
            raise BuildError(exc.source_path, exc.message, exc) from exc

    url_deriver = UrlDeriver()
    claimed: dict[Path, Page] = {}
    for page in pages:
        page.url = _guard(page, engine.render_permalink, page)
        if page.url is None:
            continue
        page.output_path = url_deriver.output_path(output_dir, page.url)
        owner = claimed.setdefault(page.output_path, page)
        if owner is not page:
            raise BuildError(
                page.input_path,
                f"Output {page.url} is also written by {owner.input_path}",
            )

    # Tagged pages first so listings and feeds can read their content.
    for page in sorted(pages, key=lambda p: not p.tags):
        page.content = _guard(page, engine.render_content, page)

    output_dir.mkdir(parents=True, exist_ok=True)
    written: list[Page] = []
    for page in pages:
        if page.output_path is None:
            continue
        rendered = _guard(page, engine.render_page, page)
        _write_page(page.output_path, rendered)
        written.append(page)

    if config.passthrough_file_copy:
        _copy_passthrough(project_root, output_dir, config.passthrough_copy)

    return BuildResult(
        pages=written,
        output_dir=output_dir,
        settings=settings,
        config=config,
        manifest=manifest,
        collections=collections,
    )


def _guard(page: Page, fn, *args):
    """Call a render step, converting failures into BuildError."""
    try:
        return fn(*args)
    except TemplateSyntaxError as exc:
        raise BuildError(
            page.input_path,
            f"Template syntax error on line {exc.lineno}: {exc.message}",
            exc,
        ) from exc
    except Exception as exc:
        raise BuildError(
            page.input_path,
            _format_error_message(exc),
            exc,
        ) from exc


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TemplateNotFound":
        return f"Template not found: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"

    return f"{error_type}: {error_msg}"


def _write_page(output_path: Path, rendered: str) -> None:
    """Write a rendered page, creating parent directories."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(rendered)


def _copy_passthrough(
    project_root: Path, output_dir: Path, mapping: Mapping[str, str]
) -> None:
    """Copy passthrough files and directories unchanged.

    Args:
        project_root: Root directory of the project.
        output_dir: Output directory.
        mapping: Source path relative to the project root to output path.
    """
    for source, target in mapping.items():
        src = project_root / source
        dest = output_dir / target
        if src.is_dir():
            shutil.copytree(src, dest, dirs_exist_ok=True)
        elif src.is_file():
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
