"""Asset manifest resolution for Quire.

CSS and JavaScript are bundled by an external tool that writes a JSON manifest
mapping logical asset names ("main.js", "main.css") to the URLs it served them
under, usually with cache-busting hashes. This module loads that manifest once
per build and exposes the shortcodes that turn it into HTML tags.

Key functions:
- load_manifest: Return the development mapping or read the manifest file.
- bundled_css / bundled_js: Render the stylesheet and script tags.
- make_shortcodes: Build the shortcode table for the template engine.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from pathlib import Path

from markupsafe import Markup

DEV_MANIFEST = {
    "main.js": "/assets/main.js",
    "main.css": "/assets/main.css",
}


class ConfigLoadError(Exception):
    """Error raised when the asset manifest cannot be loaded.

    The build cannot continue without a manifest, so this error aborts it
    before any output is written.

    Attributes:
        path: Path of the manifest that failed to load.
        message: Human-readable reason.
    """

    def __init__(self, path: Path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


def load_manifest(development: bool, path: Path) -> dict[str, str]:
    """Resolve the asset manifest.

    Args:
        development: When True the fixed development mapping is returned and
            the filesystem is not touched.
        path: Location of the manifest written by the bundler.

    Returns:
        Mapping of logical asset name to served URL.

    Raises:
        ConfigLoadError: If the file is missing, unreadable, not valid JSON,
            or not a flat object of strings.
    """
    if development:
        return dict(DEV_MANIFEST)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigLoadError(
            path, "asset manifest not found; run the asset bundler first"
        ) from exc
    except OSError as exc:
        raise ConfigLoadError(path, f"cannot read asset manifest: {exc}") from exc
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigLoadError(
            path, f"invalid JSON on line {exc.lineno}: {exc.msg}"
        ) from exc
    if not isinstance(payload, dict):
        raise ConfigLoadError(path, "asset manifest must be a JSON object")
    for key, value in payload.items():
        if not isinstance(value, str):
            raise ConfigLoadError(
                path, f"asset manifest entry {key!r} must be a string"
            )
    return payload


def bundled_css(manifest: Mapping[str, str]) -> Markup:
    """Return the stylesheet tag for main.css, or an empty string."""
    href = manifest.get("main.css")
    if not href:
        return Markup("")
    return Markup('<link href="{}" rel="stylesheet" />').format(href)


def bundled_js(manifest: Mapping[str, str]) -> Markup:
    """Return the script tag for main.js, or an empty string."""
    src = manifest.get("main.js")
    if not src:
        return Markup("")
    return Markup('<script src="{}"></script>').format(src)


def make_shortcodes(manifest: Mapping[str, str]) -> dict[str, Callable[[], Markup]]:
    """Bind the bundled asset shortcodes to a resolved manifest.

    Args:
        manifest: Manifest returned by load_manifest.

    Returns:
        Mapping of shortcode name to a zero-argument callable.
    """
    return {
        "bundledcss": lambda: bundled_css(manifest),
        "bundledjs": lambda: bundled_js(manifest),
    }
