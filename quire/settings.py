"""Project settings for Quire.

Settings are resolved once per build from two sources:
- quire.yaml at the project root (site url, title, dev server ports).
- The APP_ENV environment variable, where "development" selects the
  development asset manifest.

The resulting Settings value is passed explicitly to every component that
needs it; nothing in the package reads the environment on its own.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "quire.yaml"
APP_ENV_VAR = "APP_ENV"
DEVELOPMENT = "development"

DEFAULT_CONFIG = {
    "url": "",
    "title": "",
    "port": 8080,
    "ws_port": None,
}


@dataclass(frozen=True)
class Settings:
    """Resolved project settings.

    Attributes:
        project_root: Root directory of the blog project.
        development: Whether the build runs in development mode.
        url: Public base URL of the site, used by the RSS helpers.
        title: Site title.
        port: HTTP port for the dev server.
        ws_port: Websocket port for live reload (defaults to port + 1).
        extra: Any other keys found in quire.yaml.
    """

    project_root: Path
    development: bool = False
    url: str = ""
    title: str = ""
    port: int = 8080
    ws_port: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def config_path(self) -> Path:
        return self.project_root / CONFIG_FILENAME

    def site_data(self) -> dict[str, Any]:
        """Return the settings exposed to templates as the ``site`` global."""
        data = dict(self.extra)
        data.update({"url": self.url, "title": self.title})
        return data


def load_config(project_root: Path) -> dict[str, Any]:
    """Load quire.yaml with defaults applied.

    Args:
        project_root: Root directory of the project.

    Returns:
        Dictionary containing configuration values.
    """
    config_path = project_root / CONFIG_FILENAME
    config = DEFAULT_CONFIG.copy()
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                config.update(loaded)
    return config


def is_development(environ: Mapping[str, str] | None = None) -> bool:
    """Return True when APP_ENV selects development mode."""
    env = os.environ if environ is None else environ
    return env.get(APP_ENV_VAR) == DEVELOPMENT


def load_settings(
    project_root: Path,
    development: bool | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Resolve settings for a project.

    Args:
        project_root: Root directory of the project.
        development: Explicit mode; when None the APP_ENV variable decides.
        environ: Environment mapping to read instead of os.environ.

    Returns:
        Settings instance.
    """
    config = load_config(project_root)
    if development is None:
        development = is_development(environ)
    known = {"url", "title", "port", "ws_port"}
    ws_port = config.get("ws_port")
    return Settings(
        project_root=project_root,
        development=development,
        url=str(config.get("url") or ""),
        title=str(config.get("title") or ""),
        port=int(config.get("port") or DEFAULT_CONFIG["port"]),
        ws_port=int(ws_port) if ws_port is not None else None,
        extra={k: v for k, v in config.items() if k not in known},
    )
