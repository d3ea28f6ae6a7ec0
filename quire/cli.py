"""Command-line interface for Quire.

This module defines the CLI commands using Click framework.

Commands:
- build: Build the blog into the output directory.
- serve: Run development server with live reload.

Both commands read APP_ENV to choose between the development asset manifest
and the one written by the bundler; --dev/--no-dev overrides it.
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__
from .build import BuildError
from .manifest import ConfigLoadError

_dev_option = click.option(
    "--dev/--no-dev",
    "development",
    default=None,
    help="Use the development asset manifest (defaults to APP_ENV=development)",
)


@click.group()
@click.version_option(version=__version__, prog_name="quire")
def cli():
    """Quire blog builder."""


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@_dev_option
def build(drafts: bool, development: bool | None):
    """Build the blog into the output directory."""
    project_root = Path.cwd()
    from .build import build_site

    try:
        result = build_site(
            project_root, include_drafts=drafts, development=development
        )
    except (BuildError, ConfigLoadError) as exc:
        _report_failure(project_root, exc)
        raise SystemExit(1) from None
    click.echo(f"Built {len(result.pages)} pages into {result.output_dir}")


@cli.command()
@click.option("--drafts", is_flag=True, help="Include draft content")
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides quire.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides quire.yaml ws_port)",
)
@_dev_option
def serve(
    drafts: bool, port: int | None, ws_port: int | None, development: bool | None
):
    """Run dev server with live reload."""
    project_root = Path.cwd()
    from .server import DevServer

    server = DevServer(
        project_root, http_port=port, ws_port=ws_port, development=development
    )
    try:
        server.start(include_drafts=drafts)
    except (BuildError, ConfigLoadError) as exc:
        _report_failure(project_root, exc)
        raise SystemExit(1) from None


def _report_failure(project_root: Path, exc: BuildError | ConfigLoadError) -> None:
    """Print a build failure to stderr."""
    source = exc.source_path if isinstance(exc, BuildError) else exc.path
    try:
        shown = source.relative_to(project_root)
    except ValueError:
        shown = source
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    click.echo(click.style(f"  File: {shown}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


def main():
    """Entry point for the CLI application."""
    cli()
