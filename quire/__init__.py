"""Quire blog builder.

This package builds a blog from Markdown and Jinja2 templates. A project keeps
its sources under ``src/`` and is rendered into ``docs/``; CSS and JavaScript
are bundled by a separate tool whose asset manifest quire reads at startup.

The main entry point is the CLI module, which provides commands for building
the blog and running the development server with live reload.

Build flow:
- Settings are resolved once from quire.yaml and the APP_ENV variable.
- The asset manifest is resolved next; a missing manifest aborts the build.
- The build configuration exposes explicit filter, shortcode and collection
  tables that the template engine installs.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
