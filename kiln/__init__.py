"""Kiln static site builder.

Kiln renders a ``source/`` tree of Markdown, Jinja and plain files into a
static site. Its core is a declarative build configuration (markdown options,
a blog extension, ordered per-page layout rules and production minification
toggles) that is frozen at startup and resolved per page during a build.

The main entry point is the CLI module, which provides commands for building
the site, running the development server, creating blog articles and
inspecting how a path resolves.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
