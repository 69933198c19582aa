"""Command-line interface for Kiln.

Commands:
- build: Build the site into the output directory.
- serve: Run the development server with live reload.
- article: Create a new blog article.
- resolve: Show how a path resolves against the build configuration.

Every command loads kiln.yaml from the current directory and initializes the
process-wide settings registry with it before doing anything else.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath

import click
import questionary

from . import __version__
from .config import BuildMode, ConfigurationError, Layout, Settings, load_config, registry
from .content import SOURCE_DIR, PageBuilder
from .patterns import RouteMismatch
from .resolver import ConfigurationResolver
from .utils import source_path_for


def _settings(project_root: Path) -> Settings:
    """Return the process-wide settings, loading them on first use."""
    if registry.initialized:
        return registry.get()
    try:
        return registry.initialize(load_config(project_root))
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc


def _describe_layout(layout: Layout | None) -> str:
    if layout is None:
        return "default"
    if layout is False:
        return "disabled"
    return str(layout)


@click.group()
@click.version_option(version=__version__, prog_name="kiln")
def cli():
    """Kiln static site builder."""


@cli.command()
@click.option(
    "--mode",
    type=click.Choice([m.value for m in BuildMode]),
    default=BuildMode.BUILD.value,
    show_default=True,
    help="dev skips minification",
)
@click.option("--drafts", is_flag=True, help="Include unpublished pages")
def build(mode: str, drafts: bool):
    """Build the site into the output directory."""
    project_root = Path.cwd()
    from .build import BuildError, build_site

    settings = _settings(project_root)
    try:
        result = build_site(project_root, mode=mode, settings=settings, include_drafts=drafts)
    except BuildError as exc:
        rel_path = exc.source_path.relative_to(project_root)
        click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  File: {rel_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
        raise SystemExit(1) from None
    except FileNotFoundError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(
        f"Built {len(result.pages)} pages into {result.output_dir} ({result.mode.value} mode)"
    )


@cli.command()
@click.option("--drafts", is_flag=True, help="Include unpublished pages")
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides kiln.yaml)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides kiln.yaml ws_port)",
)
def serve(drafts: bool, port: int | None, ws_port: int | None):
    """Run dev server with live reload."""
    project_root = Path.cwd()
    from .server import DevServer

    server = DevServer(
        project_root, settings=_settings(project_root), http_port=port, ws_port=ws_port
    )
    server.start(include_drafts=drafts)


@cli.command()
@click.argument("title", required=False)
@click.option(
    "--date",
    "published",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Publication date (defaults to today)",
)
@click.option("--tag", "tags", multiple=True, help="Tag, may be repeated")
def article(title: str | None, published, tags: tuple[str, ...]):
    """Create a new blog article."""
    project_root = Path.cwd()
    from .blog import new_article

    settings = _settings(project_root)
    if not title:
        title = questionary.text(
            "Article title:",
            validate=lambda x: len(x.strip()) > 0 or "Title cannot be empty",
            style=_questionary_style(),
        ).ask()
        if title is None:
            raise click.Abort()

    try:
        path = new_article(
            project_root,
            ConfigurationResolver(settings),
            title.strip(),
            date=published.date() if published else None,
            tags=tags,
        )
    except (ValueError, FileExistsError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Created {path.relative_to(project_root)}")


@cli.command()
@click.argument("path")
def resolve(path: str):
    """Show the output path and layout a source path resolves to."""
    resolver = ConfigurationResolver(_settings(Path.cwd()))
    source_path = source_path_for(PurePosixPath(path.lstrip("/")))
    try:
        route = resolver.resolve_blog_route(source_path)
    except RouteMismatch:
        route = None
        output_path = "/" + source_path
        click.echo("Blog article: no")
    else:
        output_path = "/" + resolver.render_permalink(route.date, route.title, **route.params)
        click.echo(f"Blog article: {route.date.isoformat()} {route.title}")

    builder = PageBuilder(Path.cwd() / SOURCE_DIR, resolver)
    renderer = builder.renderers.get_renderer(Path(path))
    source_type = renderer.source_type if renderer is not None else "static"
    layout = builder.layout_for(output_path, {}, route, source_type)
    click.echo(f"Output path: {output_path}")
    click.echo(f"Layout: {_describe_layout(layout)}")


def _questionary_style():
    """Return consistent questionary style."""
    return questionary.Style(
        [
            ("qmark", "fg:cyan bold"),
            ("question", "bold"),
            ("answer", "fg:cyan"),
            ("pointer", "fg:cyan bold"),
            ("highlighted", "fg:cyan bold"),
            ("selected", "fg:cyan"),
        ]
    )


def main():
    """Entry point for the CLI application."""
    cli()
