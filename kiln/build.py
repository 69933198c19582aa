"""Site building functionality for Kiln.

A build pass loads the configuration, resolves every page against it,
renders pages into their layouts, and writes them and the site's assets to
the output directory. Minification only happens in build mode.

Key functions:
- build_site: Build the entire site.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from jinja2 import TemplateSyntaxError

from .asset_processors import create_default_registry, minify_html
from .assets import AssetPipeline
from .blog import BlogExtension
from .config import BuildMode, Settings, load_config
from .content import SOURCE_DIR, ContentProcessor, Page
from .resolver import ConfigurationResolver, UnresolvedLayout
from .templates import TemplateEngine
from .utils import ensure_clean_dir


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
        pages: Every page written, tag pages included.
        output_dir: Directory where the site was built.
        settings: Settings the site was built with.
        mode: Build mode.
        assets: Asset files written.
    """

    pages: list[Page]
    output_dir: Path
    settings: Settings
    mode: BuildMode
    assets: list[Path]


def build_site(
    project_root: Path,
    mode: BuildMode | str = BuildMode.BUILD,
    settings: Settings | None = None,
    include_drafts: bool = False,
    clean_output: bool = True,
    output_dir_override: Path | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        mode: ``dev`` for unminified output, ``build`` for production output.
        settings: Settings to build with; loaded from kiln.yaml when omitted.
        include_drafts: Whether to include pages with ``published: false``.
        clean_output: Whether to wipe the output directory before building.
        output_dir_override: Write the build here instead of the configured output_dir.

    Returns:
        BuildResult describing what was written.

    Raises:
        FileNotFoundError: If the project has no source directory.
        BuildError: If a page cannot be loaded or rendered.
    """
    settings = settings or load_config(project_root)
    mode = BuildMode(mode)
    resolver = ConfigurationResolver(settings)
    flags = resolver.build_flags(mode)

    source_dir = project_root / SOURCE_DIR
    if not source_dir.exists():
        raise FileNotFoundError(f"Expected source directory at {source_dir}")
    output_dir = output_dir_override or (project_root / settings.output_dir)
    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    processor = ContentProcessor(source_dir, resolver)
    pages: list[Page] = []
    for path in processor.page_files():
        try:
            page = processor.builder.build(path)
        except Exception as exc:
            raise BuildError(path, _format_error_message(exc), exc) from exc
        if page.published or include_drafts:
            pages.append(page)

    blog = BlogExtension(source_dir, resolver, processor.builder)
    articles = blog.articles(pages)
    tags = blog.tags(articles)
    pages.extend(blog.tag_pages(tags))
    _check_output_collisions(pages)

    engine = TemplateEngine(source_dir, resolver)
    engine.update_collections(articles, tags)
    for page in pages:
        try:
            rendered = engine.render_page(page)
        except TemplateSyntaxError as exc:
            raise BuildError(
                page.path,
                f"Template syntax error on line {exc.lineno}: {exc.message}",
                exc,
            ) from exc
        except UnresolvedLayout as exc:
            raise BuildError(page.path, str(exc), exc) from exc
        except Exception as exc:
            raise BuildError(page.path, _format_error_message(exc), exc) from exc
        if flags.minify_html and page.output_path.endswith((".html", ".htm")):
            rendered = minify_html(rendered)
        _write_page(output_dir, page, rendered)

    registry = create_default_registry(project_root, flags, settings.autoprefixer)
    assets = AssetPipeline(source_dir, output_dir, registry).run(processor.assets())
    return BuildResult(
        pages=pages, output_dir=output_dir, settings=settings, mode=mode, assets=assets
    )


def _check_output_collisions(pages: list[Page]) -> None:
    seen: dict[str, Page] = {}
    for page in pages:
        other = seen.get(page.output_path)
        if other is not None:
            raise BuildError(
                page.path,
                f"Output path {page.output_path} is also produced by {other.path.name}",
            )
        seen[page.output_path] = page


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message."""
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"


def _write_page(output_dir: Path, page: Page, rendered: str) -> None:
    target = output_dir / page.output_path.lstrip("/")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(rendered, encoding="utf-8")
