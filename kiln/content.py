"""Content processing for Kiln.

This module discovers the pages of a source tree and turns each into a Page:
its frontmatter is parsed, its body rendered, and the build configuration is
resolved for it (blog route, output path, layout).

Key classes:
- Page: Dataclass representing one output page.
- SourceLoader: Discovers page and asset files under ``source/``.
- PageBuilder: Builds a Page from a source file using the resolver.
- ContentProcessor: Facade loading every page of a site.
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import Layout, Settings
from .patterns import BlogRoute, RouteMismatch
from .renderers import RendererRegistry
from .resolver import ConfigurationResolver
from .utils import is_internal_path, is_template, source_path_for, titleize

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)

SOURCE_DIR = "source"
LAYOUTS_DIR = "layouts"
HTML_SUFFIXES = (".html", ".htm")


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML frontmatter from content.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (frontmatter dict, remaining content).
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError:
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end() :]


def _heading_title(body: str) -> str | None:
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith("# "):
            return stripped[2:].strip()
    return None


def _frontmatter_tags(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    tags: list[str] = []
    for item in items:
        tag = str(item).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


@dataclass
class Page:
    """Represents one output page with its resolved configuration.

    Attributes:
        title: Human-readable title.
        body: Source body with frontmatter removed.
        content: Rendered body (Jinja bodies are rendered later, with context).
        source_path: Path relative to ``source/`` without template extensions.
        output_path: Path of the written file, with a leading slash.
        layout: Layout name, False for no layout, None for the default layout.
        date: Publication date, if known.
        tags: Tags from frontmatter.
        published: False for drafts.
        path: Path to the source file.
        source_type: "markdown", "jinja" or "static".
        frontmatter: Parsed frontmatter.
        route: Blog route for articles, None for other pages.
        locals: Extra template variables, e.g. the tag of a tag page.
    """

    title: str
    body: str
    content: str
    source_path: str
    output_path: str
    layout: Layout | None
    date: dt.date | None
    tags: list[str]
    published: bool
    path: Path
    source_type: str
    frontmatter: dict[str, Any] = field(default_factory=dict)
    route: BlogRoute | None = None
    locals: dict[str, Any] = field(default_factory=dict)

    @property
    def url(self) -> str:
        """Public URL of the page; ``index.html`` collapses to its directory."""
        if self.output_path.endswith("/index.html"):
            return self.output_path[: -len("index.html")]
        return self.output_path

    @property
    def is_article(self) -> bool:
        return self.route is not None


class SourceLoader:
    """Discovers files in the source directory.

    Files with a path component starting with ``_`` and everything under
    ``layouts/`` are internal and never loaded. The blog tag template is
    rendered once per tag by the blog extension rather than on its own.

    Attributes:
        source_dir: Directory containing the site sources.
        settings: Site settings.
    """

    def __init__(self, source_dir: Path, settings: Settings):
        self.source_dir = source_dir
        self.settings = settings

    def _is_internal(self, path: Path) -> bool:
        rel = path.relative_to(self.source_dir)
        return is_internal_path(rel) or rel.parts[0] == LAYOUTS_DIR

    def is_tag_template(self, path: Path) -> bool:
        blog = self.settings.blog
        if blog is None:
            return False
        source_path = source_path_for(path.relative_to(self.source_dir))
        name = blog.tag_template_name
        return source_path == name or source_path.split(".", 1)[0] == name

    def _iter_files(self) -> list[Path]:
        if not self.source_dir.exists():
            return []
        return sorted(
            p for p in self.source_dir.rglob("*") if p.is_file() and not self._is_internal(p)
        )

    def iter_pages(self, renderers: RendererRegistry) -> list[Path]:
        """Return every page source, excluding the tag template."""
        return [
            p
            for p in self._iter_files()
            if renderers.get_renderer(p) is not None and not self.is_tag_template(p)
        ]

    def iter_assets(self, renderers: RendererRegistry) -> list[Path]:
        """Return every file that is copied rather than rendered."""
        return [p for p in self._iter_files() if renderers.get_renderer(p) is None]


class PageBuilder:
    """Builds Page objects from source files.

    Layouts are chosen in this order: the frontmatter ``layout``, the first
    matching page rule, the blog layout for articles, and finally the
    default layout (None).

    Attributes:
        source_dir: Directory containing the site sources.
        resolver: Resolver for the site's settings.
        renderers: Registry of content renderers.
    """

    def __init__(
        self,
        source_dir: Path,
        resolver: ConfigurationResolver,
        renderers: RendererRegistry | None = None,
    ):
        self.source_dir = source_dir
        self.resolver = resolver
        self.renderers = renderers or RendererRegistry(resolver.resolve_markdown_options())

    def build(self, path: Path) -> Page:
        """Build a Page object from a source file."""
        rel = path.relative_to(self.source_dir)
        source_path = source_path_for(rel)
        raw = path.read_text(encoding="utf-8")
        if is_template(path):
            frontmatter, body = extract_frontmatter(raw)
        else:
            frontmatter, body = {}, raw

        try:
            route = self.resolver.resolve_blog_route(source_path)
        except RouteMismatch:
            route = None
        if route is not None:
            output_path = "/" + self.resolver.permalink_for(source_path)
        else:
            output_path = "/" + source_path

        renderer = self.renderers.get_renderer(path)
        if renderer is None:
            source_type, content = "static", body
        else:
            source_type, content = renderer.source_type, renderer.render(body)

        return Page(
            title=self._title(frontmatter, body, source_type, route, source_path),
            body=body,
            content=content,
            source_path=source_path,
            output_path=output_path,
            layout=self.layout_for(output_path, frontmatter, route, source_type),
            date=self._date(frontmatter, route),
            tags=_frontmatter_tags(frontmatter.get("tags")),
            published=frontmatter.get("published", True) is not False,
            path=path,
            source_type=source_type,
            frontmatter=frontmatter,
            route=route,
        )

    def layout_for(
        self,
        output_path: str,
        frontmatter: dict[str, Any],
        route: BlogRoute | None = None,
        source_type: str = "jinja",
    ) -> Layout | None:
        """Resolve the layout of a page.

        Plain files that are not HTML (``data.json``, ``robots.txt``) are
        written as they are and never get a layout.
        """
        if source_type == "static" and not output_path.lower().endswith(HTML_SUFFIXES):
            return False
        declared = frontmatter.get("layout")
        if declared is not None:
            if declared is False or (isinstance(declared, str) and declared):
                return declared
            raise ValueError(f"{output_path}: frontmatter layout must be a name or false")
        layout = self.resolver.resolve_layout(output_path)
        if layout is not None:
            return layout
        blog = self.resolver.settings.blog
        if route is not None and blog is not None:
            return blog.layout_name
        return None

    @staticmethod
    def _title(
        frontmatter: dict[str, Any],
        body: str,
        source_type: str,
        route: BlogRoute | None,
        source_path: str,
    ) -> str:
        if frontmatter.get("title"):
            return str(frontmatter["title"])
        if source_type == "markdown":
            heading = _heading_title(body)
            if heading:
                return heading
        if route is not None:
            return titleize(route.title)
        return titleize(Path(source_path).name)

    @staticmethod
    def _date(frontmatter: dict[str, Any], route: BlogRoute | None) -> dt.date | None:
        if route is not None:
            return route.date
        value = frontmatter.get("date")
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, dt.date):
            return value
        return None


class ContentProcessor:
    """Facade loading every page of a site.

    Attributes:
        source_dir: Directory containing the site sources.
        resolver: Resolver for the site's settings.
    """

    def __init__(self, source_dir: Path, resolver: ConfigurationResolver):
        self.source_dir = source_dir
        self.resolver = resolver
        self.renderers = RendererRegistry(resolver.resolve_markdown_options())
        self.loader = SourceLoader(source_dir, resolver.settings)
        self.builder = PageBuilder(source_dir, resolver, self.renderers)

    def page_files(self) -> list[Path]:
        return self.loader.iter_pages(self.renderers)

    def load(self, include_drafts: bool = False) -> list[Page]:
        """Load all pages.

        Args:
            include_drafts: Whether to include pages with ``published: false``.
        """
        pages = [self.builder.build(path) for path in self.page_files()]
        return [p for p in pages if p.published or include_drafts]

    def assets(self) -> list[Path]:
        return self.loader.iter_assets(self.renderers)
