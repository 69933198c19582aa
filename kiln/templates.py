"""Template rendering engine for Kiln.

Pages are rendered with Jinja2 in two steps: Jinja bodies are rendered with
the page context, then the result is wrapped in the page's layout. Layouts
live in ``source/layouts``; partials anywhere under ``source/`` whose path
starts with an underscore.

Layout lookup:
- a layout of False writes the body alone;
- a layout of None uses the default layout, ``layout``;
- a named layout that cannot be found falls back to the default layout.
When even the default layout is missing the body is written alone, unless
``strict_layouts`` is set, in which case UnresolvedLayout is raised.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, Template, TemplateNotFound, select_autoescape
from markupsafe import Markup
from pygments.formatters import HtmlFormatter

from .collections import ArticleCollection, TagCollection
from .config import Settings
from .content import LAYOUTS_DIR, Page
from .renderers import formatter_options
from .resolver import ConfigurationResolver, UnresolvedLayout

DEFAULT_LAYOUT = "layout"


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        source_dir: Directory containing the site sources.
        resolver: Resolver for the site's settings.
        env: Jinja2 environment.
        articles: Blog articles, newest first.
        tags: Tag index of the articles.
    """

    def __init__(self, source_dir: Path, resolver: ConfigurationResolver):
        self.source_dir = source_dir
        self.resolver = resolver
        self.env = Environment(
            loader=FileSystemLoader(str(source_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )
        self.articles = ArticleCollection([])
        self.tags = TagCollection([])
        self._install_globals()

    @property
    def settings(self) -> Settings:
        return self.resolver.settings

    def _install_globals(self) -> None:
        self.env.globals["site"] = self.settings
        self.env.globals["articles"] = self.articles
        self.env.globals["tags"] = self.tags
        self.env.globals["url_for"] = self._url_for
        self.env.globals["tag_path"] = self._tag_path
        self.env.globals["pygments_css"] = self._pygments_css

    def update_collections(self, articles: Iterable[Page], tags: TagCollection) -> None:
        self.articles = ArticleCollection(articles)
        self.tags = tags
        self.env.globals["articles"] = self.articles
        self.env.globals["tags"] = self.tags

    @staticmethod
    def _url_for(path: str) -> str:
        if path.startswith(("http://", "https://", "//")):
            return path
        return "/" + path.lstrip("/")

    def _tag_path(self, tag: str) -> str:
        return "/" + self.resolver.tag_link(tag)

    def _pygments_css(self) -> str:
        """Return Pygments CSS for the configured highlight class."""
        options = formatter_options(self.settings.markdown.highlighter_options)
        css_class = options.get("cssclass", "highlight")
        return HtmlFormatter(**options).get_style_defs(f".{css_class}")

    def render_page(self, page: Page) -> str:
        """Render a page with its layout.

        Raises:
            UnresolvedLayout: If layouts are strict and none can be found.
        """
        context: dict[str, Any] = {
            "current_page": page,
            "frontmatter": page.frontmatter,
            "articles": self.articles,
            "tags": self.tags,
        }
        context.update(page.locals)
        body_html = self._render_body(page, context)
        if page.layout is False:
            return body_html
        template = self._resolve_layout_template(page)
        if template is None:
            return body_html
        return template.render(page_content=Markup(body_html), **context)

    def _render_body(self, page: Page, context: dict[str, Any]) -> str:
        if page.source_type == "jinja":
            return self.env.from_string(page.content).render(**context)
        return page.content

    def _find_layout(self, name: str) -> Template | None:
        for suffix in (".html.jinja", ".jinja", ".html", ""):
            try:
                return self.env.get_template(f"{LAYOUTS_DIR}/{name}{suffix}")
            except TemplateNotFound:
                continue
        return None

    def _resolve_layout_template(self, page: Page) -> Template | None:
        layout = page.layout
        if isinstance(layout, str):
            template = self._find_layout(layout)
            if template is not None:
                return template
            if self.settings.strict_layouts:
                raise UnresolvedLayout(page.output_path, layout)
        template = self._find_layout(DEFAULT_LAYOUT)
        if template is None and self.settings.strict_layouts:
            raise UnresolvedLayout(page.output_path, None)
        return template

    def render_string(self, template: str, context: dict[str, Any]) -> str:
        return self.env.from_string(template).render(**context)
