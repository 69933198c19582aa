"""Content renderers for Kiln.

Each renderer handles one kind of source file:

- MarkdownRenderer: Renders Markdown to HTML as the MarkdownConfig describes.
- JinjaContentRenderer: Marks Jinja templates; the TemplateEngine renders them.
- PassthroughRenderer: Plain HTML, XML, JSON and text pages.
- RendererRegistry: Picks the first renderer that accepts a file.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .config import MarkdownConfig
from .protocols import ContentRenderer

GFM_PLUGINS = ["strikethrough", "table", "url", "task_lists", "footnotes"]

# Highlighter option names as written in kiln.yaml, mapped to Pygments' own
HIGHLIGHTER_OPTION_ALIASES = {"css_class": "cssclass"}

PASSTHROUGH_SUFFIXES = {".html", ".htm", ".xml", ".json", ".txt"}


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly anchor ID from heading text."""
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


def formatter_options(options: Mapping[str, str]) -> dict[str, str]:
    """Translate highlighter options into Pygments HtmlFormatter keywords."""
    return {HIGHLIGHTER_OPTION_ALIASES.get(k, k): v for k, v in options.items()}


class _HighlightRenderer(mistune.HTMLRenderer):
    """Mistune renderer adding heading anchors and Pygments code blocks."""

    def __init__(self, config: MarkdownConfig):
        super().__init__(escape=False)
        self.config = config
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        base_id = _generate_heading_id(text)
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a fenced code block, highlighted when the language is known."""
        language = info.split()[0] if info else None
        if language and self.config.syntax_highlighter == "pygments":
            try:
                lexer = get_lexer_by_name(language, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                options = formatter_options(self.config.highlighter_options)
                return highlight(code, lexer, HtmlFormatter(**options))
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{language}"' if language else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown content to HTML.

    Attributes:
        config: Markdown options shared by every page.
    """

    def __init__(self, config: MarkdownConfig | None = None):
        self.config = config or MarkdownConfig()

    @property
    def source_type(self) -> str:
        return "markdown"

    def can_render(self, path: Path) -> bool:
        return path.suffix.lower() == ".md"

    def render(self, content: str) -> str:
        plugins = GFM_PLUGINS if self.config.gfm else []
        markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(self.config), plugins=plugins
        )
        return markdown(content)


class JinjaContentRenderer:
    """Identifies Jinja templates; rendering is deferred to the TemplateEngine."""

    @property
    def source_type(self) -> str:
        return "jinja"

    def can_render(self, path: Path) -> bool:
        return path.suffix == ".jinja"

    def render(self, content: str) -> str:
        return content


class PassthroughRenderer:
    """Leaves plain pages unchanged."""

    @property
    def source_type(self) -> str:
        return "static"

    def can_render(self, path: Path) -> bool:
        return path.suffix.lower() in PASSTHROUGH_SUFFIXES

    def render(self, content: str) -> str:
        return content


class RendererRegistry:
    """Ordered list of content renderers; the first that accepts a file wins."""

    def __init__(self, markdown: MarkdownConfig | None = None):
        self._renderers: list[ContentRenderer] = []
        self.register(MarkdownRenderer(markdown))
        self.register(JinjaContentRenderer())
        self.register(PassthroughRenderer())

    def register(self, renderer: ContentRenderer) -> None:
        self._renderers.append(renderer)

    def get_renderer(self, path: Path) -> ContentRenderer | None:
        for renderer in self._renderers:
            if renderer.can_render(path):
                return renderer
        return None
