"""Blog extension for Kiln.

Articles are the pages whose source path matches the blog source pattern.
The extension groups them, renders one page per tag from the tag template,
and scaffolds new articles from the new-article template.

Key pieces:
- BlogExtension: Articles, tag index and tag pages for one build.
- new_article: Create the source file of a new article.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable
from pathlib import Path

from jinja2 import Environment

from .collections import ArticleCollection, TagCollection
from .config import ConfigurationError
from .content import SOURCE_DIR, Page, PageBuilder, extract_frontmatter
from .patterns import BlogRoute, render_route
from .resolver import ConfigurationResolver
from .utils import slugify

DEFAULT_NEW_ARTICLE_TEMPLATE = """---
title: {{ title | tojson }}
date: {{ date }}
tags: {{ tags | tojson }}
---

# {{ title }}
"""


def _template_candidates(directory: Path, name: str) -> list[Path]:
    return [
        directory / f"{name}.jinja",
        directory / f"{name}.html.jinja",
        directory / f"{name}.md.jinja",
        directory / f"{name}.html",
        directory / name,
    ]


class BlogExtension:
    """Blog articles, tags and tag pages of one build.

    Attributes:
        source_dir: Directory containing the site sources.
        resolver: Resolver for the site's settings.
        builder: Page builder, used to resolve layouts of tag pages.
    """

    def __init__(self, source_dir: Path, resolver: ConfigurationResolver, builder: PageBuilder):
        self.source_dir = source_dir
        self.resolver = resolver
        self.builder = builder

    @property
    def active(self) -> bool:
        return self.resolver.settings.blog is not None

    def articles(self, pages: Iterable[Page]) -> ArticleCollection:
        return ArticleCollection(p for p in pages if p.is_article)

    def tags(self, articles: Iterable[Page]) -> TagCollection:
        return TagCollection(articles)

    def find_tag_template(self) -> Path | None:
        blog = self.resolver.settings.blog
        if blog is None:
            return None
        for candidate in _template_candidates(self.source_dir, blog.tag_template_name):
            if candidate.is_file():
                return candidate
        return None

    def tag_pages(self, tags: TagCollection) -> list[Page]:
        """Build one page per tag from the tag template.

        Page rules apply to the tag link path like to any other output path.
        Nothing is built when the site has no tag template.
        """
        template = self.find_tag_template()
        if template is None or not tags:
            return []
        frontmatter, body = extract_frontmatter(template.read_text(encoding="utf-8"))
        source_type = "jinja" if template.suffix == ".jinja" else "static"
        pages = []
        for tag, articles in tags.items():
            link = self.resolver.tag_link(tag)
            output_path = "/" + link
            pages.append(
                Page(
                    title=str(frontmatter.get("title") or tag),
                    body=body,
                    content=body,
                    source_path=link,
                    output_path=output_path,
                    layout=self.builder.layout_for(output_path, frontmatter),
                    date=None,
                    tags=[],
                    published=True,
                    path=template,
                    source_type=source_type,
                    frontmatter=frontmatter,
                    locals={"tagname": tag, "articles": articles},
                )
            )
        return pages


def new_article(
    project_root: Path,
    resolver: ConfigurationResolver,
    title: str,
    date: dt.date | None = None,
    tags: Iterable[str] = (),
) -> Path:
    """Create the Markdown source of a new article.

    The file is placed where the blog source pattern expects it and filled
    from the new-article template (looked up in the project root), or from a
    minimal frontmatter skeleton when the project has none.

    Args:
        project_root: Root directory of the project.
        resolver: Resolver for the site's settings.
        title: Article title; its slug becomes the ``{title}`` placeholder.
        date: Publication date, today by default.
        tags: Tags written to the frontmatter.

    Returns:
        Path of the created file.

    Raises:
        ConfigurationError: If the blog extension is not active.
        ValueError: If the title has no letters or digits.
        FileExistsError: If the article already exists.
    """
    blog = resolver.settings.blog
    if blog is None:
        raise ConfigurationError("The blog extension is not active")
    slug = slugify(title)
    if not slug:
        raise ValueError(f"Cannot derive a slug from title {title!r}")
    published = date or dt.date.today()
    route = BlogRoute(date=published, title=slug)
    source_path = render_route(blog.source_pattern, route.values())
    target = project_root / SOURCE_DIR / f"{source_path}.md"
    if target.exists():
        raise FileExistsError(f"Article already exists: {target}")

    template = DEFAULT_NEW_ARTICLE_TEMPLATE
    for candidate in _template_candidates(project_root, blog.new_article_template_name):
        if candidate.is_file():
            template = candidate.read_text(encoding="utf-8")
            break
    env = Environment(autoescape=False, keep_trailing_newline=True)
    text = env.from_string(template).render(
        title=title, slug=slug, date=published.isoformat(), tags=list(tags)
    )
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    return target
