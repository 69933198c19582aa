"""Per-page resolution of the build configuration.

The ConfigurationResolver answers every question the rendering pipeline asks
about a page: which layout wraps it, how its Markdown is rendered, whether it
is a blog article and where that article is published, and which
minification steps apply in the current build mode.

All resolution is pure: the resolver reads frozen Settings and keeps no state
of its own, so the same question always gets the same answer.
"""

from __future__ import annotations

import datetime as dt

from .config import (
    BuildMode,
    BuildModeFlags,
    Layout,
    MarkdownConfig,
    Settings,
)
from .patterns import (
    BlogRoute,
    RouteMismatch,
    glob_match,
    normalize_path,
    parse_blog_route,
    render_route,
)
from .utils import slugify

INACTIVE_FLAGS = BuildModeFlags()


class UnresolvedLayout(LookupError):
    """No layout could be found for a page that requires one.

    Attributes:
        output_path: Output path of the page.
        layout: The layout that was looked up, or None for the default.
    """

    def __init__(self, output_path: str, layout: str | None):
        self.output_path = output_path
        self.layout = layout
        wanted = f"layout {layout!r}" if layout else "a default layout"
        super().__init__(f"{output_path}: no template found for {wanted}")


class ConfigurationResolver:
    """Resolves layouts, routes and build flags from frozen Settings.

    Attributes:
        settings: The settings resolution is based on.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def resolve_layout(self, output_path: str) -> Layout | None:
        """Return the layout override of the first page rule matching a path.

        Rules are evaluated strictly in declaration order; the first match
        wins even when a later rule is more specific.

        Args:
            output_path: Output path of the page, e.g. ``/blog/2024/01/15/a.html``.

        Returns:
            A layout name, False when the layout is disabled, or None when no
            rule matches and the default layout applies.
        """
        path = normalize_path(output_path)
        for rule in self.settings.page_rules:
            if glob_match(rule.pattern, path):
                return rule.layout
        return None

    def resolve_markdown_options(self) -> MarkdownConfig:
        return self.settings.markdown

    def resolve_blog_route(self, source_path: str) -> BlogRoute:
        """Parse a source path against the blog source pattern.

        Args:
            source_path: Source path without template extensions, e.g.
                ``blog/2024-01-15-hello-world.html``.

        Raises:
            RouteMismatch: If the blog is not active or the path does not fit
                the source pattern. Such pages are plain static pages.
        """
        blog = self.settings.blog
        if blog is None:
            raise RouteMismatch(source_path, "", "blog extension is not active")
        return parse_blog_route(blog.source_pattern, source_path)

    def render_permalink(self, date: dt.date, title: str, **params: str) -> str:
        """Render the permalink of an article.

        Args:
            date: Publication date.
            title: Title slug.
            **params: Values for any extra placeholders of the pattern.
        """
        blog = self.settings.blog
        if blog is None:
            raise RouteMismatch(title, "", "blog extension is not active")
        route = BlogRoute(date=date, title=title, params=params)
        return render_route(blog.permalink_pattern, route.values())

    def permalink_for(self, source_path: str) -> str:
        """Resolve a source path straight to its permalink."""
        route = self.resolve_blog_route(source_path)
        return self.render_permalink(route.date, route.title, **dict(route.params))

    def tag_link(self, tag: str) -> str:
        """Render the output path of a tag page.

        Raises:
            RouteMismatch: If the blog is not active or the tag has no
                letters or digits to build a slug from.
        """
        blog = self.settings.blog
        if blog is None:
            raise RouteMismatch(tag, "", "blog extension is not active")
        slug = slugify(tag)
        if not slug:
            raise RouteMismatch(tag, blog.tag_link_pattern, "tag has no letters or digits")
        return render_route(blog.tag_link_pattern, {"tag": slug})

    def is_minification_active(self, mode: BuildMode | str) -> bool:
        return BuildMode(mode) is BuildMode.BUILD

    def build_flags(self, mode: BuildMode | str) -> BuildModeFlags:
        """Return the minification flags in effect for a build mode."""
        if self.is_minification_active(mode):
            return self.settings.build_flags
        return INACTIVE_FLAGS
