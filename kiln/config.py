"""Build configuration for Kiln.

This module holds the declarative configuration a site is built with, and the
machinery that produces it:

- Typed, frozen option structs for each feature (markdown, blog,
  autoprefixer, production minification) and the ordered page rules.
- ConfigBuilder: accepts one options struct per feature and freezes them into
  a Settings object.
- SettingsRegistry: the process-wide holder of Settings, written once at
  startup and read-only afterwards.
- load_config: reads ``kiln.yaml`` from the project root on top of the
  defaults.

Settings never change after they are frozen; every resolution made from them
is therefore repeatable.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Union

import yaml

from .patterns import DATE_PLACEHOLDERS, placeholders

CONFIG_FILENAME = "kiln.yaml"

# A layout name, or False when the page is written without a layout.
Layout = Union[str, bool]


class ConfigurationError(ValueError):
    """Malformed configuration, or misuse of the builder or registry."""


class BuildMode(str, Enum):
    """Development output (fast, unminified) or production output."""

    DEV = "dev"
    BUILD = "build"


class MarkdownEngine(str, Enum):
    MISTUNE = "mistune"


class JsCompressor(str, Enum):
    RJSMIN = "rjsmin"
    TERSER = "terser"


MARKDOWN_DIALECTS = ("gfm", "commonmark")
SYNTAX_HIGHLIGHTERS = ("pygments", "none")


@dataclass(frozen=True)
class MarkdownConfig:
    """How Markdown sources are turned into HTML.

    Attributes:
        engine: Markdown engine.
        input_dialect: ``GFM`` or ``commonmark`` (case-insensitive).
        syntax_highlighter: ``pygments`` or ``none``.
        highlighter_options: Options for the highlighter, e.g. ``css_class``.
    """

    engine: MarkdownEngine = MarkdownEngine.MISTUNE
    input_dialect: str = "GFM"
    syntax_highlighter: str = "pygments"
    highlighter_options: Mapping[str, str] = field(
        default_factory=lambda: {"css_class": "highlight"}
    )

    def __post_init__(self) -> None:
        if self.input_dialect.lower() not in MARKDOWN_DIALECTS:
            raise ConfigurationError(
                f"Unknown markdown input dialect: {self.input_dialect!r}"
            )
        if self.syntax_highlighter not in SYNTAX_HIGHLIGHTERS:
            raise ConfigurationError(
                f"Unknown syntax highlighter: {self.syntax_highlighter!r}"
            )
        object.__setattr__(
            self,
            "highlighter_options",
            MappingProxyType({str(k): str(v) for k, v in self.highlighter_options.items()}),
        )

    @property
    def gfm(self) -> bool:
        return self.input_dialect.lower() == "gfm"


@dataclass(frozen=True)
class BlogConfig:
    """Routing and templates of the blog extension.

    Attributes:
        source_pattern: Shape of article source paths.
        permalink_pattern: Shape of article output paths.
        layout_name: Layout for articles no page rule applies to.
        tag_link_pattern: Output path of a tag page, with a ``{tag}`` placeholder.
        tag_template_name: Source template rendered once per tag.
        new_article_template_name: Template used by ``kiln article``.
    """

    source_pattern: str = "blog/{year}-{month}-{day}-{title}.html"
    permalink_pattern: str = "blog/{year}/{month}/{day}/{title}.html"
    layout_name: str = "blog"
    tag_link_pattern: str = "tags/{tag}.html"
    tag_template_name: str = "tag"
    new_article_template_name: str = "new_article"

    def __post_init__(self) -> None:
        source_names = set(placeholders(self.source_pattern))
        missing = [n for n in (*DATE_PLACEHOLDERS, "title") if n not in source_names]
        if missing:
            raise ConfigurationError(
                f"Blog source pattern {self.source_pattern!r} lacks "
                + ", ".join(f"{{{n}}}" for n in missing)
            )
        unknown = set(placeholders(self.permalink_pattern)) - source_names
        if unknown:
            raise ConfigurationError(
                f"Blog permalink pattern {self.permalink_pattern!r} uses "
                + ", ".join(f"{{{n}}}" for n in sorted(unknown))
                + " which the source pattern does not provide"
            )
        if "tag" not in placeholders(self.tag_link_pattern):
            raise ConfigurationError(
                f"Tag link pattern {self.tag_link_pattern!r} lacks {{tag}}"
            )


@dataclass(frozen=True)
class AutoprefixerConfig:
    """Browser targets handed to autoprefixer, in browserslist syntax."""

    browsers: str = "last 2 versions"


@dataclass(frozen=True)
class PageRule:
    """Layout override for output paths matching a glob pattern.

    Attributes:
        pattern: Glob pattern over output paths.
        layout: Layout name, or False to render without a layout.
    """

    pattern: str
    layout: Layout

    def __post_init__(self) -> None:
        if not isinstance(self.pattern, str) or not self.pattern:
            raise ConfigurationError("A page rule needs a non-empty pattern")
        valid = self.layout is False or (isinstance(self.layout, str) and self.layout)
        if not valid:
            raise ConfigurationError(
                f"Page rule {self.pattern!r}: layout must be a name or false, "
                f"got {self.layout!r}"
            )

    @property
    def disabled(self) -> bool:
        return self.layout is False


@dataclass(frozen=True)
class BuildModeFlags:
    """Minification toggles; only ever active in build mode."""

    minify_css: bool = False
    minify_html: bool = False
    minify_js: bool = False
    js_compressor: JsCompressor = JsCompressor.RJSMIN

    @property
    def any_active(self) -> bool:
        return self.minify_css or self.minify_html or self.minify_js


@dataclass(frozen=True)
class Settings:
    """The frozen configuration of a site.

    Attributes:
        markdown: Markdown options, shared by every page.
        blog: Blog options, or None when the extension is not active.
        autoprefixer: Autoprefixer options, or None when not active.
        page_rules: Layout rules in declaration order.
        build_flags: Minification flags applied in build mode.
        output_dir: Build output directory, relative to the project root.
        port: Development server HTTP port.
        ws_port: Live reload websocket port (defaults to ``port + 1``).
        strict_layouts: Fail when a page's layout cannot be found.
    """

    markdown: MarkdownConfig = field(default_factory=MarkdownConfig)
    blog: BlogConfig | None = None
    autoprefixer: AutoprefixerConfig | None = None
    page_rules: tuple[PageRule, ...] = ()
    build_flags: BuildModeFlags = field(default_factory=BuildModeFlags)
    output_dir: str = "build"
    port: int = 4567
    ws_port: int | None = None
    strict_layouts: bool = False


# Scalar site options accepted by ConfigBuilder.set and kiln.yaml
SITE_OPTIONS: dict[str, type] = {
    "output_dir": str,
    "port": int,
    "ws_port": int,
    "strict_layouts": bool,
}

# Activatable extensions and the options struct each one takes
EXTENSIONS: dict[str, type] = {
    "blog": BlogConfig,
    "autoprefixer": AutoprefixerConfig,
}

DEFAULT_PAGE_RULES = (
    PageRule("/*.xml", False),
    PageRule("/*.json", False),
    PageRule("/*.txt", False),
    PageRule("/blog/*", "blog_article"),
)

DEFAULT_BUILD_FLAGS = BuildModeFlags(
    minify_css=True,
    minify_html=True,
    minify_js=True,
    js_compressor=JsCompressor.TERSER,
)


class ConfigBuilder:
    """Collects feature options and freezes them into Settings.

    Every setter returns the builder so calls can be chained. Once
    :meth:`freeze` has been called the builder refuses further changes.
    """

    def __init__(self) -> None:
        self._markdown = MarkdownConfig()
        self._extensions: dict[str, Any] = {}
        self._rules: list[PageRule] = []
        self._build_flags = BuildModeFlags()
        self._options: dict[str, Any] = {}
        self._frozen = False

    def _check_open(self) -> None:
        if self._frozen:
            raise ConfigurationError("Configuration is already frozen")

    def set_markdown(self, config: MarkdownConfig) -> ConfigBuilder:
        self._check_open()
        if not isinstance(config, MarkdownConfig):
            raise ConfigurationError("Markdown options must be a MarkdownConfig")
        self._markdown = config
        return self

    def activate(self, extension: str, options: Any = None) -> ConfigBuilder:
        """Activate an extension with its options struct.

        Args:
            extension: ``blog`` or ``autoprefixer``.
            options: Options struct; the extension's defaults when omitted.
        """
        self._check_open()
        try:
            expected = EXTENSIONS[extension]
        except KeyError:
            raise ConfigurationError(f"Unknown extension: {extension!r}") from None
        if options is None:
            options = expected()
        if not isinstance(options, expected):
            raise ConfigurationError(
                f"Extension {extension!r} takes {expected.__name__} options, "
                f"got {type(options).__name__}"
            )
        self._extensions[extension] = options
        return self

    def page(self, pattern: str, layout: Layout) -> ConfigBuilder:
        """Append a page rule. Rules are evaluated in the order added."""
        self._check_open()
        self._rules.append(PageRule(pattern, layout))
        return self

    def configure(self, mode: BuildMode | str, flags: BuildModeFlags) -> ConfigBuilder:
        """Set the flags applied when building in ``mode``.

        Only the build mode carries flags; dev output is never minified.
        """
        self._check_open()
        try:
            mode = BuildMode(mode)
        except ValueError:
            raise ConfigurationError(f"Unknown build mode: {mode!r}") from None
        if mode is not BuildMode.BUILD:
            raise ConfigurationError("Only the build mode takes minification flags")
        if not isinstance(flags, BuildModeFlags):
            raise ConfigurationError("Build flags must be a BuildModeFlags")
        self._build_flags = flags
        return self

    def set(self, key: str, value: Any) -> ConfigBuilder:
        """Set a scalar site option such as ``output_dir`` or ``port``."""
        self._check_open()
        expected = SITE_OPTIONS.get(key)
        if expected is None:
            raise ConfigurationError(f"Unknown site option: {key!r}")
        # bool is an int subclass; keep ports and flags apart
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            raise ConfigurationError(
                f"Site option {key!r} must be {expected.__name__}, got {value!r}"
            )
        self._options[key] = value
        return self

    def freeze(self) -> Settings:
        """Return the frozen Settings; the builder is unusable afterwards."""
        self._check_open()
        self._frozen = True
        return Settings(
            markdown=self._markdown,
            blog=self._extensions.get("blog"),
            autoprefixer=self._extensions.get("autoprefixer"),
            page_rules=tuple(self._rules),
            build_flags=self._build_flags,
            **self._options,
        )


class SettingsRegistry:
    """Process-wide holder of the frozen Settings.

    The registry is initialized once, before any resolution happens, and is
    read-only from then on.
    """

    def __init__(self) -> None:
        self._settings: Settings | None = None

    @property
    def initialized(self) -> bool:
        return self._settings is not None

    def initialize(self, settings: Settings) -> Settings:
        if not isinstance(settings, Settings):
            raise ConfigurationError("The registry only holds Settings")
        if self._settings is not None:
            raise ConfigurationError("Settings are already initialized")
        self._settings = settings
        return settings

    def get(self) -> Settings:
        if self._settings is None:
            raise ConfigurationError("Settings have not been initialized")
        return self._settings

    def clear(self) -> None:
        """Forget the current settings. Only meant for test isolation."""
        self._settings = None


registry = SettingsRegistry()


def default_builder() -> ConfigBuilder:
    """Return a builder preloaded with the stock site configuration."""
    builder = ConfigBuilder()
    builder.set_markdown(MarkdownConfig())
    builder.activate("autoprefixer", AutoprefixerConfig())
    builder.activate("blog", BlogConfig())
    for rule in DEFAULT_PAGE_RULES:
        builder.page(rule.pattern, rule.layout)
    builder.configure(BuildMode.BUILD, DEFAULT_BUILD_FLAGS)
    return builder


DEFAULT_SETTINGS = default_builder().freeze()


def load_config(project_root: Path) -> Settings:
    """Load the site configuration from kiln.yaml.

    Sections missing from the file keep their defaults. A missing file yields
    the default settings.

    Args:
        project_root: Root directory of the project.

    Returns:
        Frozen Settings.

    Raises:
        ConfigurationError: If the file is not valid YAML or a value is malformed.
    """
    config_path = project_root / CONFIG_FILENAME
    raw: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"{config_path}: invalid YAML: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"{config_path}: expected a mapping at the top level")
        raw = loaded
    return settings_from_mapping(raw)


def settings_from_mapping(raw: Mapping[str, Any]) -> Settings:
    """Build Settings from a parsed kiln.yaml mapping."""
    unknown = set(raw) - set(SITE_OPTIONS) - {"markdown", "autoprefixer", "blog", "pages", "build"}
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    builder = ConfigBuilder()
    builder.set_markdown(_markdown_from(_section(raw, "markdown")))

    if raw.get("autoprefixer", True) is not False:
        options = _renamed(_section(raw, "autoprefixer"), "autoprefixer", {"browsers": "browsers"})
        builder.activate("autoprefixer", AutoprefixerConfig(**options))

    if raw.get("blog", True) is not False:
        builder.activate("blog", _blog_from(_section(raw, "blog")))

    rules = raw.get("pages")
    for rule in DEFAULT_PAGE_RULES if rules is None else _rules_from(rules):
        builder.page(rule.pattern, rule.layout)

    builder.configure(BuildMode.BUILD, _build_flags_from(_section(raw, "build")))

    for key in SITE_OPTIONS:
        if raw.get(key) is not None:
            builder.set(key, raw[key])
    return builder.freeze()


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if value is None or value is True:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"'{key}' must be a mapping")
    return value


def _renamed(section: Mapping[str, Any], name: str, keys: Mapping[str, str]) -> dict[str, Any]:
    """Translate kiln.yaml keys of a section into options struct fields."""
    unknown = set(section) - set(keys)
    if unknown:
        raise ConfigurationError(f"Unknown '{name}' keys: {', '.join(sorted(unknown))}")
    options = {}
    for yaml_key, field_name in keys.items():
        if yaml_key in section:
            value = section[yaml_key]
            if not isinstance(value, str):
                raise ConfigurationError(f"'{name}.{yaml_key}' must be a string")
            options[field_name] = value
    return options


def _markdown_from(section: Mapping[str, Any]) -> MarkdownConfig:
    options = _renamed(
        {k: v for k, v in section.items() if k != "syntax_highlighter_opts"},
        "markdown",
        {"engine": "engine", "input": "input_dialect", "syntax_highlighter": "syntax_highlighter"},
    )
    if "engine" in options:
        try:
            options["engine"] = MarkdownEngine(options["engine"])
        except ValueError:
            raise ConfigurationError(f"Unknown markdown engine: {options['engine']!r}") from None
    if "syntax_highlighter_opts" in section:
        opts = section["syntax_highlighter_opts"] or {}
        if not isinstance(opts, Mapping):
            raise ConfigurationError("'markdown.syntax_highlighter_opts' must be a mapping")
        options["highlighter_options"] = opts
    return MarkdownConfig(**options)


def _blog_from(section: Mapping[str, Any]) -> BlogConfig:
    return BlogConfig(
        **_renamed(
            section,
            "blog",
            {
                "sources": "source_pattern",
                "permalink": "permalink_pattern",
                "layout": "layout_name",
                "taglink": "tag_link_pattern",
                "tag_template": "tag_template_name",
                "new_article_template": "new_article_template_name",
            },
        )
    )


def _rules_from(entries: Any) -> list[PageRule]:
    if not isinstance(entries, list):
        raise ConfigurationError("'pages' must be a list of rules")
    rules = []
    for position, entry in enumerate(entries):
        if not isinstance(entry, Mapping) or "pattern" not in entry or "layout" not in entry:
            raise ConfigurationError(
                f"'pages[{position}]' must be a mapping with 'pattern' and 'layout'"
            )
        rules.append(PageRule(entry["pattern"], entry["layout"]))
    return rules


def _build_flags_from(section: Mapping[str, Any]) -> BuildModeFlags:
    flags = {f.name: getattr(DEFAULT_BUILD_FLAGS, f.name) for f in fields(BuildModeFlags)}
    unknown = set(section) - {"minify_css", "minify_html", "minify_javascript"}
    if unknown:
        raise ConfigurationError(f"Unknown 'build' keys: {', '.join(sorted(unknown))}")
    for key in ("minify_css", "minify_html"):
        if key in section:
            if not isinstance(section[key], bool):
                raise ConfigurationError(f"'build.{key}' must be true or false")
            flags[key] = section[key]
    if "minify_javascript" in section:
        js = section["minify_javascript"]
        if isinstance(js, bool):
            flags["minify_js"] = js
        elif isinstance(js, Mapping):
            flags["minify_js"] = True
            compressor = js.get("compressor", flags["js_compressor"])
            try:
                flags["js_compressor"] = JsCompressor(compressor)
            except ValueError:
                raise ConfigurationError(f"Unknown JavaScript compressor: {compressor!r}") from None
        else:
            raise ConfigurationError("'build.minify_javascript' must be a boolean or a mapping")
    return BuildModeFlags(**flags)
