import dataclasses

import pytest

from kiln.config import (
    DEFAULT_BUILD_FLAGS,
    DEFAULT_SETTINGS,
    AutoprefixerConfig,
    BlogConfig,
    BuildMode,
    BuildModeFlags,
    ConfigBuilder,
    ConfigurationError,
    JsCompressor,
    MarkdownConfig,
    MarkdownEngine,
    PageRule,
    Settings,
    SettingsRegistry,
    load_config,
    registry,
)


def test_default_settings():
    settings = DEFAULT_SETTINGS
    assert settings.markdown.engine is MarkdownEngine.MISTUNE
    assert settings.markdown.input_dialect == "GFM"
    assert settings.markdown.syntax_highlighter == "pygments"
    assert dict(settings.markdown.highlighter_options) == {"css_class": "highlight"}
    assert settings.blog == BlogConfig()
    assert settings.blog.source_pattern == "blog/{year}-{month}-{day}-{title}.html"
    assert settings.blog.permalink_pattern == "blog/{year}/{month}/{day}/{title}.html"
    assert settings.autoprefixer == AutoprefixerConfig()
    assert [(r.pattern, r.layout) for r in settings.page_rules] == [
        ("/*.xml", False),
        ("/*.json", False),
        ("/*.txt", False),
        ("/blog/*", "blog_article"),
    ]
    assert settings.build_flags == DEFAULT_BUILD_FLAGS
    assert settings.build_flags.js_compressor is JsCompressor.TERSER
    assert settings.output_dir == "build"
    assert settings.port == 4567


def test_settings_are_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_SETTINGS.output_dir = "public"
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_SETTINGS.markdown.input_dialect = "commonmark"
    with pytest.raises(TypeError):
        DEFAULT_SETTINGS.markdown.highlighter_options["css_class"] = "code"
    assert isinstance(DEFAULT_SETTINGS.page_rules, tuple)


def test_markdown_config_validation():
    assert MarkdownConfig(input_dialect="commonmark").gfm is False
    assert MarkdownConfig(input_dialect="gfm").gfm is True
    with pytest.raises(ConfigurationError, match="dialect"):
        MarkdownConfig(input_dialect="textile")
    with pytest.raises(ConfigurationError, match="highlighter"):
        MarkdownConfig(syntax_highlighter="rouge")


def test_blog_config_validation():
    with pytest.raises(ConfigurationError, match="lacks"):
        BlogConfig(source_pattern="blog/{title}.html")
    with pytest.raises(ConfigurationError, match="slug"):
        BlogConfig(permalink_pattern="blog/{year}/{slug}.html")
    with pytest.raises(ConfigurationError, match="tag"):
        BlogConfig(tag_link_pattern="tags/index.html")
    # The permalink may use fewer placeholders than the source
    assert BlogConfig(permalink_pattern="blog/{title}.html").permalink_pattern == "blog/{title}.html"


def test_page_rule_validation():
    assert PageRule("/*.xml", False).disabled
    assert not PageRule("/blog/*", "post").disabled
    with pytest.raises(ConfigurationError):
        PageRule("", "post")
    with pytest.raises(ConfigurationError):
        PageRule("/x", True)
    with pytest.raises(ConfigurationError):
        PageRule("/x", "")


def test_build_mode_flags():
    assert not BuildModeFlags().any_active
    assert BuildModeFlags(minify_js=True).any_active


def test_builder_collects_options_in_order():
    settings = (
        ConfigBuilder()
        .set_markdown(MarkdownConfig(input_dialect="commonmark"))
        .activate("blog", BlogConfig(layout_name="post"))
        .page("/special/*.html", "special")
        .page("/*.html", "plain")
        .configure(BuildMode.BUILD, BuildModeFlags(minify_css=True))
        .set("port", 8000)
        .set("strict_layouts", True)
        .freeze()
    )
    assert isinstance(settings, Settings)
    assert settings.markdown.gfm is False
    assert settings.blog.layout_name == "post"
    assert settings.autoprefixer is None
    assert [r.layout for r in settings.page_rules] == ["special", "plain"]
    assert settings.build_flags == BuildModeFlags(minify_css=True)
    assert settings.port == 8000
    assert settings.strict_layouts is True


def test_builder_activate_defaults_and_errors():
    builder = ConfigBuilder().activate("autoprefixer")
    assert builder.freeze().autoprefixer == AutoprefixerConfig()

    builder = ConfigBuilder()
    with pytest.raises(ConfigurationError, match="Unknown extension"):
        builder.activate("sitemap")
    with pytest.raises(ConfigurationError, match="BlogConfig"):
        builder.activate("blog", AutoprefixerConfig())
    with pytest.raises(ConfigurationError):
        builder.set_markdown({"input": "GFM"})


def test_builder_configure_only_build_mode():
    builder = ConfigBuilder()
    with pytest.raises(ConfigurationError, match="Only the build mode"):
        builder.configure(BuildMode.DEV, BuildModeFlags(minify_css=True))
    with pytest.raises(ConfigurationError, match="Unknown build mode"):
        builder.configure("production", BuildModeFlags())
    builder.configure("build", BuildModeFlags(minify_html=True))
    assert builder.freeze().build_flags.minify_html


def test_builder_set_checks_types():
    builder = ConfigBuilder()
    with pytest.raises(ConfigurationError, match="Unknown site option"):
        builder.set("title", "My site")
    with pytest.raises(ConfigurationError):
        builder.set("port", "8000")
    with pytest.raises(ConfigurationError):
        builder.set("port", True)
    with pytest.raises(ConfigurationError):
        builder.set("strict_layouts", 1)


def test_builder_is_unusable_after_freeze():
    builder = ConfigBuilder()
    builder.freeze()
    with pytest.raises(ConfigurationError, match="frozen"):
        builder.page("/*.xml", False)
    with pytest.raises(ConfigurationError, match="frozen"):
        builder.freeze()


def test_registry_initializes_once():
    local = SettingsRegistry()
    assert not local.initialized
    with pytest.raises(ConfigurationError, match="not been initialized"):
        local.get()
    assert local.initialize(DEFAULT_SETTINGS) is DEFAULT_SETTINGS
    assert local.get() is DEFAULT_SETTINGS
    with pytest.raises(ConfigurationError, match="already initialized"):
        local.initialize(DEFAULT_SETTINGS)
    with pytest.raises(ConfigurationError):
        SettingsRegistry().initialize({"port": 1})


def test_shared_registry_starts_empty():
    assert not registry.initialized


def test_load_config_without_file(tmp_path):
    settings = load_config(tmp_path)
    assert settings.blog == DEFAULT_SETTINGS.blog
    assert settings.page_rules == DEFAULT_SETTINGS.page_rules
    assert settings.build_flags == DEFAULT_SETTINGS.build_flags


def test_load_config_reads_yaml(tmp_path):
    (tmp_path / "kiln.yaml").write_text(
        """
output_dir: public
port: 8000
ws_port: 8100
strict_layouts: true
markdown:
  input: commonmark
  syntax_highlighter_opts:
    css_class: code
autoprefixer:
  browsers: "> 1%"
blog:
  sources: "articles/{year}/{month}-{day}-{title}.html"
  permalink: "{year}/{title}.html"
  layout: post
pages:
  - pattern: "/*.xml"
    layout: false
  - pattern: "/articles/*"
    layout: article
build:
  minify_css: false
  minify_javascript:
    compressor: rjsmin
""",
        encoding="utf-8",
    )
    settings = load_config(tmp_path)
    assert settings.output_dir == "public"
    assert settings.port == 8000
    assert settings.ws_port == 8100
    assert settings.strict_layouts is True
    assert settings.markdown.gfm is False
    assert dict(settings.markdown.highlighter_options) == {"css_class": "code"}
    assert settings.autoprefixer.browsers == "> 1%"
    assert settings.blog.source_pattern == "articles/{year}/{month}-{day}-{title}.html"
    assert settings.blog.permalink_pattern == "{year}/{title}.html"
    assert settings.blog.layout_name == "post"
    assert settings.blog.tag_link_pattern == "tags/{tag}.html"
    assert [(r.pattern, r.layout) for r in settings.page_rules] == [
        ("/*.xml", False),
        ("/articles/*", "article"),
    ]
    assert settings.build_flags == BuildModeFlags(
        minify_css=False,
        minify_html=True,
        minify_js=True,
        js_compressor=JsCompressor.RJSMIN,
    )


def test_load_config_deactivates_extensions(tmp_path):
    (tmp_path / "kiln.yaml").write_text(
        "blog: false\nautoprefixer: false\nbuild:\n  minify_javascript: false\n",
        encoding="utf-8",
    )
    settings = load_config(tmp_path)
    assert settings.blog is None
    assert settings.autoprefixer is None
    assert settings.build_flags.minify_js is False
    assert settings.build_flags.minify_css is True


def test_load_config_empty_file(tmp_path):
    (tmp_path / "kiln.yaml").write_text("", encoding="utf-8")
    assert load_config(tmp_path).page_rules == DEFAULT_SETTINGS.page_rules


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("pages: [\n", "invalid YAML"),
        ("- just\n- a list\n", "mapping at the top level"),
        ("title: My site\n", "Unknown configuration keys"),
        ("markdown: GFM\n", "'markdown' must be a mapping"),
        ("markdown:\n  engine: kramdown\n", "Unknown markdown engine"),
        ("blog:\n  permalinks: x\n", "Unknown 'blog' keys"),
        ("pages:\n  - pattern: /x\n", "pages\\[0\\]"),
        ("pages: /x\n", "list of rules"),
        ("pages:\n  - {pattern: /x, layout: true}\n", "layout must be a name or false"),
        ("build:\n  minify_javascript:\n    compressor: uglify\n", "Unknown JavaScript compressor"),
        ("build:\n  minify_css: yes please\n", "build.minify_css"),
        ("build:\n  minify_images: true\n", "Unknown 'build' keys"),
        ("port: eighty\n", "port"),
    ],
)
def test_load_config_rejects_malformed_values(tmp_path, text, message):
    (tmp_path / "kiln.yaml").write_text(text, encoding="utf-8")
    with pytest.raises(ConfigurationError, match=message):
        load_config(tmp_path)
