import datetime as dt
from pathlib import Path

from click.testing import CliRunner

from kiln import __version__
from kiln.build import BuildError, BuildResult
from kiln.cli import cli
from kiln.config import BuildMode, registry


def _project(root: Path) -> Path:
    (root / "source" / "layouts").mkdir(parents=True)
    (root / "source" / "layouts" / "layout.html.jinja").write_text(
        "<main>{{ page_content }}</main>", encoding="utf-8"
    )
    (root / "source" / "index.md").write_text("# Home\n", encoding="utf-8")
    return root


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"kiln, version {__version__}" in result.output


def test_build_command(monkeypatch, tmp_path, no_external_tools):
    project = _project(tmp_path)
    monkeypatch.chdir(project)
    runner = CliRunner()

    result = runner.invoke(cli, ["build", "--mode", "dev"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Built 1 pages" in result.output
    assert "(dev mode)" in result.output
    assert (project / "build" / "index.html").read_text(encoding="utf-8") == (
        '<main><h1 id="home">Home</h1>\n</main>'
    )
    assert registry.initialized


def test_build_passes_options(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "kiln.yaml").write_text("output_dir: public\n", encoding="utf-8")
    called = {}

    def fake_build_site(root, mode=BuildMode.BUILD, settings=None, include_drafts=False, **kwargs):
        called.update(root=root, mode=mode, settings=settings, drafts=include_drafts)
        return BuildResult(
            pages=[],
            output_dir=root / settings.output_dir,
            settings=settings,
            mode=BuildMode(mode),
            assets=[],
        )

    monkeypatch.setattr("kiln.build.build_site", fake_build_site)
    result = CliRunner().invoke(cli, ["build", "--drafts"], catch_exceptions=False)
    assert result.exit_code == 0
    assert called["root"] == tmp_path
    assert called["mode"] == "build"
    assert called["drafts"] is True
    assert called["settings"].output_dir == "public"
    assert "(build mode)" in result.output


def test_build_rejects_unknown_mode(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["build", "--mode", "production"])
    assert result.exit_code == 2


def test_build_failure_reports_file(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    def failing_build(root, **kwargs):
        raise BuildError(root / "source" / "index.md", "Undefined variable: 'x' is undefined")

    monkeypatch.setattr("kiln.build.build_site", failing_build)
    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "Build failed" in result.output
    assert "source/index.md" in result.output
    assert "'x' is undefined" in result.output


def test_build_without_source_dir(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(cli, ["build"])
    assert result.exit_code == 1
    assert "Expected source directory" in result.output


def test_invalid_config_is_reported(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "kiln.yaml").write_text("pages: [\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["resolve", "about.html"])
    assert result.exit_code == 1
    assert "invalid YAML" in result.output
    assert not registry.initialized


def test_serve_command(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    called = {}

    class DummyServer:
        def __init__(self, root, settings=None, http_port=None, ws_port=None):
            called.update(root=root, settings=settings, port=http_port, ws_port=ws_port)

        def start(self, include_drafts=False):
            called["drafts"] = include_drafts

    monkeypatch.setattr("kiln.server.DevServer", DummyServer)
    result = CliRunner().invoke(
        cli, ["serve", "--drafts", "--port", "5050", "--ws-port", "5051"], catch_exceptions=False
    )
    assert result.exit_code == 0
    assert called["root"] == tmp_path
    assert called["port"] == 5050
    assert called["ws_port"] == 5051
    assert called["drafts"] is True
    assert called["settings"] is registry.get()


def test_article_command(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    result = runner.invoke(
        cli,
        ["article", "Hello There", "--date", "2024-03-09", "--tag", "python", "--tag", "web"],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    created = tmp_path / "source" / "blog" / "2024-03-09-hello-there.html.md"
    assert "Created source/blog/2024-03-09-hello-there.html.md" in result.output
    text = created.read_text(encoding="utf-8")
    assert 'title: "Hello There"' in text
    assert '["python", "web"]' in text

    again = runner.invoke(cli, ["article", "Hello There", "--date", "2024-03-09"])
    assert again.exit_code == 1
    assert "already exists" in again.output


def test_article_prompts_for_title(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    class Prompt:
        def __init__(self, answer):
            self.answer = answer

        def ask(self):
            return self.answer

    monkeypatch.setattr("kiln.cli.questionary.text", lambda *args, **kwargs: Prompt("Prompted Post"))
    result = CliRunner().invoke(cli, ["article"], catch_exceptions=False)
    assert result.exit_code == 0
    today = dt.date.today().isoformat()
    assert (tmp_path / "source" / "blog" / f"{today}-prompted-post.html.md").exists()


def test_article_prompt_cancelled(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(
        "kiln.cli.questionary.text",
        lambda *args, **kwargs: type("Cancelled", (), {"ask": lambda self: None})(),
    )
    result = CliRunner().invoke(cli, ["article"])
    assert result.exit_code == 1
    assert not (tmp_path / "source").exists()


def test_article_requires_blog(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "kiln.yaml").write_text("blog: false\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["article", "Post"])
    assert result.exit_code == 1
    assert "blog extension is not active" in result.output


def test_resolve_article(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    result = CliRunner().invoke(
        cli, ["resolve", "blog/2024-01-15-hello-world.html.md"], catch_exceptions=False
    )
    assert result.exit_code == 0
    assert "Blog article: 2024-01-15 hello-world" in result.output
    assert "Output path: /blog/2024/01/15/hello-world.html" in result.output
    assert "Layout: blog_article" in result.output


def test_resolve_plain_pages(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()

    feed = runner.invoke(cli, ["resolve", "/feed.xml"], catch_exceptions=False)
    assert "Blog article: no" in feed.output
    assert "Output path: /feed.xml" in feed.output
    assert "Layout: disabled" in feed.output

    about = runner.invoke(cli, ["resolve", "about.md"], catch_exceptions=False)
    assert "Output path: /about.html" in about.output
    assert "Layout: default" in about.output


def test_resolve_blog_layout_without_rules(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "kiln.yaml").write_text("pages: []\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["resolve", "blog/2024-01-15-a.html"], catch_exceptions=False)
    assert "Layout: blog" in result.output


def test_module_main_entrypoint():
    from kiln.__main__ import main

    assert callable(main)


def test_main_invokes_cli(monkeypatch):
    import kiln.cli as cli_mod

    called = {}
    monkeypatch.setattr(cli_mod, "cli", lambda: called.setdefault("ran", True))
    cli_mod.main()
    assert called["ran"]


def test_resolve_nested_data_file_has_no_layout(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    runner = CliRunner()
    data = runner.invoke(cli, ["resolve", "api/data.json"], catch_exceptions=False)
    assert "Output path: /api/data.json" in data.output
    assert "Layout: disabled" in data.output

    template = runner.invoke(cli, ["resolve", "api/data.json.jinja"], catch_exceptions=False)
    assert "Layout: default" in template.output

    page = runner.invoke(cli, ["resolve", "docs/page.html"], catch_exceptions=False)
    assert "Layout: default" in page.output
