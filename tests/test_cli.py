import json
from pathlib import Path

from click.testing import CliRunner

from quire import __version__
from quire.build import BuildError
from quire.cli import cli


def create_site(root: Path) -> Path:
    src = root / "src"
    (src / "layouts").mkdir(parents=True)
    (src / "layouts" / "base.jinja").write_text(
        "<html><head>{{ bundledcss() }}</head><body>{{ content }}</body></html>",
        encoding="utf-8",
    )
    (src / "index.md").write_text("---\nlayout: base\n---\n# Home\n", encoding="utf-8")
    return root


def test_cli_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_build_dev(monkeypatch, tmp_path):
    monkeypatch.chdir(create_site(tmp_path))
    monkeypatch.delenv("APP_ENV", raising=False)
    result = CliRunner().invoke(cli, ["build", "--dev"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Built 1 pages" in result.output
    html = (tmp_path / "docs" / "index.html").read_text(encoding="utf-8")
    assert '<link href="/assets/main.css" rel="stylesheet" />' in html


def test_cli_build_without_manifest_fails(monkeypatch, tmp_path):
    monkeypatch.chdir(create_site(tmp_path))
    result = CliRunner().invoke(cli, ["build", "--no-dev"])
    assert result.exit_code == 1
    assert "Build failed" in result.output
    assert "manifest" in result.output
    assert not (tmp_path / "docs").exists()


def test_cli_build_with_manifest(monkeypatch, tmp_path):
    monkeypatch.chdir(create_site(tmp_path))
    manifest = tmp_path / "docs" / "assets" / "manifest.json"
    manifest.parent.mkdir(parents=True)
    manifest.write_text(json.dumps({"main.css": "/main.abc.css"}), encoding="utf-8")
    monkeypatch.setenv("APP_ENV", "production")
    result = CliRunner().invoke(cli, ["build"], catch_exceptions=False)
    assert result.exit_code == 0
    html = (tmp_path / "docs" / "index.html").read_text(encoding="utf-8")
    assert '<link href="/main.abc.css" rel="stylesheet" />' in html


def test_cli_build_reports_template_errors(monkeypatch, tmp_path):
    root = create_site(tmp_path)
    (root / "src" / "broken.md").write_text("---\nlayout: missing\n---\nx\n", encoding="utf-8")
    monkeypatch.chdir(root)
    result = CliRunner().invoke(cli, ["build", "--dev"])
    assert result.exit_code == 1
    assert "Template not found: missing" in result.output
    assert str(Path("src") / "broken.md") in result.output


def test_cli_serve_passes_options(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    called = {}

    class DummyServer:
        def __init__(self, root, http_port=None, ws_port=None, development=None):
            called.update(root=root, port=http_port, ws_port=ws_port, development=development)

        def start(self, include_drafts=False):
            called["drafts"] = include_drafts

    monkeypatch.setattr("quire.server.DevServer", DummyServer)
    result = CliRunner().invoke(
        cli,
        ["serve", "--drafts", "--port", "5050", "--ws-port", "5051", "--dev"],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    assert called == {
        "root": Path.cwd(),
        "port": 5050,
        "ws_port": 5051,
        "development": True,
        "drafts": True,
    }


def test_cli_serve_reports_failures(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    class FailingServer:
        def __init__(self, root, **kwargs):
            self.root = root

        def start(self, include_drafts=False):
            raise BuildError(self.root / "src" / "index.md", "Undefined variable: x")

    monkeypatch.setattr("quire.server.DevServer", FailingServer)
    result = CliRunner().invoke(cli, ["serve"])
    assert result.exit_code == 1
    assert "Undefined variable: x" in result.output
