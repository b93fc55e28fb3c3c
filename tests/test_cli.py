import pytest
from click.testing import CliRunner

from siteflow import __version__
from siteflow.cli import cli


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr("siteflow.cli.setup_logging", lambda verbose=False: None)


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_tasks_lists_registered_names(tmp_path):
    result = CliRunner().invoke(cli, ["--project", str(tmp_path), "tasks"])
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert "clean-dist -> dist" in lines
    assert "compile-styles -> app/css/style.min.css" in lines
    assert "develop" in lines


def test_run_unknown_task_is_usage_error(tmp_path):
    result = CliRunner().invoke(cli, ["--project", str(tmp_path), "run", "nope"])
    assert result.exit_code == 2
    assert "Unknown task: nope" in result.output


def test_run_named_tasks(tmp_path):
    (tmp_path / "dist").mkdir()
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "index.html").write_text("<div><p>x</p></div>", encoding="utf-8")

    result = CliRunner().invoke(
        cli, ["--project", str(tmp_path), "run", "clean-dist", "format-html"], catch_exceptions=False
    )
    assert result.exit_code == 0
    assert not (tmp_path / "dist").exists()
    assert (tmp_path / "app" / "index.html").read_text(encoding="utf-8") == "<div>\n  <p>x</p>\n</div>\n"


def test_build_success(tmp_path):
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "index.html").write_text("<p>x</p>", encoding="utf-8")
    result = CliRunner().invoke(cli, ["--project", str(tmp_path), "build"], catch_exceptions=False)
    assert result.exit_code == 0
    assert (tmp_path / "dist" / "index.html").exists()
    assert "Release written to dist" in result.output


def test_build_failure_exits_with_task_name(tmp_path):
    result = CliRunner().invoke(cli, ["--project", str(tmp_path), "build"])
    assert result.exit_code == 1
    assert "Task failed:" in result.output
    assert "Task: package-build" in result.output
    assert "Package base directory not found" in result.output


def test_non_utf8_source_reports_task_failure(tmp_path):
    (tmp_path / "app" / "js").mkdir(parents=True)
    (tmp_path / "app" / "js" / "main.js").write_bytes(b"var s = '\xe9t\xe9';\n")
    result = CliRunner().invoke(cli, ["--project", str(tmp_path), "run", "bundle-scripts"])
    assert result.exit_code == 1
    assert "Task: bundle-scripts" in result.output
    assert "not valid UTF-8" in result.output


def test_invalid_config_exits(tmp_path):
    (tmp_path / "siteflow.yaml").write_text("images:\n  quality: 200\n", encoding="utf-8")
    result = CliRunner().invoke(cli, ["--project", str(tmp_path), "tasks"])
    assert result.exit_code == 1
    assert "Invalid configuration:" in result.output
    assert "images.quality" in result.output


def test_develop_port_overrides(monkeypatch, tmp_path):
    seen = {}

    async def fake_run_develop(self):
        seen["server"] = self.context.config.server

    monkeypatch.setattr("siteflow.cli.Orchestrator.run_develop", fake_run_develop)
    result = CliRunner().invoke(
        cli,
        ["--project", str(tmp_path), "develop", "--port", "5050", "--ws-port", "5051"],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    assert seen["server"].port == 5050
    assert seen["server"].websocket_port == 5051


def test_no_command_runs_develop(monkeypatch, tmp_path):
    seen = {}

    async def fake_run_develop(self):
        seen["port"] = self.context.config.server.port

    monkeypatch.setattr("siteflow.cli.Orchestrator.run_develop", fake_run_develop)
    result = CliRunner().invoke(cli, ["--project", str(tmp_path)], catch_exceptions=False)
    assert result.exit_code == 0
    assert seen["port"] == 3000


def test_develop_stops_cleanly_on_interrupt(monkeypatch, tmp_path):
    async def interrupted(self):
        raise KeyboardInterrupt

    monkeypatch.setattr("siteflow.cli.Orchestrator.run_develop", interrupted)
    result = CliRunner().invoke(cli, ["--project", str(tmp_path), "develop"])
    assert result.exit_code == 0
    assert "Stopped." in result.output
