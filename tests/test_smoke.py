from __future__ import annotations

from typing import Any

import typer
from rich.console import Console
from typer.testing import CliRunner

import wtspawn.core.diagnostics as diagnostics
from wtspawn import __version__
from wtspawn.main import app

runner = CliRunner()


def test_app_version(capture_console: Console) -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in capture_console.export_text()


def test_doctor_mocked(monkeypatch: Any, capture_console: Console) -> None:
    """Ensure doctor runs without crashing even if tools are missing."""
    tool = diagnostics.ExternalTool(name="mock", binary="mock-bin", required=False)
    fake = diagnostics.ToolCheck(tool=tool, status="ok", version="1.0.0")

    async def fake_run(_tools: list[diagnostics.ExternalTool]) -> list[diagnostics.ToolCheck]:
        return [fake]

    monkeypatch.setattr(diagnostics, "_run_tool_checks", fake_run)
    result = runner.invoke(app, ["doctor"])
    assert result.exit_code == 0
    output = capture_console.export_text()
    assert "mock" in output
    assert "State" in output


def test_doctor_fails_when_required_tool_missing(monkeypatch: Any) -> None:
    tool = diagnostics.ExternalTool(name="tmux", binary="tmux")
    missing = diagnostics.ToolCheck(tool=tool, status="missing", version=None)

    async def fake_run(_tools: list[diagnostics.ExternalTool]) -> list[diagnostics.ToolCheck]:
        return [missing]

    monkeypatch.setattr(diagnostics, "_run_tool_checks", fake_run)
    result = runner.invoke(app, ["doctor"])
    assert result.exit_code == 1


def _commands(typer_app: typer.Typer) -> set[str]:
    return {info.name for info in typer_app.registered_commands if info.name}


def _groups(typer_app: typer.Typer) -> dict[str, typer.Typer]:
    return {
        info.name: info.typer_instance
        for info in typer_app.registered_groups
        if info.name and info.typer_instance is not None
    }


def test_all_commands_have_help() -> None:
    """
    Iterate over every registered command and ensure it accepts --help.
    This catches import errors and broken decorators in the command modules.
    """
    for name in _commands(app):
        result = runner.invoke(app, [name, "--help"])
        assert result.exit_code == 0, f"Command 'wt {name} --help' failed!"
        assert "Usage:" in result.stdout
    for name, group in _groups(app).items():
        result = runner.invoke(app, [name, "--help"])
        assert result.exit_code == 0, f"Command 'wt {name} --help' failed!"
        for sub in _commands(group):
            result = runner.invoke(app, [name, sub, "--help"])
            assert result.exit_code == 0, f"Command 'wt {name} {sub} --help' failed!"


def test_expected_commands_registered() -> None:
    assert {"spawn", "ps", "attach", "review", "merge", "kill", "doctor", "config", "version"} <= _commands(
        app
    )
    groups = _groups(app)
    assert set(groups) == {"epic"}
    assert _commands(groups["epic"]) == {"spawn", "status", "complete", "cleanup"}
