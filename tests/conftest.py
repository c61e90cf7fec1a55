from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console
from typer.testing import CliRunner

# Detect CI environment (GitHub Actions sets CI=true)
IS_CI = os.environ.get("CI", "").lower() == "true"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "local_only: marks tests that require local environment (skip in CI)",
    )
    config.addinivalue_line(
        "markers",
        "requires_tmux: marks tests that drive a real tmux server",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip local_only tests in CI and tmux tests where tmux is missing."""
    skip_ci = pytest.mark.skip(reason="Skipped in CI (requires local environment)")
    skip_tmux = pytest.mark.skip(reason="tmux is not installed")
    has_tmux = shutil.which("tmux") is not None
    for item in items:
        if IS_CI and "local_only" in item.keywords:
            item.add_marker(skip_ci)
        if not has_tmux and "requires_tmux" in item.keywords:
            item.add_marker(skip_tmux)


ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from tests.mocks.repos import init_repo  # noqa: E402


@pytest.fixture
def temp_git_repo(tmp_path: Path) -> Path:
    """A temporary git repository on branch ``main`` with one commit."""
    return init_repo(tmp_path / "test_repo")


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def ensure_commands_registered() -> None:
    """Ensure CLI commands are registered before tests run."""
    from wtspawn.main import _register_commands

    _register_commands()


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: Any) -> Path:
    """Point config and state to temp paths so tests don't touch user state."""
    cfg_path = tmp_path / "config.toml"
    monkeypatch.setenv("WT_CONFIG", str(cfg_path))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for key in list(os.environ):
        if key.startswith("WT_") and key != "WT_CONFIG":
            monkeypatch.delenv(key, raising=False)
    return cfg_path


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    path = tmp_path / "state"
    path.mkdir()
    return path


@pytest.fixture(autouse=True)
def capture_console(monkeypatch: Any) -> Console:
    """Use an in-memory Rich console during tests."""
    import wtspawn.commands.epic as epic_commands
    import wtspawn.commands.spawn as spawn_commands
    import wtspawn.core.console as core_console
    import wtspawn.core.decorators as decorators
    import wtspawn.main as wt_main

    test_console = Console(record=True, width=200, theme=core_console.WT_THEME)

    for module in (core_console, wt_main, decorators, spawn_commands, epic_commands):
        monkeypatch.setattr(module, "console", test_console)
    return test_console
