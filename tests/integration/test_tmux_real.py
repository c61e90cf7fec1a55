"""End-to-end spawn, status, merge and kill against real git and tmux.

The agent is replaced by ``sleep`` so the window has a long-lived
foreground process without an agent installed.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

from tests.mocks.repos import commit_file
from wtspawn.core.config import SpawnConfig
from wtspawn.core.result import Ok
from wtspawn.orchestrator import SpawnOrchestrator, WorkerLauncher
from wtspawn.session.base import WindowStatus
from wtspawn.session.tmux import TmuxOrchestrator
from wtspawn.tasks.store import SpawnTaskStore
from wtspawn.workspace import GitWorktreeProvider

pytestmark = [pytest.mark.requires_tmux, pytest.mark.local_only]


@pytest_asyncio.fixture
async def orchestrator(temp_git_repo: Path, state_dir: Path) -> AsyncIterator[SpawnOrchestrator]:
    result = await GitWorktreeProvider.open(temp_git_repo)
    assert isinstance(result, Ok)
    workspaces = result.value
    config = SpawnConfig(agent_command="sleep 30", agent_process_names=["sleep"])
    sessions = TmuxOrchestrator(config.agent_process_names)
    orchestrator = SpawnOrchestrator(
        store=SpawnTaskStore(state_dir, workspaces.repo.path),
        workspaces=workspaces,
        sessions=sessions,
        launcher=WorkerLauncher(config),
    )
    try:
        yield orchestrator
    finally:
        await sessions.kill_session(orchestrator.session)


async def _wait_for(
    orchestrator: SpawnOrchestrator, name: str, expected: WindowStatus
) -> WindowStatus:
    status = WindowStatus.NO_WINDOW
    for _ in range(50):
        rows = {row.name: row for row in await orchestrator.ps()}
        status = rows[name].status
        if status == expected:
            break
        await asyncio.sleep(0.1)
    return status


@pytest.mark.asyncio
async def test_spawn_ps_kill(orchestrator: SpawnOrchestrator, temp_git_repo: Path) -> None:
    task = await orchestrator.spawn("feature/auth")

    assert task.window_ref is not None
    assert (temp_git_repo / ".worktrees" / "feature" / "auth").is_dir()
    assert await _wait_for(orchestrator, "feature/auth", WindowStatus.RUNNING) == WindowStatus.RUNNING

    assert await orchestrator.kill("feature/auth") is True
    assert orchestrator.store.list() == []
    assert (temp_git_repo / ".worktrees" / "feature" / "auth").is_dir()


@pytest.mark.asyncio
async def test_spawn_commit_merge(orchestrator: SpawnOrchestrator, temp_git_repo: Path) -> None:
    task = await orchestrator.spawn("feature/merge", context="Add a file")
    assert task.workspace_ref is not None
    assert (task.workspace_ref.path / ".wt-task").read_text() == "Add a file\n"

    commit_file(task.workspace_ref.path, "added.txt", "hello\n", "Add file")

    report = await orchestrator.review("feature/merge")
    assert report.commit_count == 1
    assert report.dirty is False

    outcome = await orchestrator.merge("feature/merge")

    assert outcome.target_branch == "main"
    assert (temp_git_repo / "added.txt").read_text() == "hello\n"
    assert orchestrator.store.list() == []
