"""Build orchestrators from configuration and the invoking directory."""

from __future__ import annotations

from pathlib import Path

from wtspawn.core.config import AppConfig
from wtspawn.core.result import Err, GitError, Ok
from wtspawn.git import AsyncRepo
from wtspawn.orchestrator.epic import EpicOrchestrator
from wtspawn.orchestrator.launcher import WorkerLauncher, resolve_agents_dir
from wtspawn.orchestrator.spawn import SpawnOrchestrator
from wtspawn.session.tmux import TmuxOrchestrator
from wtspawn.tasks.dependencies import DependencyResolver
from wtspawn.tasks.models import WorkspaceRef
from wtspawn.tasks.store import EpicStore, SpawnTaskStore
from wtspawn.workspace.git_worktree import GitWorktreeProvider


async def open_workspaces(config: AppConfig, cwd: Path | None = None) -> GitWorktreeProvider:
    match await GitWorktreeProvider.open(cwd or Path.cwd(), config.workspace.worktrees_dirname):
        case Ok(provider):
            return provider
        case Err(err):
            raise GitError(f"Not inside a git repository: {err.message}") from err


def _launcher(config: AppConfig, workspaces: GitWorktreeProvider) -> WorkerLauncher:
    return WorkerLauncher(
        config.spawn, agents_dir=resolve_agents_dir(workspaces.repo.path, config.agents.dir)
    )


async def open_spawn(config: AppConfig, cwd: Path | None = None) -> SpawnOrchestrator:
    workspaces = await open_workspaces(config, cwd)
    return SpawnOrchestrator(
        store=SpawnTaskStore(config.store.state_dir, workspaces.repo.path),
        workspaces=workspaces,
        sessions=TmuxOrchestrator(config.spawn.agent_process_names),
        launcher=_launcher(config, workspaces),
        resolver=DependencyResolver(config.dependencies.dangling),
        base_branch=config.workspace.base_branch,
    )


async def open_epic(config: AppConfig, cwd: Path | None = None) -> EpicOrchestrator:
    workspaces = await open_workspaces(config, cwd)
    return EpicOrchestrator(
        epics=EpicStore(config.store.state_dir),
        workspaces=workspaces,
        sessions=TmuxOrchestrator(config.spawn.agent_process_names),
        launcher=_launcher(config, workspaces),
        resolver=DependencyResolver(config.dependencies.dangling),
    )


async def integration_context(config: AppConfig, cwd: Path | None = None) -> tuple[WorkspaceRef, str]:
    """Return the invoking checkout and the base branch it must differ from."""
    repo = (await AsyncRepo.open(cwd or Path.cwd())).unwrap()
    branch = (await repo.current_branch()).unwrap()
    if branch == "HEAD":
        raise GitError(
            "Invoking checkout has a detached HEAD; check out the integration branch",
            context={"path": str(repo.path)},
        )
    base = config.workspace.base_branch
    if base is None:
        workspaces = await open_workspaces(config, cwd)
        base = (await workspaces.main_checkout()).unwrap().branch
    return WorkspaceRef(path=repo.path, branch=branch), base


__all__ = [
    "integration_context",
    "open_epic",
    "open_spawn",
    "open_workspaces",
]
