"""Spawn-mode operations.

Spawned tasks of one repository share a pooled session and merge into the
main checkout on its current branch. A merged or killed task disappears
from the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from wtspawn.core.result import DuplicateTaskError, Err, Ok, WtError
from wtspawn.orchestrator.coordinator import MergeOutcome, ReviewReport, TaskCoordinator
from wtspawn.orchestrator.launcher import WorkerLauncher
from wtspawn.session.base import (
    SessionOrchestrator,
    SessionRef,
    WindowStatus,
    pooled_session_name,
)
from wtspawn.tasks.dependencies import DependencyResolver
from wtspawn.tasks.models import Task, TaskStatus, WorkspaceRef
from wtspawn.tasks.store import SpawnTaskStore
from wtspawn.workspace.base import WorkspaceProvider

logger = logging.getLogger(__name__)


@dataclass
class TaskRow:
    name: str
    status: WindowStatus
    branch: str
    commits: int | None
    dirty: bool | None


class SpawnOrchestrator:
    """Entry points behind ``wt spawn/ps/attach/review/merge/kill``."""

    def __init__(
        self,
        *,
        store: SpawnTaskStore,
        workspaces: WorkspaceProvider,
        sessions: SessionOrchestrator,
        launcher: WorkerLauncher,
        resolver: DependencyResolver | None = None,
        base_branch: str | None = None,
    ) -> None:
        self._store = store
        self._workspaces = workspaces
        self._sessions = sessions
        self._launcher = launcher
        self._resolver = resolver or DependencyResolver()
        self._base_branch = base_branch
        self._session = SessionRef(pooled_session_name(store.repo_root))

    @property
    def session(self) -> SessionRef:
        return self._session

    @property
    def store(self) -> SpawnTaskStore:
        return self._store

    async def _target(self) -> WorkspaceRef:
        return (await self._workspaces.main_checkout()).unwrap()

    async def _coordinator(self) -> TaskCoordinator:
        return TaskCoordinator(
            store=self._store,
            workspaces=self._workspaces,
            sessions=self._sessions,
            session=self._session,
            target=await self._target(),
            launcher=self._launcher,
            resolver=self._resolver,
            retain_completed=False,
        )

    async def spawn(self, name: str, context: str | None = None, auto: bool = False) -> Task:
        """Start a worker for ``name`` in its own workspace and window.

        An existing checkout named ``name`` is reused. If the window cannot
        be created the registration is rolled back.
        """
        if self._store.contains(name):
            raise DuplicateTaskError(
                f"Task '{name}' is already running; attach to it or kill it first",
                context={"task": name},
            )

        session = await self._sessions.ensure_session(self._session.name)
        base = self._base_branch or (await self._target()).branch

        match await self._workspaces.get(name):
            case Ok(None):
                ref = (await self._workspaces.create(name, base)).unwrap()
            case Ok(existing):
                logger.info("Reusing existing workspace %s", existing.path)
                ref = existing
            case Err(err):
                raise err

        task = Task(
            identifier=name,
            branch=ref.branch,
            context=context,
            status=TaskStatus.IN_PROGRESS,
            workspace_ref=ref,
            auto=auto,
        )
        self._store.register(task)

        try:
            command = self._launcher.prepare(ref.path, task)
            window = await self._sessions.create_window(session, name, ref.path, command)
        except (WtError, OSError):
            self._store.unregister(name)
            raise

        logger.info("Spawned %s in %s", name, ref.path)
        return self._store.set_window_ref(name, window)

    async def ps(self) -> list[TaskRow]:
        """List spawned tasks with live window status.

        Window refs of windows that no longer exist are cleared.
        """
        tasks = self._store.list()
        if not tasks:
            return []

        base = self._base_branch
        if base is None:
            match await self._workspaces.main_checkout():
                case Ok(main):
                    base = main.branch
                case Err(err):
                    logger.debug("Cannot determine base branch: %s", err)

        rows: list[TaskRow] = []
        for task in tasks:
            status = await self._sessions.window_status(self._session, task.identifier)
            if task.window_ref and status in (WindowStatus.NO_SESSION, WindowStatus.NO_WINDOW):
                self._store.set_window_ref(task.identifier, None)
                logger.debug("Cleared stale window of %s", task.identifier)

            commits: int | None = None
            dirty: bool | None = None
            if task.workspace_ref is not None:
                if base is not None:
                    commits = (
                        await self._workspaces.commits_ahead(task.workspace_ref, base)
                    ).unwrap_or(None)
                dirty = (await self._workspaces.is_dirty(task.workspace_ref)).unwrap_or(None)

            rows.append(
                TaskRow(
                    name=task.identifier,
                    status=status,
                    branch=task.branch,
                    commits=commits,
                    dirty=dirty,
                )
            )
        return rows

    async def attach(self, name: str | None = None) -> None:
        if name is not None:
            self._store.get(name)
        await self._sessions.attach(self._session, name)

    async def review(self, name: str, full: bool = False) -> ReviewReport:
        return await (await self._coordinator()).review(name, full=full)

    async def merge(self, name: str) -> MergeOutcome:
        return await (await self._coordinator()).merge(name)

    async def kill(self, name: str) -> bool:
        coordinator = TaskCoordinator(
            store=self._store,
            workspaces=self._workspaces,
            sessions=self._sessions,
            session=self._session,
            target=None,
            launcher=self._launcher,
            resolver=self._resolver,
        )
        return await coordinator.kill(name)


__all__ = [
    "SpawnOrchestrator",
    "TaskRow",
]
