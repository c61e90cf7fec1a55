"""Review, merge and retirement of tasks.

The coordinator is parameterized by the scope it works in: a task store,
the session holding the scope's windows, and the checkout merges land in.
Spawn mode merges into the main checkout and forgets merged tasks; epic
mode merges into the integration checkout and keeps merged tasks as
``completed`` for status history.

Merge ordering is fixed: status update, dependency resolution and
activation of unblocked tasks all happen before the merged task is
retired, and the merged task's own window is killed last.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from wtspawn.core.result import (
    DirtyWorkspaceError,
    Err,
    InvalidTransitionError,
    Ok,
    TaskNotFoundError,
    WtError,
)
from wtspawn.git import GitCommit
from wtspawn.orchestrator.launcher import WorkerLauncher
from wtspawn.session.base import SessionOrchestrator, SessionRef
from wtspawn.tasks.dependencies import DependencyResolver
from wtspawn.tasks.models import Task, TaskStatus, WorkspaceRef
from wtspawn.tasks.store import TaskStore
from wtspawn.workspace.base import WorkspaceProvider

logger = logging.getLogger(__name__)


@dataclass
class ReviewReport:
    """Read-only summary of a task's branch against its merge target."""

    task_id: str
    branch: str
    base: str
    commit_count: int
    commit_log: list[GitCommit]
    diff_summary: str
    dirty: bool
    diff: str | None = None


@dataclass
class MergeOutcome:
    task_id: str
    commit: str | None
    target_branch: str
    activated: list[str] = field(default_factory=list)


class TaskCoordinator:
    """Runs the review -> merge -> cleanup lifecycle within one scope."""

    def __init__(
        self,
        *,
        store: TaskStore,
        workspaces: WorkspaceProvider,
        sessions: SessionOrchestrator,
        session: SessionRef,
        target: WorkspaceRef | None,
        launcher: WorkerLauncher,
        resolver: DependencyResolver | None = None,
        retain_completed: bool = False,
    ) -> None:
        self._store = store
        self._workspaces = workspaces
        self._sessions = sessions
        self._session = session
        self._target = target
        self._launcher = launcher
        self._resolver = resolver or DependencyResolver()
        self._retain_completed = retain_completed

    @property
    def session(self) -> SessionRef:
        return self._session

    @property
    def target(self) -> WorkspaceRef | None:
        return self._target

    def _require_target(self) -> WorkspaceRef:
        if self._target is None:
            raise WtError("No merge target configured for this scope")
        return self._target

    def _require_workspace(self, task: Task) -> WorkspaceRef:
        if task.workspace_ref is None:
            raise WtError(
                f"Task '{task.identifier}' has no workspace yet; it is still {task.status.value}",
                context={"task": task.identifier},
            )
        return task.workspace_ref

    async def review(self, task_id: str, full: bool = False) -> ReviewReport:
        task = self._store.get(task_id)
        ref = self._require_workspace(task)
        base = self._require_target().branch

        commit_count = (await self._workspaces.commits_ahead(ref, base)).unwrap()
        commit_log = (await self._workspaces.commit_log(ref, base)).unwrap()
        diff_summary = (await self._workspaces.diff_stat(ref, base)).unwrap()
        dirty = (await self._workspaces.is_dirty(ref)).unwrap()
        diff = (await self._workspaces.diff(ref, base)).unwrap() if full else None

        return ReviewReport(
            task_id=task_id,
            branch=ref.branch,
            base=base,
            commit_count=commit_count,
            commit_log=commit_log,
            diff_summary=diff_summary,
            dirty=dirty,
            diff=diff,
        )

    async def activate(self, task: Task) -> Task:
        """Give a runnable task its workspace and window and mark it in progress.

        A missing workspace is adopted if a checkout of that name exists,
        otherwise created from the merge target's branch so the task starts
        from its blockers' merged work.
        """
        target = self._require_target()
        ref = task.workspace_ref
        if ref is None:
            match await self._workspaces.get(task.identifier):
                case Ok(None):
                    ref = (
                        await self._workspaces.create(task.identifier, target.branch)
                    ).unwrap()
                case Ok(existing):
                    ref = existing
                case Err(err):
                    raise err
            task = self._store.set_workspace_ref(task.identifier, ref)

        command = self._launcher.prepare(ref.path, task)
        # the scope's session may have died with its last window
        session = await self._sessions.ensure_session(self._session.name)
        window = await self._sessions.create_window(session, task.identifier, ref.path, command)
        self._store.update_status(task.identifier, TaskStatus.IN_PROGRESS)
        activated = self._store.set_window_ref(task.identifier, window)
        logger.info("Started %s in window %s", task.identifier, window)
        return activated

    async def merge(self, task_id: str) -> MergeOutcome:
        """Merge a task's branch into the target checkout.

        A task that is already ``completed`` is not merged again; its
        dependents are resolved and started as if the merge had just
        happened, which finishes a completion interrupted after the merge.

        Raises:
            DirtyWorkspaceError: Uncommitted changes; nothing was merged
            MergeConflictError: Conflicts left in the target for manual resolution
        """
        task = self._store.get(task_id)
        if task.status == TaskStatus.COMPLETED:
            logger.info("%s is already merged; resuming its completion", task_id)
            return await self._finish(task_id, commit=None)
        if task.status != TaskStatus.IN_PROGRESS:
            raise InvalidTransitionError(
                f"Task '{task_id}' is {task.status.value}; only in_progress tasks can be merged",
                context={"task": task_id},
            )
        target = self._require_target()
        ref = self._require_workspace(task)

        if (await self._workspaces.is_dirty(ref)).unwrap():
            raise DirtyWorkspaceError(
                f"Task '{task_id}' has uncommitted changes in {ref.path}; commit or stash them first",
                context={"task": task_id},
            )

        commit = (await self._workspaces.merge_into(ref, target)).unwrap()
        logger.info("Merged %s into %s", ref.branch, target.branch)

        self._store.update_status(task_id, TaskStatus.COMPLETED)
        return await self._finish(task_id, commit=commit)

    async def _finish(self, task_id: str, commit: str | None) -> MergeOutcome:
        target = self._require_target()
        activated: list[str] = []
        for ready in self._resolver.unblocked_after(task_id, self._store.list()):
            await self.activate(ready)
            activated.append(ready.identifier)

        if self._retain_completed:
            self._store.set_window_ref(task_id, None)
        else:
            self._store.unregister(task_id)
        await self._sessions.kill_window(self._session, task_id)

        return MergeOutcome(
            task_id=task_id,
            commit=commit,
            target_branch=target.branch,
            activated=activated,
        )

    async def kill(self, task_id: str) -> bool:
        """Kill a task's window and forget the task; its workspace stays on disk.

        Returns False when the task was already gone.
        """
        await self._sessions.kill_window(self._session, task_id)
        try:
            self._store.unregister(task_id)
        except TaskNotFoundError:
            logger.debug("Task %s already removed", task_id)
            return False
        logger.info("Killed %s", task_id)
        return True


__all__ = [
    "MergeOutcome",
    "ReviewReport",
    "TaskCoordinator",
]
