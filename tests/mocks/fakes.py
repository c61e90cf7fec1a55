"""In-memory stand-ins for the workspace provider and session orchestrator.

Both record every call so tests can assert on ordering and side effects
without git or tmux.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from wtspawn.core.result import (
    DirtyWorkspaceError,
    Err,
    GitError,
    MergeConflictError,
    Ok,
    Result,
    SessionUnavailableError,
    TaskNotFoundError,
    WindowAlreadyExistsError,
    WorkspaceExistsError,
)
from wtspawn.git import GitCommit
from wtspawn.session.base import SessionRef, WindowStatus
from wtspawn.tasks.models import WorkspaceRef


class FakeWorkspaceProvider:
    """Workspaces are plain directories under ``root/.worktrees``."""

    def __init__(self, root: Path, main_branch: str = "main") -> None:
        self.root = root
        self.main_branch = main_branch
        self.workspaces: dict[str, WorkspaceRef] = {}
        self.created_from: dict[str, str] = {}
        self.dirty: set[str] = set()
        self.conflicts: set[str] = set()
        self.commits: dict[str, int] = {}
        self.merges: list[tuple[str, str]] = []
        self.removed: list[str] = []
        self.calls: list[str] = []
        root.mkdir(parents=True, exist_ok=True)

    async def main_checkout(self) -> Result[WorkspaceRef, GitError]:
        return Ok(WorkspaceRef(path=self.root, branch=self.main_branch))

    async def create(
        self, name: str, base_ref: str
    ) -> Result[WorkspaceRef, WorkspaceExistsError | GitError]:
        self.calls.append(f"create:{name}")
        if name in self.workspaces:
            return Err(WorkspaceExistsError(f"Workspace '{name}' already exists"))
        path = self.root / ".worktrees" / name
        path.mkdir(parents=True, exist_ok=True)
        ref = WorkspaceRef(path=path, branch=name)
        self.workspaces[name] = ref
        self.created_from[name] = base_ref
        return Ok(ref)

    async def get(self, name: str) -> Result[WorkspaceRef | None, GitError]:
        return Ok(self.workspaces.get(name))

    async def remove(
        self, ref: WorkspaceRef, *, force: bool = False
    ) -> Result[None, DirtyWorkspaceError | GitError]:
        if ref.branch in self.dirty and not force:
            return Err(DirtyWorkspaceError(f"Workspace {ref.path} has uncommitted changes"))
        self.workspaces.pop(ref.branch, None)
        self.removed.append(ref.branch)
        return Ok(None)

    async def is_dirty(self, ref: WorkspaceRef) -> Result[bool, GitError]:
        self.calls.append(f"is_dirty:{ref.branch}")
        return Ok(ref.branch in self.dirty)

    async def current_branch(self, ref: WorkspaceRef) -> Result[str, GitError]:
        return Ok(ref.branch)

    async def merge_into(
        self, source: WorkspaceRef, target: WorkspaceRef
    ) -> Result[str, MergeConflictError | GitError]:
        self.calls.append(f"merge:{source.branch}->{target.branch}")
        if source.branch in self.conflicts:
            return Err(
                MergeConflictError(
                    f"Merging '{source.branch}' into '{target.branch}' produced conflicts",
                    context={"files": "README.md"},
                )
            )
        self.merges.append((source.branch, target.branch))
        return Ok("0123456789abcdef0123456789abcdef01234567")

    async def commits_ahead(self, ref: WorkspaceRef, base: str) -> Result[int, GitError]:
        return Ok(self.commits.get(ref.branch, 0))

    async def commit_log(
        self, ref: WorkspaceRef, base: str, limit: int = 50
    ) -> Result[list[GitCommit], GitError]:
        count = min(self.commits.get(ref.branch, 0), limit)
        return Ok(
            [
                GitCommit(
                    hexsha=f"{i:040x}",
                    summary=f"{ref.branch} change {i}",
                    author_name="Worker",
                    committed_date=1_700_000_000 + i,
                )
                for i in range(count)
            ]
        )

    async def diff_stat(self, ref: WorkspaceRef, base: str) -> Result[str, GitError]:
        count = self.commits.get(ref.branch, 0)
        return Ok(f" {count} files changed\n" if count else "")

    async def diff(self, ref: WorkspaceRef, base: str) -> Result[str, GitError]:
        return Ok(f"diff --git a/{ref.branch}.txt b/{ref.branch}.txt\n")


@dataclass
class FakeWindow:
    window_id: str
    work_dir: Path
    command: str


@dataclass
class FakeSessionOrchestrator:
    available: bool = True
    fail_create: set[str] = field(default_factory=set)
    exited: set[str] = field(default_factory=set)
    sessions: dict[str, dict[str, FakeWindow]] = field(default_factory=dict)
    attached: list[tuple[str, str | None]] = field(default_factory=list)
    killed: list[str] = field(default_factory=list)
    _counter: int = 0

    async def ensure_session(self, name: str) -> SessionRef:
        if not self.available:
            raise SessionUnavailableError("tmux executable not found on PATH")
        self.sessions.setdefault(name, {})
        return SessionRef(name)

    async def session_exists(self, session: SessionRef) -> bool:
        return session.name in self.sessions

    async def create_window(
        self, session: SessionRef, task_id: str, work_dir: Path, startup_command: str
    ) -> str:
        windows = self.sessions.get(session.name)
        if windows is None:
            raise SessionUnavailableError(f"No session '{session.name}'")
        if task_id in self.fail_create:
            raise SessionUnavailableError(f"Cannot create window for task '{task_id}'")
        if task_id in windows:
            raise WindowAlreadyExistsError(f"A window for task '{task_id}' already exists")
        self._counter += 1
        window = FakeWindow(f"@{self._counter}", work_dir, startup_command)
        windows[task_id] = window
        return window.window_id

    async def kill_window(self, session: SessionRef, task_id: str) -> None:
        windows = self.sessions.get(session.name, {})
        if windows.pop(task_id, None) is not None:
            self.killed.append(task_id)

    async def window_status(self, session: SessionRef, task_id: str) -> WindowStatus:
        windows = self.sessions.get(session.name)
        if windows is None:
            return WindowStatus.NO_SESSION
        if task_id not in windows:
            return WindowStatus.NO_WINDOW
        return WindowStatus.EXITED if task_id in self.exited else WindowStatus.RUNNING

    async def list_windows(self, session: SessionRef) -> list[str]:
        return list(self.sessions.get(session.name, {}))

    async def attach(self, session: SessionRef, task_id: str | None = None) -> None:
        windows = self.sessions.get(session.name)
        if windows is None:
            raise SessionUnavailableError(f"No session '{session.name}' exists")
        if task_id is not None and task_id not in windows:
            raise TaskNotFoundError(f"No window for task '{task_id}'")
        self.attached.append((session.name, task_id))

    async def kill_session(self, session: SessionRef) -> None:
        self.sessions.pop(session.name, None)

    def window(self, session: SessionRef, task_id: str) -> FakeWindow:
        return self.sessions[session.name][task_id]
