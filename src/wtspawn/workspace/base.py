"""Workspace provider contract.

A workspace is an isolated checkout bound to one branch. Providers report
failures as ``Result`` values; the coordinators decide which ones abort an
operation.
"""

from __future__ import annotations

from typing import Protocol

from wtspawn.core.result import (
    DirtyWorkspaceError,
    GitError,
    MergeConflictError,
    Result,
    WorkspaceExistsError,
)
from wtspawn.git import GitCommit
from wtspawn.tasks.models import WorkspaceRef

# Files the orchestrator writes into a checkout; never counted as changes.
TASK_FILE = ".wt-task"
PROMPT_FILE = ".wt-prompt"
SCRATCH_FILES = (TASK_FILE, PROMPT_FILE)


class WorkspaceProvider(Protocol):
    async def main_checkout(self) -> Result[WorkspaceRef, GitError]: ...

    async def create(
        self, name: str, base_ref: str
    ) -> Result[WorkspaceRef, WorkspaceExistsError | GitError]: ...

    async def get(self, name: str) -> Result[WorkspaceRef | None, GitError]: ...

    async def remove(
        self, ref: WorkspaceRef, *, force: bool = False
    ) -> Result[None, DirtyWorkspaceError | GitError]: ...

    async def is_dirty(self, ref: WorkspaceRef) -> Result[bool, GitError]: ...

    async def current_branch(self, ref: WorkspaceRef) -> Result[str, GitError]: ...

    async def merge_into(
        self, source: WorkspaceRef, target: WorkspaceRef
    ) -> Result[str, MergeConflictError | GitError]: ...

    async def commits_ahead(self, ref: WorkspaceRef, base: str) -> Result[int, GitError]: ...

    async def commit_log(
        self, ref: WorkspaceRef, base: str, limit: int = 50
    ) -> Result[list[GitCommit], GitError]: ...

    async def diff_stat(self, ref: WorkspaceRef, base: str) -> Result[str, GitError]: ...

    async def diff(self, ref: WorkspaceRef, base: str) -> Result[str, GitError]: ...


__all__ = [
    "PROMPT_FILE",
    "SCRATCH_FILES",
    "TASK_FILE",
    "WorkspaceProvider",
]
