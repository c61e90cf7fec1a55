"""Isolated checkouts that task workers run in."""

from __future__ import annotations

from .base import PROMPT_FILE, SCRATCH_FILES, TASK_FILE, WorkspaceProvider
from .git_worktree import GitWorktreeProvider

__all__ = [
    "GitWorktreeProvider",
    "PROMPT_FILE",
    "SCRATCH_FILES",
    "TASK_FILE",
    "WorkspaceProvider",
]
