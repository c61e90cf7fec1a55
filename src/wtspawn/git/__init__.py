"""Git operations and repository management.

This package provides async git operations:
    - AsyncRepo: Non-blocking git commands
    - Branch status and commit history
    - Worktree management
    - Merge operations
"""

from __future__ import annotations

from .client import (
    AsyncRepo,
    BranchStatus,
    GitCommit,
    WorktreeInfo,
)

__all__ = [
    "AsyncRepo",
    "BranchStatus",
    "GitCommit",
    "WorktreeInfo",
]
