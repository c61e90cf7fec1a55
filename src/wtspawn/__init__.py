"""wtspawn - fan coding-agent work out to isolated git worktrees and tmux windows.

This package provides the core functionality for the `wt` command-line tool:
spawning agent workers, tracking their tasks and dependencies, and reviewing
and merging their branches.

Exports:
    __version__: Package version string.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.4.0"
