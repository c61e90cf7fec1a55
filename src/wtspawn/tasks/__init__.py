"""Task records, their persistence, and dependency resolution."""

from __future__ import annotations

from .dependencies import DependencyResolver
from .models import Epic, Task, TaskStatus, WorkspaceRef
from .store import EpicStore, SpawnTaskStore, TaskStore

__all__ = [
    "DependencyResolver",
    "Epic",
    "EpicStore",
    "SpawnTaskStore",
    "Task",
    "TaskStatus",
    "TaskStore",
    "WorkspaceRef",
]
