"""Task and epic records persisted by the task store.

Key classes:
- TaskStatus: Lifecycle status of a task
- WorkspaceRef: Pointer to a workspace provider checkout
- Task: One unit of delegated work
- Epic: A group of tasks sharing an integration branch and a session
- SpawnDocument: The per-repository spawn-mode document

Documents are written with camelCase keys (``blockedBy``, ``windowRef``).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from wtspawn.core.result import InvalidTransitionError


class TaskStatus(str, Enum):
    """Lifecycle status for a task."""

    PENDING = "pending"
    BLOCKED = "blocked"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


_ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.BLOCKED, TaskStatus.IN_PROGRESS}),
    TaskStatus.BLOCKED: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset(),
}


def check_transition(task_id: str, current: TaskStatus, new: TaskStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> new`` moves forward.

    Re-asserting the current status is allowed.
    """
    if new == current or new in _ALLOWED_TRANSITIONS[current]:
        return
    raise InvalidTransitionError(
        f"Task '{task_id}' cannot move from {current.value} to {new.value}",
        context={"task": task_id},
    )


def _now() -> datetime:
    return datetime.now(UTC)


class _Record(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class WorkspaceRef(_Record):
    """Path/branch pair naming a checkout owned by the workspace provider."""

    path: Path
    branch: str


class Task(_Record):
    """A single unit of delegated work.

    Attributes:
        identifier: Unique within its store; may be slash-separated
        branch: Branch the task's workspace is on
        context: Free-text instructions for the worker
        title: Optional short title (epic tasks)
        status: Current lifecycle status
        blocked_by: Identifiers that must complete before this task starts
        workspace_ref: Checkout for this task, None until created
        window_ref: Opaque window handle, None when no live window
        auto: Whether the worker runs in unattended mode
        created_at: Creation timestamp
    """

    identifier: str = Field(..., min_length=1)
    branch: str
    context: str | None = None
    title: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    blocked_by: list[str] = Field(default_factory=list)
    workspace_ref: WorkspaceRef | None = None
    window_ref: str | None = None
    auto: bool = False
    created_at: datetime = Field(default_factory=_now)


class SpawnDocument(_Record):
    """All spawn-mode tasks of one repository."""

    tasks: list[Task] = Field(default_factory=list)


class Epic(_Record):
    """A named group of tasks merged into one integration branch.

    Attributes:
        epic_id: Unique epic identifier
        integration_branch: Branch completed tasks are merged into
        integration_ref: Checkout where the integration branch is checked out
        session_ref: Session shared by all of the epic's windows
        tasks: Tasks in declaration order
        created: Creation timestamp
        last_updated: Timestamp of the last mutation
    """

    epic_id: str = Field(..., min_length=1)
    integration_branch: str
    integration_ref: WorkspaceRef
    session_ref: str
    tasks: list[Task] = Field(default_factory=list)
    created: datetime = Field(default_factory=_now)
    last_updated: datetime = Field(default_factory=_now)


__all__ = [
    "Epic",
    "SpawnDocument",
    "Task",
    "TaskStatus",
    "WorkspaceRef",
    "check_transition",
]
