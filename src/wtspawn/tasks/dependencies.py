"""Dependency resolution over blocked-by edges.

A task is blocked while at least one of the tasks named in its
``blocked_by`` list has not reached ``completed``. When a task completes,
``unblocked_after`` reports the blocked tasks whose blockers are now all
complete, in declaration order so window creation is deterministic.

Blockers that name a task no longer present are governed by a policy:

- ``satisfied``: a missing blocker counts as done. Merged spawn tasks are
  removed from their store, so this keeps dependents from deadlocking.
- ``blocking``: a missing blocker never completes.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Literal

from wtspawn.core.result import DanglingDependencyError, DependencyCycleError
from wtspawn.tasks.models import Task, TaskStatus

logger = logging.getLogger(__name__)

DanglingPolicy = Literal["satisfied", "blocking"]


class DependencyResolver:
    """Answers blocking questions over a list of tasks."""

    def __init__(self, dangling: DanglingPolicy = "satisfied") -> None:
        self._dangling = dangling

    @property
    def dangling(self) -> DanglingPolicy:
        return self._dangling

    def _blocker_done(self, blocker: str, by_id: dict[str, Task]) -> bool:
        task = by_id.get(blocker)
        if task is None:
            return self._dangling == "satisfied"
        return task.status == TaskStatus.COMPLETED

    def is_blocked(self, task: Task, tasks: Sequence[Task]) -> bool:
        """Return True if any blocker of ``task`` has not completed."""
        if not task.blocked_by:
            return False
        by_id = {t.identifier: t for t in tasks}
        return not all(self._blocker_done(b, by_id) for b in task.blocked_by)

    def unblocked_after(self, completed_id: str, tasks: Sequence[Task]) -> list[Task]:
        """Return blocked tasks whose blockers are all complete.

        Args:
            completed_id: Task that just reached completed. Treated as
                completed even if ``tasks`` still shows an older status.
            tasks: All tasks of the scope, in declaration order.

        Returns:
            Newly runnable tasks, in declaration order.
        """
        by_id = {t.identifier: t for t in tasks}
        finished = by_id.get(completed_id)
        if finished is not None and finished.status != TaskStatus.COMPLETED:
            by_id[completed_id] = finished.model_copy(update={"status": TaskStatus.COMPLETED})

        ready: list[Task] = []
        for task in tasks:
            if task.status != TaskStatus.BLOCKED:
                continue
            if all(self._blocker_done(b, by_id) for b in task.blocked_by):
                ready.append(task)
        return ready

    def validate(self, tasks: Sequence[Task]) -> list[Task]:
        """Check a new task graph and return it ready to persist.

        Raises DependencyCycleError for cycles. Blockers outside the graph
        raise DanglingDependencyError under the ``blocking`` policy and are
        dropped with a warning under ``satisfied``.
        """
        known = {t.identifier for t in tasks}
        cleaned: list[Task] = []
        for task in tasks:
            missing = [b for b in task.blocked_by if b not in known]
            if missing and self._dangling == "blocking":
                raise DanglingDependencyError(
                    f"Task '{task.identifier}' is blocked by unknown task(s): {', '.join(missing)}",
                    context={"task": task.identifier},
                )
            if missing:
                logger.warning(
                    "Ignoring unknown blocker(s) %s of task %s", ", ".join(missing), task.identifier
                )
                task = task.model_copy(
                    update={"blocked_by": [b for b in task.blocked_by if b in known]}
                )
            cleaned.append(task)

        cycle = find_cycle(cleaned)
        if cycle:
            raise DependencyCycleError(
                f"Blocked-by edges form a cycle through: {', '.join(cycle)}",
                context={"tasks": len(cleaned)},
            )
        return cleaned


def find_cycle(tasks: Sequence[Task]) -> list[str]:
    """Return identifiers on or behind a cycle, or an empty list if acyclic.

    Uses Kahn's algorithm; only edges between tasks of the graph count.
    """
    task_ids = {t.identifier for t in tasks}
    in_degree: dict[str, int] = {t.identifier: 0 for t in tasks}
    adjacency: dict[str, list[str]] = {t.identifier: [] for t in tasks}

    for task in tasks:
        for dep in task.blocked_by:
            if dep == task.identifier:
                return [task.identifier, task.identifier]
            if dep in task_ids:
                adjacency[dep].append(task.identifier)
                in_degree[task.identifier] += 1

    queue = [tid for tid, deg in in_degree.items() if deg == 0]
    visited: set[str] = set()

    while queue:
        current = queue.pop(0)
        visited.add(current)
        for neighbor in adjacency[current]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                queue.append(neighbor)

    return [t.identifier for t in tasks if t.identifier not in visited]


__all__ = [
    "DanglingPolicy",
    "DependencyResolver",
    "find_cycle",
]
