"""Persistent task store.

Two document families live under the configured state directory:

    spawned/<repo-key>.json   spawn-mode tasks of one repository
    epics/<epic-id>.json      one epic with its tasks

Every mutation is a read-modify-write cycle performed under an exclusive
advisory lock on a sibling ``.lock`` file, and the document is replaced
atomically (temp file, fsync, os.replace). Concurrent invocations can at
worst lose an update; they can never leave a partially written document.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from wtspawn.core.result import (
    DuplicateTaskError,
    EpicExistsError,
    EpicNotFoundError,
    StoreCorruptError,
    TaskNotFoundError,
)
from wtspawn.tasks.models import Epic, SpawnDocument, Task, TaskStatus, WorkspaceRef, check_transition

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def repo_key(repo_root: Path) -> str:
    """Stable identity of a repository derived from its absolute path."""
    resolved = str(Path(repo_root).expanduser().resolve())
    return hashlib.md5(resolved.encode("utf-8")).hexdigest()


class TaskStore(Protocol):
    """Operations the coordinators need from a task store."""

    def register(self, task: Task) -> Task: ...

    def update_status(self, task_id: str, status: TaskStatus) -> Task: ...

    def set_window_ref(self, task_id: str, window_ref: str | None) -> Task: ...

    def set_workspace_ref(self, task_id: str, workspace_ref: WorkspaceRef) -> Task: ...

    def unregister(self, task_id: str) -> None: ...

    def get(self, task_id: str) -> Task: ...

    def list(self) -> list[Task]: ...


class JsonDocument:
    """One JSON document on disk with locked, atomic read-modify-write."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock_path = path.with_name(path.name + ".lock")

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold an exclusive advisory lock for the duration of the block."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._lock_path, "a", encoding="utf-8") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def read(self, model: type[M]) -> M | None:
        """Parse the document, or return None when it does not exist yet."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return model.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StoreCorruptError(
                f"Task document {self._path} is corrupt and was left untouched",
                context={"error": str(exc).splitlines()[0]},
            ) from exc

    def write(self, document: BaseModel) -> None:
        """Atomically replace the document."""
        payload = document.model_dump(mode="json", by_alias=True)
        temp_path = self._path.with_suffix(".tmp")
        with temp_path.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
            fh.write("\n")
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(temp_path, self._path)

    def delete(self) -> None:
        self._path.unlink(missing_ok=True)
        self._lock_path.unlink(missing_ok=True)


def _find(tasks: list[Task], task_id: str) -> int:
    for index, task in enumerate(tasks):
        if task.identifier == task_id:
            return index
    return -1


def _replace(tasks: list[Task], task_id: str, scope: str, **update: Any) -> tuple[list[Task], Task]:
    index = _find(tasks, task_id)
    if index < 0:
        raise TaskNotFoundError(f"Task '{task_id}' not found in {scope}", context={"task": task_id})
    updated = tasks[index].model_copy(update=update)
    return [*tasks[:index], updated, *tasks[index + 1 :]], updated


class _TaskListStore:
    """Shared task operations over a document holding a ``tasks`` list."""

    _scope = "store"

    def __init__(self, document: JsonDocument) -> None:
        self._document = document

    @property
    def path(self) -> Path:
        return self._document.path

    def _load_tasks(self) -> list[Task]:
        raise NotImplementedError

    def _save_tasks(self, tasks: list[Task]) -> None:
        raise NotImplementedError

    def _mutate(self, fn: Callable[[list[Task]], list[Task]]) -> None:
        with self._document.locked():
            tasks = self._load_tasks()
            self._save_tasks(fn(tasks))

    def register(self, task: Task) -> Task:
        def _apply(tasks: list[Task]) -> list[Task]:
            if _find(tasks, task.identifier) >= 0:
                raise DuplicateTaskError(
                    f"Task '{task.identifier}' is already registered in {self._scope}",
                    context={"task": task.identifier},
                )
            return [*tasks, task]

        self._mutate(_apply)
        logger.debug("Registered task %s in %s", task.identifier, self.path)
        return task

    def update_status(self, task_id: str, status: TaskStatus) -> Task:
        result: list[Task] = []

        def _apply(tasks: list[Task]) -> list[Task]:
            index = _find(tasks, task_id)
            if index >= 0:
                check_transition(task_id, tasks[index].status, status)
            updated_tasks, updated = _replace(tasks, task_id, self._scope, status=status)
            result.append(updated)
            return updated_tasks

        self._mutate(_apply)
        logger.debug("Task %s is now %s", task_id, status.value)
        return result[0]

    def set_window_ref(self, task_id: str, window_ref: str | None) -> Task:
        result: list[Task] = []

        def _apply(tasks: list[Task]) -> list[Task]:
            updated_tasks, updated = _replace(tasks, task_id, self._scope, window_ref=window_ref)
            result.append(updated)
            return updated_tasks

        self._mutate(_apply)
        return result[0]

    def set_workspace_ref(self, task_id: str, workspace_ref: WorkspaceRef) -> Task:
        result: list[Task] = []

        def _apply(tasks: list[Task]) -> list[Task]:
            updated_tasks, updated = _replace(
                tasks, task_id, self._scope, workspace_ref=workspace_ref, branch=workspace_ref.branch
            )
            result.append(updated)
            return updated_tasks

        self._mutate(_apply)
        return result[0]

    def unregister(self, task_id: str) -> None:
        def _apply(tasks: list[Task]) -> list[Task]:
            index = _find(tasks, task_id)
            if index < 0:
                raise TaskNotFoundError(
                    f"Task '{task_id}' not found in {self._scope}", context={"task": task_id}
                )
            return [*tasks[:index], *tasks[index + 1 :]]

        self._mutate(_apply)
        logger.debug("Unregistered task %s from %s", task_id, self.path)

    def get(self, task_id: str) -> Task:
        tasks = self._load_tasks()
        index = _find(tasks, task_id)
        if index < 0:
            raise TaskNotFoundError(
                f"Task '{task_id}' not found in {self._scope}", context={"task": task_id}
            )
        return tasks[index]

    def contains(self, task_id: str) -> bool:
        return _find(self._load_tasks(), task_id) >= 0

    def list(self) -> list[Task]:
        return self._load_tasks()


class SpawnTaskStore(_TaskListStore):
    """Spawn-mode tasks of one repository.

    The document is created on first write and deleted when its last task
    is unregistered.
    """

    def __init__(self, state_dir: Path, repo_root: Path) -> None:
        self._repo_root = Path(repo_root).resolve()
        self._scope = f"spawned tasks of {self._repo_root.name}"
        super().__init__(JsonDocument(state_dir / "spawned" / f"{repo_key(self._repo_root)}.json"))

    @property
    def repo_root(self) -> Path:
        return self._repo_root

    def _load_tasks(self) -> list[Task]:
        document = self._document.read(SpawnDocument)
        return list(document.tasks) if document else []

    def _save_tasks(self, tasks: list[Task]) -> None:
        if tasks:
            self._document.write(SpawnDocument(tasks=tasks))
        elif self._document.exists():
            self._document.path.unlink()


class EpicTaskStore(_TaskListStore):
    """Tasks of a single epic, stored inside its epic document."""

    def __init__(self, document: JsonDocument, epic_id: str) -> None:
        super().__init__(document)
        self._epic_id = epic_id
        self._scope = f"epic '{epic_id}'"

    def epic(self) -> Epic:
        epic = self._document.read(Epic)
        if epic is None:
            raise EpicNotFoundError(f"No epic found: {self._epic_id}", context={"epic": self._epic_id})
        return epic

    def _load_tasks(self) -> list[Task]:
        return list(self.epic().tasks)

    def _save_tasks(self, tasks: list[Task]) -> None:
        epic = self.epic()
        self._document.write(
            epic.model_copy(update={"tasks": tasks, "last_updated": datetime.now(UTC)})
        )


class EpicStore:
    """Directory of epic documents."""

    def __init__(self, state_dir: Path) -> None:
        self._root = state_dir / "epics"

    @property
    def root(self) -> Path:
        return self._root

    def _document(self, epic_id: str) -> JsonDocument:
        filename = epic_id.replace(os.sep, "__")
        return JsonDocument(self._root / f"{filename}.json")

    def exists(self, epic_id: str) -> bool:
        return self._document(epic_id).exists()

    def create(self, epic: Epic) -> Epic:
        document = self._document(epic.epic_id)
        with document.locked():
            if document.exists():
                raise EpicExistsError(
                    f"Epic '{epic.epic_id}' already exists; clean it up first",
                    context={"epic": epic.epic_id},
                )
            document.write(epic)
        logger.debug("Created epic %s at %s", epic.epic_id, document.path)
        return epic

    def load(self, epic_id: str) -> Epic:
        return self.tasks(epic_id).epic()

    def tasks(self, epic_id: str) -> EpicTaskStore:
        return EpicTaskStore(self._document(epic_id), epic_id)

    def delete(self, epic_id: str) -> None:
        document = self._document(epic_id)
        if not document.exists():
            raise EpicNotFoundError(f"No epic found: {epic_id}", context={"epic": epic_id})
        document.delete()

    def epic_ids(self) -> list[str]:
        if not self._root.exists():
            return []
        ids: list[str] = []
        for path in sorted(self._root.glob("*.json")):
            epic = JsonDocument(path).read(Epic)
            if epic is not None:
                ids.append(epic.epic_id)
        return ids

    def find_task(self, task_id: str) -> str:
        """Return the id of the epic containing ``task_id``."""
        for epic_id in self.epic_ids():
            if self.tasks(epic_id).contains(task_id):
                return epic_id
        raise TaskNotFoundError(
            f"Task '{task_id}' not found in any epic", context={"task": task_id}
        )


__all__ = [
    "EpicStore",
    "EpicTaskStore",
    "JsonDocument",
    "SpawnTaskStore",
    "TaskStore",
    "repo_key",
]
