"""Epic-mode operations.

An epic is a dependency graph of tasks sharing one session and one
integration branch. Tasks without blockers start immediately; the rest
wait as ``blocked`` and get their workspace, branched from the integration
branch, when their last blocker is merged.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from wtspawn.core.result import (
    DirtyWorkspaceError,
    DuplicateTaskError,
    EpicExistsError,
    Err,
    Ok,
    WtError,
)
from wtspawn.orchestrator.coordinator import MergeOutcome, TaskCoordinator
from wtspawn.orchestrator.launcher import WorkerLauncher
from wtspawn.session.base import (
    SessionOrchestrator,
    SessionRef,
    WindowStatus,
    epic_session_name,
)
from wtspawn.tasks.dependencies import DependencyResolver
from wtspawn.tasks.models import Epic, Task, TaskStatus, WorkspaceRef
from wtspawn.tasks.store import EpicStore
from wtspawn.workspace.base import WorkspaceProvider

logger = logging.getLogger(__name__)


class EpicTaskInput(BaseModel):
    """One entry of an epic task file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    identifier: str = Field(..., min_length=1)
    title: str = ""
    description: str | None = None
    blocked_by: list[str] = Field(default_factory=list)


class EpicTaskFile(BaseModel):
    tasks: list[EpicTaskInput] = Field(default_factory=list)


def load_task_file(path: Path) -> list[EpicTaskInput]:
    """Parse ``{"tasks": [{"identifier", "title", "description", "blockedBy"}]}``."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise WtError(f"Cannot read task file {path}: {exc}") from exc
    try:
        parsed = EpicTaskFile.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise WtError(
            f"Task file {path} is not valid", context={"error": str(exc).splitlines()[0]}
        ) from exc
    if not parsed.tasks:
        raise WtError(f"Task file {path} lists no tasks")
    return parsed.tasks


def render_task_context(
    spec: EpicTaskInput, *, blocked_by: list[str], blocks: list[str], integration_branch: str
) -> str:
    """Markdown instructions written to a task's ``.wt-task`` file."""
    lines = [
        f"# Task: {spec.identifier} - {spec.title}".rstrip(" -"),
        "",
        "## Description",
        spec.description or "No description provided.",
        "",
        "## Dependencies",
    ]
    if blocked_by:
        lines.append(f"- Blocked by: {', '.join(blocked_by)}")
    else:
        lines.append("- Blocked by: (none - this task is independent)")
    if blocks:
        lines.append(f"- Blocks: {', '.join(blocks)}")
    lines += [
        "",
        "## Integration",
        f"- Your branch: {spec.identifier}",
        f"- Merge target: {integration_branch}",
        f"- When done, run: wt epic complete {spec.identifier}",
        "",
        "## Instructions",
        "Work on implementing the task described above. When you're finished:",
        "1. Commit your changes",
        f"2. Run: wt epic complete {spec.identifier}",
        "This will merge your work into the integration branch and unlock any dependent tasks.",
    ]
    return "\n".join(lines)


@dataclass
class EpicPlan:
    epic_id: str
    integration_branch: str
    session_name: str
    tasks: list[Task]
    started: list[str] = field(default_factory=list)
    blocked: list[str] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class EpicStatusReport:
    epic: Epic
    windows: dict[str, WindowStatus]


class EpicOrchestrator:
    """Entry points behind ``wt epic spawn/status/complete/cleanup``."""

    def __init__(
        self,
        *,
        epics: EpicStore,
        workspaces: WorkspaceProvider,
        sessions: SessionOrchestrator,
        launcher: WorkerLauncher,
        resolver: DependencyResolver | None = None,
    ) -> None:
        self._epics = epics
        self._workspaces = workspaces
        self._sessions = sessions
        self._launcher = launcher
        self._resolver = resolver or DependencyResolver()

    def _coordinator(self, epic: Epic) -> TaskCoordinator:
        return TaskCoordinator(
            store=self._epics.tasks(epic.epic_id),
            workspaces=self._workspaces,
            sessions=self._sessions,
            session=SessionRef(epic.session_ref),
            target=epic.integration_ref,
            launcher=self._launcher,
            resolver=self._resolver,
            retain_completed=True,
        )

    def plan(
        self,
        epic_id: str,
        specs: list[EpicTaskInput],
        integration_branch: str,
        auto: bool = False,
    ) -> EpicPlan:
        """Validate the graph and decide which tasks start now."""
        counts = Counter(spec.identifier for spec in specs)
        duplicates = sorted(name for name, count in counts.items() if count > 1)
        if duplicates:
            raise DuplicateTaskError(
                f"Epic '{epic_id}' lists task(s) more than once: {', '.join(duplicates)}",
                context={"epic": epic_id},
            )

        graph = self._resolver.validate(
            [
                Task(
                    identifier=s.identifier,
                    branch=s.identifier,
                    title=s.title or None,
                    blocked_by=s.blocked_by,
                    auto=auto,
                )
                for s in specs
            ]
        )
        blocks: dict[str, list[str]] = {task.identifier: [] for task in graph}
        for task in graph:
            for blocker in task.blocked_by:
                blocks[blocker].append(task.identifier)

        tasks: list[Task] = []
        started: list[str] = []
        blocked: list[str] = []
        for spec, task in zip(specs, graph, strict=True):
            is_blocked = self._resolver.is_blocked(task, graph)
            context = render_task_context(
                spec,
                blocked_by=task.blocked_by,
                blocks=blocks[task.identifier],
                integration_branch=integration_branch,
            )
            status = TaskStatus.BLOCKED if is_blocked else TaskStatus.PENDING
            tasks.append(task.model_copy(update={"context": context, "status": status}))
            (blocked if is_blocked else started).append(task.identifier)

        return EpicPlan(
            epic_id=epic_id,
            integration_branch=integration_branch,
            session_name=epic_session_name(epic_id),
            tasks=tasks,
            started=started,
            blocked=blocked,
        )

    async def spawn(
        self,
        epic_id: str,
        specs: list[EpicTaskInput],
        *,
        integration: WorkspaceRef,
        base_branch: str,
        auto: bool = False,
        dry_run: bool = False,
    ) -> EpicPlan:
        """Create the epic and start every task that has no open blockers.

        Args:
            epic_id: New epic identifier
            specs: Tasks in declaration order
            integration: Checkout whose current branch collects merged work
            base_branch: Branch the integration branch must differ from
            auto: Launch workers in unattended mode
            dry_run: Only compute the plan
        """
        if self._epics.exists(epic_id):
            raise EpicExistsError(
                f"Epic '{epic_id}' already exists; clean it up first", context={"epic": epic_id}
            )
        if integration.branch == base_branch:
            raise WtError(
                f"Integration branch would be the base branch '{base_branch}'; "
                "run epic spawn from a checkout on the epic's integration branch",
                context={"epic": epic_id},
            )

        plan = self.plan(epic_id, specs, integration.branch, auto=auto)
        if dry_run:
            plan.dry_run = True
            return plan

        # checkouts that exist already are adopted and survive a rollback
        fresh = [
            name for name in plan.started if (await self._workspaces.get(name)).unwrap() is None
        ]

        session = await self._sessions.ensure_session(plan.session_name)
        epic = self._epics.create(
            Epic(
                epic_id=epic_id,
                integration_branch=integration.branch,
                integration_ref=integration,
                session_ref=session.name,
                tasks=plan.tasks,
            )
        )
        logger.info("Created epic %s with %d task(s)", epic_id, len(plan.tasks))

        coordinator = self._coordinator(epic)
        try:
            for task in epic.tasks:
                if task.identifier in plan.started:
                    await coordinator.activate(task)
        except (WtError, OSError):
            await self._rollback(epic_id, session, fresh)
            raise
        return plan

    async def _rollback(self, epic_id: str, session: SessionRef, fresh: list[str]) -> None:
        """Undo a partially started epic: session, new checkouts and document."""
        await self._sessions.kill_session(session)
        for task in self._epics.load(epic_id).tasks:
            if task.identifier not in fresh or task.workspace_ref is None:
                continue
            result = await self._workspaces.remove(task.workspace_ref, force=True)
            if result.is_err():
                logger.warning(
                    "Could not remove workspace of %s at %s", task.identifier, task.workspace_ref.path
                )
        self._epics.delete(epic_id)
        logger.info("Rolled back epic %s", epic_id)

    async def status(self, epic_id: str) -> EpicStatusReport:
        """Live window state per task.

        Window refs of windows that no longer exist are cleared.
        """
        epic = self._epics.load(epic_id)
        session = SessionRef(epic.session_ref)
        store = self._epics.tasks(epic_id)
        windows: dict[str, WindowStatus] = {}
        stale = False
        for task in epic.tasks:
            status = await self._sessions.window_status(session, task.identifier)
            windows[task.identifier] = status
            if task.window_ref and status in (WindowStatus.NO_SESSION, WindowStatus.NO_WINDOW):
                store.set_window_ref(task.identifier, None)
                logger.debug("Cleared stale window of %s", task.identifier)
                stale = True
        if stale:
            epic = self._epics.load(epic_id)
        return EpicStatusReport(epic=epic, windows=windows)

    async def complete(self, task_id: str) -> MergeOutcome:
        """Merge a task into its epic's integration branch and unblock dependents."""
        epic = self._epics.load(self._epics.find_task(task_id))
        return await self._coordinator(epic).merge(task_id)

    async def cleanup(self, epic_id: str, force: bool = False) -> list[str]:
        """Kill the epic's session, remove task workspaces and delete the epic.

        Returns the identifiers whose workspaces were removed.
        """
        epic = self._epics.load(epic_id)
        owned = [(t.identifier, t.workspace_ref) for t in epic.tasks if t.workspace_ref is not None]

        if not force:
            dirty: list[str] = []
            for identifier, ref in owned:
                if ref.path.exists() and (await self._workspaces.is_dirty(ref)).unwrap():
                    dirty.append(identifier)
            if dirty:
                raise DirtyWorkspaceError(
                    f"Epic '{epic_id}' has uncommitted changes in: {', '.join(dirty)}; "
                    "commit them or pass --force",
                    context={"epic": epic_id},
                )

        await self._sessions.kill_session(SessionRef(epic.session_ref))

        removed: list[str] = []
        for identifier, ref in owned:
            match await self._workspaces.remove(ref, force=force):
                case Ok(_):
                    removed.append(identifier)
                case Err(err):
                    raise err

        self._epics.delete(epic_id)
        logger.info("Cleaned up epic %s", epic_id)
        return removed


__all__ = [
    "EpicOrchestrator",
    "EpicPlan",
    "EpicStatusReport",
    "EpicTaskInput",
    "load_task_file",
    "render_task_context",
]
