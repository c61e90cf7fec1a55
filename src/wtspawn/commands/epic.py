from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich import box
from rich.panel import Panel
from rich.table import Table

from wtspawn.core.console import console, status_markup
from wtspawn.core.decorators import handle_exceptions
from wtspawn.orchestrator.coordinator import MergeOutcome
from wtspawn.orchestrator.epic import EpicPlan, EpicStatusReport, load_task_file
from wtspawn.orchestrator.factory import integration_context, open_epic

app = typer.Typer(help="Run a dependency graph of tasks against one integration branch.")


def _render_plan(plan: EpicPlan) -> None:
    title = f"Epic {plan.epic_id}" + (" (dry run)" if plan.dry_run else "")
    table = Table(title=title, box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Action", no_wrap=True)
    table.add_column("Blocked by", style="yellow")
    for task in plan.tasks:
        action = "[green]start[/]" if task.identifier in plan.started else "[yellow]wait[/]"
        table.add_row(task.identifier, task.title or "", action, ", ".join(task.blocked_by))
    console.print(table)
    console.print(
        f"[dim]Integration branch: {plan.integration_branch}  Session: {plan.session_name}[/dim]"
    )


@app.command("spawn")
@handle_exceptions
def epic_spawn(
    ctx: typer.Context,
    epic_id: str = typer.Argument(..., help="Identifier of the new epic."),
    tasks: Path = typer.Option(
        ..., "--tasks", "-t", help="JSON file with a 'tasks' list (identifier, title, description, blockedBy)."
    ),
    auto: bool = typer.Option(False, "--auto", help="Run the agents unattended."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the plan without creating anything."),
) -> None:
    """Create an epic and start every task that has no blockers."""
    state = ctx.obj
    specs = load_task_file(tasks.expanduser())

    async def _spawn() -> EpicPlan:
        integration, base = await integration_context(state.config)
        orchestrator = await open_epic(state.config)
        return await orchestrator.spawn(
            epic_id,
            specs,
            integration=integration,
            base_branch=base,
            auto=auto or state.config.spawn.auto,
            dry_run=dry_run,
        )

    _render_plan(asyncio.run(_spawn()))


@app.command("status")
@handle_exceptions
def epic_status(
    ctx: typer.Context,
    epic_id: str = typer.Argument(..., help="Epic to show."),
) -> None:
    """Show an epic's tasks with their status and window state."""
    state = ctx.obj

    async def _status() -> EpicStatusReport:
        orchestrator = await open_epic(state.config)
        return await orchestrator.status(epic_id)

    report = asyncio.run(_status())
    epic = report.epic

    console.print(
        Panel(
            f"Integration branch: {epic.integration_branch}\n"
            f"Integration checkout: {epic.integration_ref.path}\n"
            f"tmux session: {epic.session_ref}\n"
            f"Created: {epic.created:%Y-%m-%d %H:%M}",
            title=f"Epic {epic.epic_id}",
            box=box.SIMPLE,
        )
    )

    table = Table(box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Status", no_wrap=True)
    table.add_column("Window", no_wrap=True)
    table.add_column("Blocked by", style="yellow")
    for task in epic.tasks:
        window = report.windows.get(task.identifier)
        table.add_row(
            task.identifier,
            task.title or "",
            status_markup(task.status.value),
            status_markup(window.value) if window else "",
            ", ".join(task.blocked_by),
        )
    console.print(table)


@app.command("complete")
@handle_exceptions
def epic_complete(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task whose work is finished."),
) -> None:
    """Merge a task into its epic's integration branch and start unblocked tasks."""
    state = ctx.obj

    async def _complete() -> MergeOutcome:
        orchestrator = await open_epic(state.config)
        return await orchestrator.complete(task_id)

    outcome = asyncio.run(_complete())
    if outcome.commit is None:
        console.print(
            f"[yellow]{outcome.task_id} was already merged into {outcome.target_branch};[/yellow] "
            "resumed starting its dependents"
        )
    else:
        console.print(
            f"[green]Completed[/green] {outcome.task_id}: merged into {outcome.target_branch} "
            f"({outcome.commit[:8]})"
        )
    for started in outcome.activated:
        console.print(f"[cyan]Unblocked[/cyan] {started}")


@app.command("cleanup")
@handle_exceptions
def epic_cleanup(
    ctx: typer.Context,
    epic_id: str = typer.Argument(..., help="Epic to remove."),
    force: bool = typer.Option(False, "--force", "-f", help="Remove worktrees with uncommitted changes."),
) -> None:
    """Kill the epic's session, remove its worktrees and forget the epic."""
    state = ctx.obj

    async def _cleanup() -> list[str]:
        orchestrator = await open_epic(state.config)
        return await orchestrator.cleanup(epic_id, force=force)

    removed = asyncio.run(_cleanup())
    console.print(f"[green]Cleaned up[/green] epic {epic_id} ({len(removed)} worktree(s) removed)")
