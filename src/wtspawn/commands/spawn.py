from __future__ import annotations

import asyncio

import typer
from rich import box
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from wtspawn.core.console import console, status_markup
from wtspawn.core.decorators import handle_exceptions
from wtspawn.orchestrator.coordinator import MergeOutcome, ReviewReport
from wtspawn.orchestrator.factory import open_spawn
from wtspawn.orchestrator.spawn import TaskRow
from wtspawn.session.base import SessionRef
from wtspawn.tasks.models import Task


def _render_review(report: ReviewReport) -> None:
    summary = Table(title=f"Review: {report.task_id}", box=box.SIMPLE)
    summary.add_column("Field", style="cyan", no_wrap=True)
    summary.add_column("Value", style="white")
    summary.add_row("Branch", report.branch)
    summary.add_row("Base", report.base)
    summary.add_row("Commits ahead", str(report.commit_count))
    summary.add_row("Dirty", "[yellow]yes[/]" if report.dirty else "[green]no[/]")
    console.print(summary)

    if report.commit_log:
        commits = Table(title="Commits", box=box.SIMPLE_HEAVY, expand=True)
        commits.add_column("SHA", style="cyan", no_wrap=True)
        commits.add_column("Date", style="dim", no_wrap=True)
        commits.add_column("Author", style="white", no_wrap=True)
        commits.add_column("Summary", style="white")
        for commit in report.commit_log:
            commits.add_row(
                commit.hexsha[:8],
                f"{commit.committed_datetime:%Y-%m-%d %H:%M}",
                commit.author_name,
                commit.summary,
            )
        console.print(commits)

    if report.diff is not None:
        if report.diff.strip():
            console.print(Syntax(report.diff, "diff", theme="ansi_dark", word_wrap=True))
        else:
            console.print("[dim]No changes against the base branch.[/dim]")
    elif report.diff_summary.strip():
        console.print(Panel(report.diff_summary.rstrip(), title="Diffstat", box=box.SIMPLE))
    else:
        console.print("[dim]No changes against the base branch.[/dim]")


@handle_exceptions
def spawn(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Task name; also the branch and worktree name."),
    context: str | None = typer.Option(
        None, "--context", "-c", help="Instructions handed to the agent as its first prompt."
    ),
    auto: bool = typer.Option(
        False, "--auto", help="Run the agent unattended (skips permission prompts)."
    ),
) -> None:
    """Create a worktree for NAME and start an agent in a new tmux window."""
    state = ctx.obj

    async def _spawn() -> tuple[SessionRef, Task]:
        orchestrator = await open_spawn(state.config)
        task = await orchestrator.spawn(name, context=context, auto=auto or state.config.spawn.auto)
        return orchestrator.session, task

    session, task = asyncio.run(_spawn())
    console.print(f"[green]Spawned[/green] {task.identifier} in {task.workspace_ref.path}")
    console.print(f"[dim]Attach with: wt attach {task.identifier} (session {session.name})[/dim]")


@handle_exceptions
def ps(ctx: typer.Context) -> None:
    """List spawned tasks with their window status and branch state."""
    state = ctx.obj

    async def _ps() -> list[TaskRow]:
        orchestrator = await open_spawn(state.config)
        return await orchestrator.ps()

    rows = asyncio.run(_ps())
    if not rows:
        console.print("[yellow]No spawned tasks.[/yellow]")
        return

    table = Table(title="Spawned tasks", box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Branch", style="white", no_wrap=True)
    table.add_column("Commits", style="white", justify="right")
    table.add_column("Dirty", style="white", no_wrap=True)

    for row in rows:
        commits = "?" if row.commits is None else str(row.commits)
        if row.dirty is None:
            dirty = "?"
        else:
            dirty = "[yellow]dirty[/]" if row.dirty else "[green]clean[/]"
        table.add_row(row.name, status_markup(row.status.value), row.branch, commits, dirty)

    console.print(table)


@handle_exceptions
def attach(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="Task window to select before attaching."),
) -> None:
    """Attach to the spawn session, optionally focusing one task's window."""
    state = ctx.obj

    async def _attach() -> None:
        orchestrator = await open_spawn(state.config)
        await orchestrator.attach(name)

    asyncio.run(_attach())


@handle_exceptions
def review(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Task to review."),
    full: bool = typer.Option(False, "--full", help="Show the full diff instead of the diffstat."),
) -> None:
    """Show commits and changes of a task against the base branch."""
    state = ctx.obj

    async def _review() -> ReviewReport:
        orchestrator = await open_spawn(state.config)
        return await orchestrator.review(name, full=full)

    _render_review(asyncio.run(_review()))


@handle_exceptions
def merge(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Task to merge."),
) -> None:
    """Merge a task's branch into the current branch and retire the task."""
    state = ctx.obj

    async def _merge() -> MergeOutcome:
        orchestrator = await open_spawn(state.config)
        return await orchestrator.merge(name)

    outcome = asyncio.run(_merge())
    if outcome.commit is None:
        console.print(f"[yellow]{outcome.task_id} was already merged;[/yellow] finished retiring it")
    else:
        console.print(
            f"[green]Merged[/green] {outcome.task_id} into {outcome.target_branch} ({outcome.commit[:8]})"
        )
    for started in outcome.activated:
        console.print(f"[cyan]Started[/cyan] {started}")
    console.print(
        f"[dim]The worktree is kept; remove it with: git worktree remove {state.config.workspace.worktrees_dirname}/{name}[/dim]"
    )


@handle_exceptions
def kill(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Task to stop."),
) -> None:
    """Kill a task's window and forget it. The worktree is kept."""
    state = ctx.obj

    async def _kill() -> bool:
        orchestrator = await open_spawn(state.config)
        return await orchestrator.kill(name)

    if asyncio.run(_kill()):
        console.print(f"[green]Killed[/green] {name}")
    else:
        console.print(f"[yellow]Task {name} was not running.[/yellow]")
