from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter
from types import FrameType

import typer
from rich import box
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from . import __version__
from .core.config import AppConfig, ConfigLoadResult, load_config
from .core.console import console, setup_logging
from .core.diagnostics import run_diagnostics_suite
from .core.registry import discover_commands

app = typer.Typer(help="wt: spawn coding agents into isolated worktrees and merge their work.")
logger = logging.getLogger(__name__)

_registered = False


class ApplicationLifecycle:
    """Encapsulates CLI lifecycle state and signal handling."""

    def __init__(self) -> None:
        self._shutdown_requested: bool = False

    def handle_shutdown(self, signum: int, frame: FrameType | None) -> None:
        """Handle SIGINT/SIGTERM.

        Task documents are replaced atomically, so an interrupted command
        leaves either the old or the new state. Half-created worktrees may
        remain.
        """
        if self._shutdown_requested:
            console.print("\n[red]Force exit - manual cleanup may be needed:[/red]")
            console.print("  git worktree prune")
            raise SystemExit(128 + signum)

        self._shutdown_requested = True
        console.print("\n[yellow]Interrupted.[/yellow] Check task state with:\n  wt ps")
        console.print("[yellow]If stale worktrees remain, run:[/yellow]\n  git worktree prune")
        raise SystemExit(128 + signum)

    def register_signal_handlers(self) -> None:
        signal.signal(signal.SIGINT, self.handle_shutdown)
        signal.signal(signal.SIGTERM, self.handle_shutdown)


@dataclass
class AppState:
    config: AppConfig
    config_meta: ConfigLoadResult
    logger: logging.Logger
    lifecycle: ApplicationLifecycle = field(default=None)  # type: ignore[assignment]


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", help="Path to a wt config file (TOML or JSON)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    # load_config never raises; a broken file yields defaults plus meta.error
    loaded_config, meta = load_config(config_path=config)
    logger = setup_logging(level=loaded_config.log_level, verbose=verbose)

    lifecycle = ApplicationLifecycle()
    lifecycle.register_signal_handlers()

    ctx.obj = AppState(config=loaded_config, config_meta=meta, logger=logger, lifecycle=lifecycle)

    if meta.error:
        console.print(
            Panel(
                f"[bold red]Configuration Error - Safe Mode Active[/bold red]\n\n"
                f"Failed to load {meta.path}:\n{escape(meta.error)}\n\n"
                f"[yellow]Using default settings.[/yellow]",
                border_style="red",
            )
        )
    else:
        logger.debug(
            "Loaded configuration from %s (env overrides: %s)",
            meta.path,
            sorted(meta.env_overrides),
        )


@app.command("doctor")
def doctor(ctx: typer.Context) -> None:
    """Check git, tmux, the agent binary and the task store."""
    state: AppState = ctx.obj
    diag_results, tool_results = asyncio.run(
        run_diagnostics_suite(config=state.config, load_result=state.config_meta)
    )

    tree = Tree("System Health")
    style_map = {"ok": "green", "warn": "yellow", "error": "red", "missing": "red"}
    diag_branch = tree.add("Deep Checks")
    for name, status, message in diag_results:
        style = style_map.get(status, "white")
        diag_branch.add(f"[{style}]{status}[/{style}] {name}: {message}")

    tools_branch = tree.add("Binaries")
    for result in tool_results:
        style = style_map.get(result.status, "white")
        message = result.version or result.message or result.tool.install_hint or ""
        tools_branch.add(
            f"[{style}]{result.status}[/{style}] {result.tool.name} ({result.tool.binary}) {message}".strip()
        )

    console.print(tree)

    missing = [r for r in tool_results if r.tool.required and r.status != "ok"]
    if missing or any(status == "error" for _, status, _ in diag_results):
        raise typer.Exit(code=1)


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Show the active configuration and where it came from."""
    state: AppState = ctx.obj
    config = state.config
    meta = state.config_meta

    table = Table(title="Config", box=box.SIMPLE, expand=True)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    for group, values in config.model_dump().items():
        if isinstance(values, dict):
            for key, value in values.items():
                table.add_row(f"{group}.{key}", str(value))
        else:
            table.add_row(group, str(values))

    console.print(table)

    meta_lines = [
        f"Path: {meta.path}",
        "File loaded: yes" if meta.file_loaded else "File loaded: no (using defaults + env)",
    ]
    if meta.env_overrides:
        meta_lines.append("Env overrides: " + ", ".join(sorted(meta.env_overrides)))

    console.print(Panel("\n".join(meta_lines), title="Config source", box=box.SIMPLE))


@app.command("version")
def show_version() -> None:
    """Print the wtspawn version."""
    console.print(__version__)


def _register_commands() -> None:
    global _registered
    if _registered:
        return
    commands_path = Path(__file__).resolve().parent / "commands"
    typer_modules, function_commands = discover_commands(commands_path)

    for name, module in typer_modules:
        app.add_typer(module.app, name=name)

    for spec in function_commands:
        app.command(spec.name)(spec.handler)
    _registered = True


def _register_commands_with_timing() -> None:
    start = perf_counter()
    _register_commands()
    logger.debug("Command registry initialized in %.3f seconds", perf_counter() - start)


_register_commands_with_timing()


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
