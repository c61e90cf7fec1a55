"""Console output and logging configuration.

Provides Rich-based console output and logging setup:
    - console: Main Rich console for stdout
    - stderr_console: Rich console for stderr, which also carries log records
    - WT_THEME: Styles for task and window states (``wt.status.<value>``)
    - status_markup(): Render a task or window status value with its style
    - setup_logging(): Configure logging with Rich handler
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.markup import escape
from rich.theme import Theme

WT_THEME = Theme(
    {
        "wt.status.pending": "white",
        "wt.status.blocked": "yellow",
        "wt.status.in_progress": "blue",
        "wt.status.completed": "green",
        "wt.status.running": "green",
        "wt.status.exited": "yellow",
        "wt.status.no-window": "red",
        "wt.status.no-session": "red",
        "wt.window": "magenta",
        "wt.session": "bold cyan",
        "wt.sha": "cyan",
    }
)


class WtHighlighter(RegexHighlighter):
    """Highlights tmux window ids, wt session names and commit hashes in log lines."""

    base_style = "wt."
    highlights = [
        r"(?P<window>@\d+)\b",
        r"\b(?P<session>wt-[\w.-]+)",
        r"\b(?P<sha>[0-9a-f]{40})\b",
    ]


console = Console(theme=WT_THEME)
stderr_console = Console(stderr=True, theme=WT_THEME)


def status_markup(value: str) -> str:
    """Markup for a task or window status, e.g. ``in_progress`` or ``no-window``."""
    style = f"wt.status.{value}"
    if style not in WT_THEME.styles:
        return escape(value)
    return f"[{style}]{escape(value)}[/]"


def _normalize_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return int(level)


def setup_logging(level: str | int = logging.INFO, verbose: bool = False) -> logging.Logger:
    """Configure logging with a Rich handler and return the app logger.

    Log arguments carry task names, branches and paths, so markup is off.
    """
    numeric_level = logging.DEBUG if verbose else _normalize_level(level)

    handler = RichHandler(
        console=stderr_console,
        markup=False,
        highlighter=WtHighlighter(),
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        show_path=verbose,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(numeric_level)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)
    root.addHandler(handler)

    logger = logging.getLogger("wtspawn")
    logger.handlers.clear()
    logger.setLevel(numeric_level)
    logger.addHandler(handler)

    return logger
