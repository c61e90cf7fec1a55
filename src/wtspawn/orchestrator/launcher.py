"""Worker launch preparation.

Writes the task's scratch files into its checkout and builds the shell
line typed into the task window. The first prompt is the repository's
agent guidance (when its agents directory has an ``INDEX.md``) followed
by the task context:

    # Agent Context

    ## Index
    ...
    ## <guide name>
    ...

    # Task

    <context>
"""

from __future__ import annotations

import shlex
from pathlib import Path

from wtspawn.core.config import SpawnConfig
from wtspawn.tasks.models import Task
from wtspawn.workspace.base import PROMPT_FILE, TASK_FILE

AGENTS_INDEX = "INDEX.md"


def resolve_agents_dir(repo_root: Path, configured: Path) -> Path:
    """Resolve the configured agents directory against the repository root."""
    configured = configured.expanduser()
    return configured if configured.is_absolute() else repo_root / configured


def load_agents_context(agents_dir: Path) -> str | None:
    """Concatenate the agent guides, ``INDEX.md`` first, the rest sorted by name.

    Returns None unless the directory holds an ``INDEX.md``.
    """
    index = agents_dir / AGENTS_INDEX
    if not index.is_file():
        return None

    sections = [f"## Index\n\n{index.read_text(encoding='utf-8').strip()}"]
    for guide in sorted(agents_dir.glob("*.md")):
        if guide.name == AGENTS_INDEX or not guide.is_file():
            continue
        sections.append(f"## {guide.stem}\n\n{guide.read_text(encoding='utf-8').strip()}")
    return "\n\n".join(sections)


def build_prompt(context: str, agents_context: str | None = None) -> str:
    parts: list[str] = []
    if agents_context:
        parts.append(f"# Agent Context\n\n{agents_context}")
    if context:
        parts.append(f"# Task\n\n{context}")
    return "\n\n".join(parts)


class WorkerLauncher:
    def __init__(self, config: SpawnConfig, agents_dir: Path | None = None) -> None:
        self._config = config
        self._agents_dir = agents_dir

    def command(self, *, auto: bool, with_prompt: bool) -> str:
        """Shell line starting the agent, reading its first prompt from the prompt file."""
        parts = [shlex.quote(part) for part in shlex.split(self._config.agent_command)]
        if auto and self._config.auto_flag:
            parts.append(shlex.quote(self._config.auto_flag))
        line = " ".join(parts)
        if with_prompt:
            line += f' "$(cat {PROMPT_FILE})"'
        return line

    def prompt(self, context: str) -> str:
        agents_context = load_agents_context(self._agents_dir) if self._agents_dir else None
        return build_prompt(context, agents_context)

    def prepare(self, work_dir: Path, task: Task) -> str:
        """Write the task's context files and return its startup command."""
        context = (task.context or "").strip()
        if context:
            (work_dir / TASK_FILE).write_text(context + "\n", encoding="utf-8")
        prompt = self.prompt(context)
        if prompt:
            (work_dir / PROMPT_FILE).write_text(prompt + "\n", encoding="utf-8")
        return self.command(auto=task.auto, with_prompt=bool(prompt))


__all__ = [
    "WorkerLauncher",
    "build_prompt",
    "load_agents_context",
    "resolve_agents_dir",
]
