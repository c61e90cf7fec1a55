"""System diagnostics and health checks.

Provides diagnostic checks for what wt depends on:
    - External tool availability (git, tmux, the agent binary)
    - Configuration validation
    - State directory and task document health
"""

from __future__ import annotations

import asyncio
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass

from pydantic import BaseModel, Field

from wtspawn.core.config import AppConfig, ConfigLoadResult
from wtspawn.core.result import StoreCorruptError
from wtspawn.tasks.models import Epic, SpawnDocument
from wtspawn.tasks.store import JsonDocument


class ExternalTool(BaseModel):
    name: str
    binary: str
    version_args: list[str] = Field(default_factory=lambda: ["--version"])
    required: bool = True
    install_hint: str | None = None


@dataclass
class ToolCheck:
    tool: ExternalTool
    status: str
    version: str | None
    message: str | None = None


class DiagnosticCheck(ABC):
    name: str

    @abstractmethod
    async def run(self) -> tuple[str, str]:
        """Run the diagnostic and return (status, message)."""


class ConfigCheck(DiagnosticCheck):
    def __init__(self, load_result: ConfigLoadResult | None) -> None:
        self.load_result = load_result
        self.name = "Config"

    async def run(self) -> tuple[str, str]:
        if self.load_result is None:
            return "warn", "Configuration metadata unavailable."
        if self.load_result.error:
            return "error", self.load_result.error
        if not self.load_result.file_loaded:
            return "ok", f"No config file at {self.load_result.path}; using defaults."
        return "ok", f"Loaded {self.load_result.path}."


class StateDirCheck(DiagnosticCheck):
    """Checks the state directory is writable and every task document parses."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self.name = "State"

    async def run(self) -> tuple[str, str]:
        state_dir = self.config.store.state_dir
        if not state_dir.exists():
            return "error", f"State directory missing: {state_dir}"
        if not os.access(state_dir, os.W_OK):
            return "error", f"State directory not writable: {state_dir}"

        documents = [
            *((path, SpawnDocument) for path in sorted((state_dir / "spawned").glob("*.json"))),
            *((path, Epic) for path in sorted((state_dir / "epics").glob("*.json"))),
        ]
        corrupt: list[str] = []
        for path, model in documents:
            try:
                JsonDocument(path).read(model)
            except StoreCorruptError:
                corrupt.append(path.name)

        if corrupt:
            return "error", f"Corrupt task documents: {', '.join(corrupt)}"
        return "ok", f"{len(documents)} task document(s) in {state_dir}"


def default_tools(config: AppConfig) -> list[ExternalTool]:
    agent_binary = config.spawn.agent_command.split()[0] if config.spawn.agent_command else "claude"
    return [
        ExternalTool(
            name="Git", binary="git", install_hint="Install via your package manager (brew, apt, etc.)"
        ),
        ExternalTool(
            name="tmux",
            binary="tmux",
            version_args=["-V"],
            install_hint="Install via your package manager (brew, apt, etc.)",
        ),
        ExternalTool(
            name="Agent",
            binary=agent_binary,
            install_hint="npm install -g @anthropic-ai/claude-code",
            required=False,
        ),
    ]


async def _check_tool(tool: ExternalTool) -> ToolCheck:
    resolved = shutil.which(tool.binary)
    if not resolved:
        return ToolCheck(tool=tool, status="missing", version=None, message=tool.install_hint)

    try:
        process = await asyncio.create_subprocess_exec(
            resolved,
            *tool.version_args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
        )
    except FileNotFoundError:
        return ToolCheck(tool=tool, status="missing", version=None, message=tool.install_hint)

    stdout, stderr = await process.communicate()
    output = (stdout or b"").decode().strip() or (stderr or b"").decode().strip()
    version = output.splitlines()[0] if output else None

    if process.returncode != 0:
        return ToolCheck(
            tool=tool, status="error", version=version, message=output or "version command failed"
        )

    return ToolCheck(tool=tool, status="ok", version=version, message=None)


async def _run_tool_checks(tools: list[ExternalTool]) -> list[ToolCheck]:
    return await asyncio.gather(*(_check_tool(tool) for tool in tools))


async def _run_deep_checks(
    config: AppConfig, load_result: ConfigLoadResult | None
) -> list[tuple[str, str, str]]:
    diag_checks: list[DiagnosticCheck] = [ConfigCheck(load_result), StateDirCheck(config)]
    results = await asyncio.gather(*(check.run() for check in diag_checks))
    return [
        (check.name, status, message)
        for check, (status, message) in zip(diag_checks, results, strict=True)
    ]


async def run_diagnostics_suite(
    config: AppConfig, load_result: ConfigLoadResult | None
) -> tuple[list[tuple[str, str, str]], list[ToolCheck]]:
    """Run deep checks and tool checks in parallel."""
    return await asyncio.gather(
        _run_deep_checks(config, load_result),
        _run_tool_checks(default_tools(config)),
    )


__all__ = [
    "ExternalTool",
    "ToolCheck",
    "run_diagnostics_suite",
]
