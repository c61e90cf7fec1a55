"""Session orchestrator contract.

A session is one multiplexer session shared by many task windows. Each task
owns at most one window, addressed by the task identifier inside its
session. Callers always pass the SessionRef explicitly; there is no ambient
current session.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from wtspawn.tasks.store import repo_key

_UNSAFE_NAME_CHARS = re.compile(r"[.:\s]")


class WindowStatus(str, Enum):
    """Observed state of a task's window."""

    NO_SESSION = "no-session"
    NO_WINDOW = "no-window"
    RUNNING = "running"
    EXITED = "exited"


@dataclass(frozen=True)
class SessionRef:
    name: str


def _safe_name(raw: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("-", raw)


def pooled_session_name(repo_root: Path) -> str:
    """Session shared by all spawn-mode tasks of one repository.

    The repository key suffix keeps same-named repositories apart.
    """
    resolved = Path(repo_root).resolve()
    return _safe_name(f"wt-{resolved.name}-{repo_key(resolved)[:8]}")


def epic_session_name(epic_id: str) -> str:
    return _safe_name(f"wt-epic-{epic_id}")


class SessionOrchestrator(Protocol):
    """Window lifecycle operations the coordinators depend on."""

    async def ensure_session(self, name: str) -> SessionRef: ...

    async def session_exists(self, session: SessionRef) -> bool: ...

    async def create_window(
        self, session: SessionRef, task_id: str, work_dir: Path, startup_command: str
    ) -> str: ...

    async def kill_window(self, session: SessionRef, task_id: str) -> None: ...

    async def window_status(self, session: SessionRef, task_id: str) -> WindowStatus: ...

    async def list_windows(self, session: SessionRef) -> list[str]: ...

    async def attach(self, session: SessionRef, task_id: str | None = None) -> None: ...

    async def kill_session(self, session: SessionRef) -> None: ...


__all__ = [
    "SessionOrchestrator",
    "SessionRef",
    "WindowStatus",
    "epic_session_name",
    "pooled_session_name",
]
