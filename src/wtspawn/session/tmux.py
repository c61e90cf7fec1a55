"""tmux-backed session orchestrator.

Each task gets one window named after the task identifier. The window id
reported by tmux (``@7``) is the opaque handle stored as ``window_ref``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from pathlib import Path

from wtspawn.core.result import (
    Err,
    Ok,
    Result,
    SessionUnavailableError,
    TaskNotFoundError,
    WindowAlreadyExistsError,
)
from wtspawn.session.base import SessionRef, WindowStatus

logger = logging.getLogger(__name__)

# Window created together with a new session; removed once a task window exists.
PLACEHOLDER_WINDOW = "_wt"


async def _run_tmux(*args: str) -> Result[str, SessionUnavailableError]:
    """Run tmux with asyncio and return stdout as text, wrapping failures."""
    try:
        process = await asyncio.create_subprocess_exec(
            "tmux",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
        )
    except FileNotFoundError:
        return Err(SessionUnavailableError("tmux executable not found on PATH"))
    except OSError as exc:
        return Err(SessionUnavailableError("Failed to start tmux", context={"error": str(exc)}))

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        return Err(
            SessionUnavailableError(
                detail or f"tmux {' '.join(args)} failed",
                context={"args": list(args), "returncode": process.returncode},
            )
        )
    return Ok(stdout.decode("utf-8", errors="replace"))


class TmuxOrchestrator:
    """Session orchestrator driving tmux through its command-line interface."""

    def __init__(self, agent_process_names: Sequence[str] = ("claude", "node")) -> None:
        self._agent_process_names = frozenset(agent_process_names)

    async def session_exists(self, session: SessionRef) -> bool:
        result = await _run_tmux("has-session", "-t", f"={session.name}")
        return result.is_ok()

    async def ensure_session(self, name: str) -> SessionRef:
        session = SessionRef(name)
        if await self.session_exists(session):
            return session

        match await _run_tmux("new-session", "-d", "-s", name, "-n", PLACEHOLDER_WINDOW):
            case Ok(_):
                logger.debug("Created tmux session %s", name)
                return session
            case Err(err):
                raise SessionUnavailableError(
                    f"Cannot create tmux session '{name}': {err.message}",
                    context={"session": name},
                ) from err

    async def _windows(self, session: SessionRef) -> dict[str, str]:
        """Map window name to window id; empty when the session is absent."""
        match await _run_tmux(
            "list-windows", "-t", f"={session.name}", "-F", "#{window_name}\t#{window_id}"
        ):
            case Ok(output):
                windows: dict[str, str] = {}
                for line in output.splitlines():
                    name, _, window_id = line.rpartition("\t")
                    if window_id:
                        windows[name] = window_id
                return windows
            case Err(_):
                return {}

    async def list_windows(self, session: SessionRef) -> list[str]:
        windows = await self._windows(session)
        return [name for name in windows if name != PLACEHOLDER_WINDOW]

    async def create_window(
        self, session: SessionRef, task_id: str, work_dir: Path, startup_command: str
    ) -> str:
        windows = await self._windows(session)
        if task_id in windows:
            raise WindowAlreadyExistsError(
                f"A window for task '{task_id}' already exists in session '{session.name}'",
                context={"task": task_id, "window": windows[task_id]},
            )

        match await _run_tmux(
            "new-window",
            "-d",
            "-P",
            "-F",
            "#{window_id}",
            "-t",
            f"={session.name}:",
            "-n",
            task_id,
            "-c",
            str(work_dir),
        ):
            case Ok(output):
                window_id = output.strip()
            case Err(err):
                raise SessionUnavailableError(
                    f"Cannot create window for task '{task_id}': {err.message}",
                    context={"session": session.name},
                ) from err

        match await _run_tmux("send-keys", "-t", window_id, startup_command, "Enter"):
            case Err(err):
                await _run_tmux("kill-window", "-t", window_id)
                raise SessionUnavailableError(
                    f"Cannot start worker for task '{task_id}': {err.message}",
                    context={"session": session.name, "window": window_id},
                ) from err
            case Ok(_):
                pass

        placeholder = windows.get(PLACEHOLDER_WINDOW)
        if placeholder:
            await _run_tmux("kill-window", "-t", placeholder)

        logger.debug("Created window %s for %s in %s", window_id, task_id, session.name)
        return window_id

    async def kill_window(self, session: SessionRef, task_id: str) -> None:
        window_id = (await self._windows(session)).get(task_id)
        if window_id is None:
            return
        # A window that vanished between listing and killing is already gone.
        if (await _run_tmux("kill-window", "-t", window_id)).is_ok():
            logger.debug("Killed window %s (%s)", window_id, task_id)

    async def window_status(self, session: SessionRef, task_id: str) -> WindowStatus:
        if not await self.session_exists(session):
            return WindowStatus.NO_SESSION

        window_id = (await self._windows(session)).get(task_id)
        if window_id is None:
            return WindowStatus.NO_WINDOW

        match await _run_tmux("display-message", "-p", "-t", window_id, "#{pane_current_command}"):
            case Ok(output) if output.strip() in self._agent_process_names:
                return WindowStatus.RUNNING
            case _:
                return WindowStatus.EXITED

    async def attach(self, session: SessionRef, task_id: str | None = None) -> None:
        if not await self.session_exists(session):
            raise SessionUnavailableError(
                f"No session '{session.name}' exists; spawn a task first",
                context={"session": session.name},
            )

        if task_id is not None:
            window_id = (await self._windows(session)).get(task_id)
            if window_id is None:
                raise TaskNotFoundError(
                    f"No window for task '{task_id}' in session '{session.name}'",
                    context={"task": task_id},
                )
            (await _run_tmux("select-window", "-t", window_id)).unwrap()

        if os.environ.get("TMUX"):
            (await _run_tmux("switch-client", "-t", f"={session.name}")).unwrap()
            return

        try:
            process = await asyncio.create_subprocess_exec(
                "tmux", "attach-session", "-t", f"={session.name}"
            )
        except OSError as exc:
            raise SessionUnavailableError(
                "Failed to attach to tmux", context={"error": str(exc)}
            ) from exc
        await process.wait()

    async def kill_session(self, session: SessionRef) -> None:
        if await self.session_exists(session):
            await _run_tmux("kill-session", "-t", f"={session.name}")
            logger.debug("Killed tmux session %s", session.name)


__all__ = [
    "PLACEHOLDER_WINDOW",
    "TmuxOrchestrator",
]
