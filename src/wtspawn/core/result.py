"""
Unified Result types and error hierarchy for wtspawn.

This module provides:
1. Result[T, E] type for explicit error handling at the adapter seams
2. Domain-specific exception hierarchy, each kind with its own exit code

Usage:
    from wtspawn.core.result import Ok, Err, Result, GitError

    async def current_branch(path) -> Result[str, GitError]:
        if not path.exists():
            return Err(GitError("Checkout missing", context={"path": str(path)}))
        return Ok("main")

    match await current_branch(path):
        case Ok(branch):
            print(branch)
        case Err(err):
            print(err)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E", bound=Exception)
F = TypeVar("F", bound=Exception)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Represents a successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Return the contained value."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return the contained value (ignores default for Ok)."""
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply a function to the contained value."""
        return Ok(fn(self.value))

    def map_err(self, fn: Callable[[E], F]) -> Ok[T]:
        """No-op for Ok - returns self unchanged."""
        return self

    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Chain operations that may fail."""
        return fn(self.value)


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Represents a failed result containing an error."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> Any:
        """Raise the contained error."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        """Return the default value."""
        return default

    def map(self, fn: Callable[[T], U]) -> Err[E]:
        """No-op for Err - returns self unchanged."""
        return self

    def map_err(self, fn: Callable[[E], F]) -> Err[F]:
        """Apply a function to the contained error."""
        return Err(fn(self.error))

    def and_then(self, fn: Callable[[T], Result[U, E]]) -> Err[E]:
        """Short-circuit for Err - returns self unchanged."""
        return self


# Type alias for Result
Result = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Domain-specific error hierarchy
# ---------------------------------------------------------------------------


class WtError(Exception):
    """Base exception for all wtspawn errors.

    Every subclass carries a distinct ``exit_code`` so the CLI can report
    each failure kind with its own non-zero status.
    """

    exit_code: int = 1

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigurationError(WtError):
    """Raised for configuration issues.

    Examples:
    - Config file parse errors
    - Invalid config values
    - Unusable state directory
    """

    exit_code = 2


class DuplicateTaskError(WtError):
    """Raised when registering a task whose identifier is already known."""

    exit_code = 10


class TaskNotFoundError(WtError):
    """Raised when a task identifier is absent from its store."""

    exit_code = 11


class EpicNotFoundError(WtError):
    """Raised when no epic document exists for an identifier."""

    exit_code = 12


class EpicExistsError(WtError):
    """Raised when creating an epic whose identifier is already in use."""

    exit_code = 14


class InvalidTransitionError(WtError):
    """Raised when a task status would move backwards."""

    exit_code = 13


class DirtyWorkspaceError(WtError):
    """Raised when a destructive operation meets uncommitted changes.

    Recoverable: commit or stash in the workspace and retry.
    """

    exit_code = 20


class MergeConflictError(WtError):
    """Raised when merging a task branch produces conflicts.

    Recoverable: resolve the conflict by hand and retry.
    """

    exit_code = 21


class WorkspaceExistsError(WtError):
    """Raised when creating a workspace whose checkout already exists."""

    exit_code = 22


class GitError(WtError):
    """Raised when a git command fails.

    Examples:
    - Not a git repository
    - git executable missing
    - Command exited non-zero
    """

    exit_code = 23


class WindowAlreadyExistsError(WtError):
    """Raised when a window for a task already exists in its session."""

    exit_code = 30


class SessionUnavailableError(WtError):
    """Raised when the terminal multiplexer is missing or unreachable."""

    exit_code = 31


class DependencyCycleError(WtError):
    """Raised when blocked-by edges form a cycle."""

    exit_code = 40


class DanglingDependencyError(WtError):
    """Raised when a blocked-by edge names a task outside the graph."""

    exit_code = 41


class StoreCorruptError(WtError):
    """Raised when a persisted task document cannot be parsed.

    Never treated as an empty store.
    """

    exit_code = 50


__all__ = [
    # Result types
    "Ok",
    "Err",
    "Result",
    # Error hierarchy
    "WtError",
    "ConfigurationError",
    "DuplicateTaskError",
    "TaskNotFoundError",
    "EpicNotFoundError",
    "EpicExistsError",
    "InvalidTransitionError",
    "DirtyWorkspaceError",
    "MergeConflictError",
    "WorkspaceExistsError",
    "GitError",
    "WindowAlreadyExistsError",
    "SessionUnavailableError",
    "DependencyCycleError",
    "DanglingDependencyError",
    "StoreCorruptError",
]
