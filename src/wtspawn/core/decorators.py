from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from typing import Any, NoReturn, TypeVar

import typer
from rich.markup import escape

from wtspawn.core.console import console
from wtspawn.core.result import WtError

F = TypeVar("F", bound=Callable[..., Any])


def _handle_exception(exc: WtError) -> NoReturn:
    console.print(f"[red]{escape(str(exc))}[/red]", highlight=False)
    raise typer.Exit(code=exc.exit_code)


def _handle_os_error(exc: OSError) -> NoReturn:
    console.print(f"[red]{escape(str(exc))}[/red]", highlight=False)
    raise typer.Exit(code=1)


def handle_exceptions(func: F) -> F:
    """Decorate CLI entrypoints to present friendly errors and exit with the error's code."""

    if asyncio.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except WtError as exc:
                _handle_exception(exc)
            except OSError as exc:
                _handle_os_error(exc)

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except WtError as exc:
            _handle_exception(exc)
        except OSError as exc:
            _handle_os_error(exc)

    return sync_wrapper  # type: ignore[return-value]


__all__ = ["handle_exceptions"]
