"""Terminal multiplexer sessions hosting one window per task."""

from __future__ import annotations

from .base import (
    SessionOrchestrator,
    SessionRef,
    WindowStatus,
    epic_session_name,
    pooled_session_name,
)
from .tmux import TmuxOrchestrator

__all__ = [
    "SessionOrchestrator",
    "SessionRef",
    "TmuxOrchestrator",
    "WindowStatus",
    "epic_session_name",
    "pooled_session_name",
]
