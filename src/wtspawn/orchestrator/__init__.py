"""Coordinators composing stores, workspaces and sessions into user operations."""

from __future__ import annotations

from .coordinator import MergeOutcome, ReviewReport, TaskCoordinator
from .epic import EpicOrchestrator, EpicPlan, EpicStatusReport, EpicTaskInput, load_task_file
from .launcher import WorkerLauncher
from .spawn import SpawnOrchestrator, TaskRow

__all__ = [
    "EpicOrchestrator",
    "EpicPlan",
    "EpicStatusReport",
    "EpicTaskInput",
    "MergeOutcome",
    "ReviewReport",
    "SpawnOrchestrator",
    "TaskCoordinator",
    "TaskRow",
    "WorkerLauncher",
    "load_task_file",
]
