"""Tests for blocked-by resolution and graph validation."""

from __future__ import annotations

import pytest

from wtspawn.core.result import DanglingDependencyError, DependencyCycleError
from wtspawn.tasks.dependencies import DependencyResolver, find_cycle
from wtspawn.tasks.models import Task, TaskStatus


def _task(identifier: str, *blocked_by: str, status: TaskStatus = TaskStatus.BLOCKED) -> Task:
    return Task(identifier=identifier, branch=identifier, blocked_by=list(blocked_by), status=status)


class TestIsBlocked:
    def test_no_blockers(self) -> None:
        task = _task("A", status=TaskStatus.PENDING)
        assert not DependencyResolver().is_blocked(task, [task])

    def test_open_blocker_blocks(self) -> None:
        a = _task("A", status=TaskStatus.IN_PROGRESS)
        b = _task("B", "A")
        assert DependencyResolver().is_blocked(b, [a, b])

    def test_completed_blocker_does_not_block(self) -> None:
        a = _task("A", status=TaskStatus.COMPLETED)
        b = _task("B", "A")
        assert not DependencyResolver().is_blocked(b, [a, b])

    def test_dangling_blocker_policies(self) -> None:
        b = _task("B", "GONE")
        assert not DependencyResolver("satisfied").is_blocked(b, [b])
        assert DependencyResolver("blocking").is_blocked(b, [b])


class TestUnblockedAfter:
    """Chain A <- B <- C unlocks one task per completion."""

    def test_chain_resolution(self) -> None:
        resolver = DependencyResolver()
        a = _task("A", status=TaskStatus.IN_PROGRESS)
        b = _task("B", "A")
        c = _task("C", "B")

        ready = resolver.unblocked_after("A", [a, b, c])
        assert [t.identifier for t in ready] == ["B"]

        a_done = a.model_copy(update={"status": TaskStatus.COMPLETED})
        b_running = b.model_copy(update={"status": TaskStatus.IN_PROGRESS})
        ready = resolver.unblocked_after("B", [a_done, b_running, c])
        assert [t.identifier for t in ready] == ["C"]

    def test_waits_for_every_blocker(self) -> None:
        resolver = DependencyResolver()
        a = _task("A", status=TaskStatus.IN_PROGRESS)
        b = _task("B", status=TaskStatus.IN_PROGRESS)
        c = _task("C", "A", "B")

        assert resolver.unblocked_after("A", [a, b, c]) == []

        a_done = a.model_copy(update={"status": TaskStatus.COMPLETED})
        assert [t.identifier for t in resolver.unblocked_after("B", [a_done, b, c])] == ["C"]

    def test_declaration_order_preserved(self) -> None:
        a = _task("A", status=TaskStatus.IN_PROGRESS)
        tasks = [a, _task("Z", "A"), _task("M", "A"), _task("B", "A")]
        ready = DependencyResolver().unblocked_after("A", tasks)
        assert [t.identifier for t in ready] == ["Z", "M", "B"]

    def test_only_blocked_tasks_are_returned(self) -> None:
        a = _task("A", status=TaskStatus.IN_PROGRESS)
        running = _task("B", "A", status=TaskStatus.IN_PROGRESS)
        assert DependencyResolver().unblocked_after("A", [a, running]) == []


class TestValidate:
    def test_cycle_rejected(self) -> None:
        tasks = [_task("A", "C"), _task("B", "A"), _task("C", "B")]
        with pytest.raises(DependencyCycleError, match="cycle"):
            DependencyResolver().validate(tasks)

    def test_self_edge_rejected(self) -> None:
        with pytest.raises(DependencyCycleError):
            DependencyResolver().validate([_task("A", "A")])

    def test_dangling_dropped_when_satisfied(self) -> None:
        tasks = DependencyResolver("satisfied").validate([_task("A", "EXTERNAL")])
        assert tasks[0].blocked_by == []

    def test_dangling_rejected_when_blocking(self) -> None:
        with pytest.raises(DanglingDependencyError, match="EXTERNAL"):
            DependencyResolver("blocking").validate([_task("A", "EXTERNAL")])

    def test_valid_graph_unchanged(self) -> None:
        tasks = [_task("A", status=TaskStatus.PENDING), _task("B", "A"), _task("C", "A", "B")]
        assert DependencyResolver().validate(tasks) == tasks


class TestFindCycle:
    def test_acyclic(self) -> None:
        assert find_cycle([_task("A"), _task("B", "A")]) == []

    def test_reports_cycle_members(self) -> None:
        cycle = find_cycle([_task("A"), _task("B", "C"), _task("C", "B")])
        assert set(cycle) == {"B", "C"}
