"""Property-based tests for the spawn task store using Hypothesis.

These tests verify:
- Registered tasks list back in registration order
- Unregistering any subset leaves exactly the complement
- Every document written can be parsed back
"""
from __future__ import annotations

import tempfile
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from wtspawn.tasks.models import SpawnDocument, Task
from wtspawn.tasks.store import JsonDocument, SpawnTaskStore

# === Strategies ===

segment = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-_", min_size=1, max_size=12)
identifier_strategy = st.lists(segment, min_size=1, max_size=3).map("/".join)
context_strategy = st.none() | st.text(max_size=200)


# === Property Tests ===


@given(
    names=st.lists(identifier_strategy, min_size=1, max_size=8, unique=True),
    contexts=st.lists(context_strategy, min_size=8, max_size=8),
    drop=st.sets(st.integers(min_value=0, max_value=7)),
)
@settings(max_examples=50, deadline=None)
def test_register_unregister_round_trip(
    names: list[str], contexts: list[str | None], drop: set[int]
) -> None:
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        store = SpawnTaskStore(root / "state", root / "repo")
        tasks = [
            Task(identifier=name, branch=name, context=contexts[i]) for i, name in enumerate(names)
        ]
        for task in tasks:
            store.register(task)

        assert store.list() == tasks

        removed = {names[i] for i in drop if i < len(names)}
        for name in removed:
            store.unregister(name)

        remaining = [t for t in tasks if t.identifier not in removed]
        assert store.list() == remaining
        if remaining:
            parsed = JsonDocument(store.path).read(SpawnDocument)
            assert parsed is not None
            assert parsed.tasks == remaining
        else:
            assert not store.path.exists()
