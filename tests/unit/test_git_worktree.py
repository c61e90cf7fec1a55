"""Tests for the git worktree workspace provider against real repositories."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests.mocks.repos import commit_file, git
from wtspawn.core.result import (
    DirtyWorkspaceError,
    Err,
    GitError,
    MergeConflictError,
    Ok,
    WorkspaceExistsError,
)
from wtspawn.tasks.models import WorkspaceRef
from wtspawn.workspace import GitWorktreeProvider


async def _provider(repo: Path) -> GitWorktreeProvider:
    match await GitWorktreeProvider.open(repo):
        case Ok(provider):
            return provider
        case Err(err):
            pytest.fail(f"Could not open provider: {err}")


class TestCreate:
    @pytest.mark.asyncio
    async def test_nested_name_creates_branch_and_directory(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)

        ref = (await provider.create("feature/auth", "main")).unwrap()

        assert ref.branch == "feature/auth"
        assert ref.path == (temp_git_repo / ".worktrees" / "feature" / "auth").resolve()
        assert git(ref.path, "rev-parse", "--abbrev-ref", "HEAD") == "feature/auth"
        assert (ref.path / "README.md").exists()

    @pytest.mark.asyncio
    async def test_worktrees_and_scratch_files_are_excluded(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        ref = (await provider.create("a", "main")).unwrap()
        (ref.path / ".wt-task").write_text("context")
        (ref.path / ".wt-prompt").write_text("context")

        exclude = (temp_git_repo / ".git" / "info" / "exclude").read_text()
        assert ".worktrees/" in exclude.splitlines()
        assert git(temp_git_repo, "status", "--porcelain") == ""
        assert (await provider.is_dirty(ref)).unwrap() is False

    @pytest.mark.asyncio
    async def test_existing_path_rejected(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        (await provider.create("a", "main")).unwrap()

        result = await provider.create("a", "main")
        assert isinstance(result, Err)
        assert isinstance(result.error, WorkspaceExistsError)

    @pytest.mark.asyncio
    async def test_existing_branch_is_checked_out(self, temp_git_repo: Path) -> None:
        git(temp_git_repo, "branch", "reuse")
        commit_file(temp_git_repo, "main-only.txt", "x")
        provider = await _provider(temp_git_repo)

        ref = (await provider.create("reuse", "main")).unwrap()

        assert not (ref.path / "main-only.txt").exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["../escape", "/abs", "a/../../b", ""])
    async def test_invalid_names_rejected(self, temp_git_repo: Path, name: str) -> None:
        provider = await _provider(temp_git_repo)
        result = await provider.create(name, "main")
        assert isinstance(result, Err)
        assert isinstance(result.error, GitError)

    @pytest.mark.asyncio
    async def test_opened_from_linked_worktree_uses_main_checkout(
        self, temp_git_repo: Path
    ) -> None:
        provider = await _provider(temp_git_repo)
        ref = (await provider.create("a", "main")).unwrap()

        nested = await _provider(ref.path)
        assert nested.worktrees_root == provider.worktrees_root


class TestGetAndRemove:
    @pytest.mark.asyncio
    async def test_get_returns_registered_checkout(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        created = (await provider.create("feature/x", "main")).unwrap()

        assert (await provider.get("feature/x")).unwrap() == created
        assert (await provider.get("missing")).unwrap() is None

    @pytest.mark.asyncio
    async def test_dirty_workspace_not_removed(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        ref = (await provider.create("a", "main")).unwrap()
        (ref.path / "work.txt").write_text("unsaved")

        result = await provider.remove(ref)

        assert isinstance(result, Err)
        assert isinstance(result.error, DirtyWorkspaceError)
        assert ref.path.exists()

    @pytest.mark.asyncio
    async def test_force_removes_dirty_workspace(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        ref = (await provider.create("a", "main")).unwrap()
        (ref.path / "work.txt").write_text("unsaved")

        (await provider.remove(ref, force=True)).unwrap()
        assert not ref.path.exists()

    @pytest.mark.asyncio
    async def test_remove_prunes_empty_parents_and_keeps_branch(
        self, temp_git_repo: Path
    ) -> None:
        provider = await _provider(temp_git_repo)
        ref = (await provider.create("feature/deep/task", "main")).unwrap()

        (await provider.remove(ref)).unwrap()

        assert not (temp_git_repo / ".worktrees" / "feature").exists()
        assert (temp_git_repo / ".worktrees").exists()
        assert git(temp_git_repo, "branch", "--list", "feature/deep/task") != ""
        assert (await provider.get("feature/deep/task")).unwrap() is None

    @pytest.mark.asyncio
    async def test_remove_missing_path_is_ok(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        ghost = WorkspaceRef(path=temp_git_repo / ".worktrees" / "ghost", branch="ghost")
        assert (await provider.remove(ghost)).is_ok()


class TestMerge:
    @pytest.mark.asyncio
    async def test_merge_into_main_checkout(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        ref = (await provider.create("a", "main")).unwrap()
        head = commit_file(ref.path, "feature.txt", "done")
        main = (await provider.main_checkout()).unwrap()

        sha = (await provider.merge_into(ref, main)).unwrap()

        assert sha == head
        assert (temp_git_repo / "feature.txt").read_text() == "done"

    @pytest.mark.asyncio
    async def test_conflict_reported_with_files(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        ref = (await provider.create("a", "main")).unwrap()
        commit_file(ref.path, "README.md", "from task\n")
        commit_file(temp_git_repo, "README.md", "from main\n")
        main = (await provider.main_checkout()).unwrap()

        result = await provider.merge_into(ref, main)

        assert isinstance(result, Err)
        assert isinstance(result.error, MergeConflictError)
        assert result.error.context["files"] == "README.md"

    @pytest.mark.asyncio
    async def test_target_on_wrong_branch_rejected(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        ref = (await provider.create("a", "main")).unwrap()
        target = WorkspaceRef(path=temp_git_repo, branch="release")

        result = await provider.merge_into(ref, target)

        assert isinstance(result, Err)
        assert "expected 'release'" in result.error.message


class TestInspection:
    @pytest.mark.asyncio
    async def test_commits_and_diff_against_base(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        ref = (await provider.create("a", "main")).unwrap()
        commit_file(ref.path, "one.txt", "1", "Add one")
        commit_file(ref.path, "two.txt", "2", "Add two")

        assert (await provider.commits_ahead(ref, "main")).unwrap() == 2
        log = (await provider.commit_log(ref, "main")).unwrap()
        assert [c.summary for c in log] == ["Add two", "Add one"]
        assert "two.txt" in (await provider.diff_stat(ref, "main")).unwrap()
        assert "+2" in (await provider.diff(ref, "main")).unwrap()

    @pytest.mark.asyncio
    async def test_main_checkout_reports_branch(self, temp_git_repo: Path) -> None:
        provider = await _provider(temp_git_repo)
        main = (await provider.main_checkout()).unwrap()
        assert main.branch == "main"
        assert main.path == temp_git_repo.resolve()

    @pytest.mark.asyncio
    async def test_detached_main_checkout_is_an_error(self, temp_git_repo: Path) -> None:
        git(temp_git_repo, "checkout", "--detach")
        provider = await _provider(temp_git_repo)
        assert (await provider.main_checkout()).is_err()
