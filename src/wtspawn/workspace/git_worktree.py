"""Git worktree workspace provider.

Task checkouts live under ``<repo>/<worktrees_dirname>/<name>`` on a branch
named after the task. Slash-separated names nest directories, so
``feature/auth`` lands in ``.worktrees/feature/auth`` on branch
``feature/auth``.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path, PurePosixPath

from wtspawn.core.result import (
    DirtyWorkspaceError,
    Err,
    GitError,
    MergeConflictError,
    Ok,
    Result,
    WorkspaceExistsError,
)
from wtspawn.git import AsyncRepo, GitCommit
from wtspawn.tasks.models import WorkspaceRef
from wtspawn.workspace.base import SCRATCH_FILES

logger = logging.getLogger(__name__)


def _valid_name(name: str) -> bool:
    parts = PurePosixPath(name).parts
    return bool(parts) and not name.startswith("/") and ".." not in parts and "." not in parts


class GitWorktreeProvider:
    """Creates, inspects and merges task checkouts as git worktrees.

    Attributes:
        repo: The main checkout of the repository
        worktrees_root: Directory holding all task checkouts
    """

    def __init__(self, repo: AsyncRepo, worktrees_dirname: str = ".worktrees") -> None:
        self._repo = repo
        self._worktrees_dirname = worktrees_dirname
        self._worktrees_root = repo.path / worktrees_dirname
        self._excludes_checked = False

    @classmethod
    async def open(
        cls, path: Path | str = ".", worktrees_dirname: str = ".worktrees"
    ) -> Result[GitWorktreeProvider, GitError]:
        """Open the provider for the repository containing ``path``.

        Works from inside a linked worktree: checkouts are always placed
        under the main checkout.
        """
        match await AsyncRepo.open(path):
            case Ok(repo):
                pass
            case Err(err):
                return Err(err)
        match await repo.main_worktree():
            case Ok(main_root):
                return Ok(cls(AsyncRepo(main_root), worktrees_dirname))
            case Err(err):
                return Err(err)

    @property
    def repo(self) -> AsyncRepo:
        return self._repo

    @property
    def worktrees_root(self) -> Path:
        return self._worktrees_root

    def workspace_path(self, name: str) -> Path:
        return self._worktrees_root / name

    async def main_checkout(self) -> Result[WorkspaceRef, GitError]:
        """The main checkout on whatever branch it currently has."""
        match await self._repo.current_branch():
            case Ok("HEAD"):
                return Err(
                    GitError(
                        "Main checkout has a detached HEAD; check out a branch first",
                        context={"path": str(self._repo.path)},
                    )
                )
            case Ok(branch):
                return Ok(WorkspaceRef(path=self._repo.path, branch=branch))
            case Err(err):
                return Err(err)

    async def ensure_excludes(self) -> Result[None, GitError]:
        """List the worktrees directory and scratch files in ``info/exclude``."""
        if self._excludes_checked:
            return Ok(None)

        match await self._repo.common_dir():
            case Ok(common_dir):
                exclude_path = common_dir / "info" / "exclude"
            case Err(err):
                return Err(err)

        wanted = [f"{self._worktrees_dirname}/", *SCRATCH_FILES]

        def _update() -> list[str]:
            exclude_path.parent.mkdir(parents=True, exist_ok=True)
            existing = (
                exclude_path.read_text(encoding="utf-8").splitlines()
                if exclude_path.exists()
                else []
            )
            missing = [entry for entry in wanted if entry not in existing]
            if missing:
                with exclude_path.open("a", encoding="utf-8") as fh:
                    if existing and existing[-1] != "":
                        fh.write("\n")
                    fh.write("\n".join(missing) + "\n")
            return missing

        try:
            added = await asyncio.to_thread(_update)
        except OSError as exc:
            return Err(GitError(f"Failed to update {exclude_path}: {exc}"))

        if added:
            logger.debug("Added %s to %s", ", ".join(added), exclude_path)
        self._excludes_checked = True
        return Ok(None)

    async def create(
        self, name: str, base_ref: str
    ) -> Result[WorkspaceRef, WorkspaceExistsError | GitError]:
        """Create a checkout for ``name`` on branch ``name``.

        An existing branch of that name is checked out as-is; otherwise the
        branch is created from ``base_ref``.
        """
        if not _valid_name(name):
            return Err(GitError(f"Invalid workspace name '{name}'", context={"name": name}))

        path = self.workspace_path(name)
        if path.exists():
            return Err(
                WorkspaceExistsError(
                    f"Workspace '{name}' already exists at {path}", context={"path": str(path)}
                )
            )

        match await self.ensure_excludes():
            case Err(err):
                return Err(err)
            case Ok(_):
                pass

        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            return Err(GitError(f"Failed to create {path.parent}: {exc}"))

        if await self._repo.branch_exists(name):
            result = await self._repo.worktree_add(path, name, new_branch=False)
        else:
            result = await self._repo.worktree_add(path, name, new_branch=True, start_point=base_ref)

        match result:
            case Ok(created):
                logger.debug("Created worktree %s on %s from %s", created, name, base_ref)
                return Ok(WorkspaceRef(path=created, branch=name))
            case Err(err):
                await self._prune_empty_parents(path.parent)
                return Err(err)

    async def get(self, name: str) -> Result[WorkspaceRef | None, GitError]:
        """Return the registered checkout for ``name``, if any."""
        target = self.workspace_path(name).resolve()
        match await self._repo.worktree_list():
            case Ok(worktrees):
                for info in worktrees:
                    if info.path.resolve() == target and not info.prunable:
                        return Ok(WorkspaceRef(path=target, branch=info.branch or name))
                return Ok(None)
            case Err(err):
                return Err(err)

    async def remove(
        self, ref: WorkspaceRef, *, force: bool = False
    ) -> Result[None, DirtyWorkspaceError | GitError]:
        """Remove a checkout, refusing uncommitted changes unless ``force``.

        The branch is kept. Empty parent directories left by nested names are
        pruned up to the worktrees root.
        """
        if not ref.path.exists():
            await self._repo.worktree_prune()
            await self._prune_empty_parents(ref.path.parent)
            return Ok(None)

        if not force:
            match await self.is_dirty(ref):
                case Ok(True):
                    return Err(
                        DirtyWorkspaceError(
                            f"Workspace {ref.path} has uncommitted changes",
                            context={"branch": ref.branch},
                        )
                    )
                case Err(err):
                    return Err(err)
                case Ok(False):
                    pass

        # Ignored scratch files would otherwise block a clean removal.
        match await self._repo.worktree_remove(ref.path, force=True):
            case Ok(_):
                pass
            case Err(err):
                await self._repo.worktree_prune()
                return Err(err)

        await self._prune_empty_parents(ref.path.parent)
        logger.debug("Removed worktree %s", ref.path)
        return Ok(None)

    async def _prune_empty_parents(self, start: Path) -> None:
        root = self._worktrees_root.resolve()

        def _prune() -> None:
            current = start.resolve()
            while current != root and root in current.parents:
                try:
                    current.rmdir()
                except OSError:
                    return
                current = current.parent

        await asyncio.to_thread(_prune)

    async def is_dirty(self, ref: WorkspaceRef) -> Result[bool, GitError]:
        match await AsyncRepo(ref.path).status():
            case Ok(status):
                return Ok(status.dirty)
            case Err(err):
                return Err(err)

    async def current_branch(self, ref: WorkspaceRef) -> Result[str, GitError]:
        return await AsyncRepo(ref.path).current_branch()

    async def merge_into(
        self, source: WorkspaceRef, target: WorkspaceRef
    ) -> Result[str, MergeConflictError | GitError]:
        """Merge ``source.branch`` into the checkout of ``target``.

        A conflicted merge is left in place and reported with its files.
        """
        target_repo = AsyncRepo(target.path)
        match await target_repo.current_branch():
            case Ok(branch) if branch != target.branch:
                return Err(
                    GitError(
                        f"Merge target {target.path} is on '{branch}', expected '{target.branch}'",
                        context={"path": str(target.path)},
                    )
                )
            case Err(err):
                return Err(err)
            case Ok(_):
                pass

        match await target_repo.merge(source.branch):
            case Ok(sha):
                logger.debug("Merged %s into %s at %s", source.branch, target.branch, sha[:8])
                return Ok(sha)
            case Err(err):
                merge_error = err

        conflicts = (await target_repo.get_conflict_files()).unwrap_or([])
        if conflicts:
            names = [str(p.relative_to(target.path)) for p in conflicts]
            return Err(
                MergeConflictError(
                    f"Merging '{source.branch}' into '{target.branch}' produced conflicts; "
                    f"resolve them in {target.path} and commit",
                    context={"files": ", ".join(names)},
                )
            )
        return Err(merge_error)

    async def commits_ahead(self, ref: WorkspaceRef, base: str) -> Result[int, GitError]:
        return await AsyncRepo(ref.path).count_commits(f"{base}..{ref.branch}")

    async def commit_log(
        self, ref: WorkspaceRef, base: str, limit: int = 50
    ) -> Result[list[GitCommit], GitError]:
        return await AsyncRepo(ref.path).get_commits(f"{base}..{ref.branch}", limit)

    async def diff_stat(self, ref: WorkspaceRef, base: str) -> Result[str, GitError]:
        return await AsyncRepo(ref.path).diff_stat(f"{base}...{ref.branch}")

    async def diff(self, ref: WorkspaceRef, base: str) -> Result[str, GitError]:
        return await AsyncRepo(ref.path).diff(f"{base}...{ref.branch}")


__all__ = [
    "GitWorktreeProvider",
]
