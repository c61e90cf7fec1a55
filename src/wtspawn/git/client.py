from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from wtspawn.core.result import Err, GitError, Ok, Result


@dataclass
class BranchStatus:
    path: Path
    branch: str
    staged: int
    unstaged: int
    untracked: int
    dirty: bool


@dataclass
class GitCommit:
    hexsha: str
    summary: str
    author_name: str
    committed_date: int

    @property
    def committed_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.committed_date)


@dataclass
class WorktreeInfo:
    """Information about a git worktree."""

    path: Path
    branch: str
    commit: str
    prunable: bool


async def _run_git(cwd: Path, *args: str) -> Result[str, GitError]:
    """Run git with asyncio and return stdout as text, wrapping failures."""
    if not cwd.exists():
        return Err(GitError("Repository path does not exist", context={"cwd": str(cwd)}))

    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=cwd,
        )
    except FileNotFoundError:
        return Err(GitError("git executable not found on PATH", context={"cwd": str(cwd)}))
    except OSError as exc:
        return Err(
            GitError(
                "Failed to start git",
                context={"cwd": str(cwd), "args": list(args), "error": str(exc)},
            )
        )

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        message = stderr.decode("utf-8", errors="replace").strip()
        stdout_text = stdout.decode("utf-8", errors="replace").strip()
        detail = message or stdout_text or f"git {' '.join(args)} failed"
        return Err(
            GitError(
                detail,
                context={"cwd": str(cwd), "args": list(args), "returncode": process.returncode},
            )
        )

    return Ok(stdout.decode("utf-8", errors="replace"))


def _parse_status_output(raw: str, repo_path: Path) -> BranchStatus:
    branch = "(unknown)"
    staged = unstaged = untracked = 0

    entries = [item for item in raw.split("\0") if item]
    for entry in entries:
        if entry.startswith("#"):
            parts = entry.split()
            if len(parts) >= 3 and parts[1] == "branch.head":
                branch = parts[2]
            continue

        kind = entry[0]
        if kind in {"1", "2", "u"}:
            parts = entry.split()
            if len(parts) < 2:
                continue
            xy = parts[1]
            if len(xy) >= 1 and xy[0] != ".":
                staged += 1
            if len(xy) >= 2 and xy[1] != ".":
                unstaged += 1
        elif kind == "?":
            untracked += 1

    return BranchStatus(
        path=repo_path,
        branch=branch,
        staged=staged,
        unstaged=unstaged,
        untracked=untracked,
        dirty=bool(staged or unstaged or untracked),
    )


def _parse_commits(raw: str) -> list[GitCommit]:
    commits: list[GitCommit] = []
    records = [rec for rec in raw.split("\x1e") if rec.strip()]
    for record in records:
        fields = record.strip().split("\x00")
        if len(fields) < 4:
            continue
        sha, author_name, ts, summary = fields[:4]
        commits.append(
            GitCommit(
                hexsha=sha,
                summary=summary,
                author_name=author_name,
                committed_date=_safe_int(ts),
            )
        )
    return commits


def _safe_int(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _parse_worktree_list(output: str) -> list[WorktreeInfo]:
    """Parse `git worktree list --porcelain` output."""
    worktrees: list[WorktreeInfo] = []
    current: dict[str, str] = {}

    def _flush() -> None:
        if current:
            worktrees.append(
                WorktreeInfo(
                    path=Path(current.get("worktree", "")),
                    branch=current.get("branch", "").replace("refs/heads/", ""),
                    commit=current.get("HEAD", ""),
                    prunable="prunable" in current,
                )
            )
            current.clear()

    for line in output.splitlines():
        if not line.strip():
            _flush()
            continue

        if line.startswith("worktree "):
            current["worktree"] = line[9:]
        elif line.startswith("HEAD "):
            current["HEAD"] = line[5:]
        elif line.startswith("branch "):
            current["branch"] = line[7:]
        elif line.startswith("prunable"):
            current["prunable"] = "true"

    # Handle last entry if no trailing newline
    _flush()
    return worktrees


async def _resolve_worktree(path: Path) -> Result[Path, GitError]:
    match await _run_git(path, "rev-parse", "--show-toplevel"):
        case Ok(raw):
            return Ok(Path(raw.strip()).resolve())
        case Err(err):
            return Err(err)


class AsyncRepo:
    """Async git wrapper built on subprocess plumbing."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def path(self) -> Path:
        return self._root

    @classmethod
    async def open(cls, path: Path | str = ".") -> Result[AsyncRepo, GitError]:
        root = Path(path).expanduser()
        match await _resolve_worktree(root):
            case Ok(resolved_root):
                return Ok(cls(resolved_root))
            case Err(err):
                return Err(err)

    async def status(self) -> Result[BranchStatus, GitError]:
        match await _run_git(self._root, "status", "--porcelain=v2", "--branch", "-z"):
            case Ok(output):
                return Ok(_parse_status_output(output, self._root))
            case Err(err):
                return Err(err)

    async def current_branch(self) -> Result[str, GitError]:
        match await _run_git(self._root, "rev-parse", "--abbrev-ref", "HEAD"):
            case Ok(output):
                return Ok(output.strip())
            case Err(err):
                return Err(err)

    async def common_dir(self) -> Result[Path, GitError]:
        """Return the git directory shared by the main checkout and its worktrees."""
        match await _run_git(self._root, "rev-parse", "--path-format=absolute", "--git-common-dir"):
            case Ok(output):
                return Ok(Path(output.strip()))
            case Err(err):
                return Err(err)

    async def main_worktree(self) -> Result[Path, GitError]:
        """Return the root of the main checkout, even when opened from a linked worktree."""
        match await self.worktree_list():
            case Ok(worktrees) if worktrees:
                return Ok(worktrees[0].path.resolve())
            case Ok(_):
                return Ok(self._root)
            case Err(err):
                return Err(err)

    async def branch_exists(self, branch: str) -> bool:
        result = await _run_git(self._root, "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}")
        return result.is_ok()

    async def get_commits(self, ref_range: str, limit: int) -> Result[list[GitCommit], GitError]:
        format_str = "%H%x00%an%x00%at%x00%s%x1e"
        match await _run_git(
            self._root,
            "log",
            f"--max-count={limit}",
            "--date=unix",
            f"--format={format_str}",
            ref_range,
        ):
            case Ok(output):
                return Ok(_parse_commits(output))
            case Err(err):
                return Err(err)

    async def count_commits(self, ref_range: str) -> Result[int, GitError]:
        match await _run_git(self._root, "rev-list", "--count", ref_range):
            case Ok(output):
                return Ok(_safe_int(output.strip()))
            case Err(err):
                return Err(err)

    async def diff_stat(self, ref_range: str) -> Result[str, GitError]:
        return await _run_git(self._root, "diff", "--stat", ref_range)

    async def diff(self, ref_range: str) -> Result[str, GitError]:
        return await _run_git(self._root, "diff", ref_range)

    # -------------------------------------------------------------------------
    # Worktree operations
    # -------------------------------------------------------------------------

    async def worktree_add(
        self,
        path: Path,
        branch: str,
        *,
        new_branch: bool = True,
        start_point: str | None = None,
    ) -> Result[Path, GitError]:
        """Create a new worktree.

        Args:
            path: Directory for the new worktree
            branch: Branch name (created if new_branch=True)
            new_branch: If True, create branch with -b flag
            start_point: Base commit/branch (default: HEAD)

        Returns:
            Ok(worktree_path) on success, Err(GitError) on failure
        """
        args: list[str] = ["worktree", "add"]
        if new_branch:
            args.extend(["-b", branch])
        args.append(str(path))
        if not new_branch:
            args.append(branch)
        elif start_point:
            args.append(start_point)

        match await _run_git(self._root, *args):
            case Ok(_):
                return Ok(path.resolve())
            case Err(err):
                return Err(err)

    async def worktree_remove(
        self,
        path: Path,
        *,
        force: bool = False,
    ) -> Result[None, GitError]:
        """Remove a worktree.

        Args:
            path: Worktree directory to remove
            force: If True, remove even if dirty
        """
        args = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.append(str(path))

        result = await _run_git(self._root, *args)
        return result.map(lambda _: None)

    async def worktree_list(self) -> Result[list[WorktreeInfo], GitError]:
        match await _run_git(self._root, "worktree", "list", "--porcelain"):
            case Ok(output):
                return Ok(_parse_worktree_list(output))
            case Err(err):
                return Err(err)

    async def worktree_prune(self) -> Result[None, GitError]:
        """Prune stale worktree references."""
        result = await _run_git(self._root, "worktree", "prune")
        return result.map(lambda _: None)

    # -------------------------------------------------------------------------
    # Merge operations
    # -------------------------------------------------------------------------

    async def merge(
        self,
        branch: str,
        *,
        no_ff: bool = False,
        message: str | None = None,
    ) -> Result[str, GitError]:
        """Merge a branch into current HEAD.

        Args:
            branch: Branch to merge
            no_ff: Force merge commit even if fast-forward possible
            message: Custom merge commit message

        Returns:
            Ok(commit_sha) on success, Err(GitError) on conflict/failure
        """
        args = ["merge", "--no-edit"]
        if no_ff:
            args.append("--no-ff")
        if message:
            args.extend(["-m", message])
        args.append(branch)

        match await _run_git(self._root, *args):
            case Ok(_):
                return await self.head()
            case Err(err):
                return Err(err)

    async def head(self) -> Result[str, GitError]:
        match await _run_git(self._root, "rev-parse", "HEAD"):
            case Ok(output):
                return Ok(output.strip())
            case Err(err):
                return Err(err)

    async def get_conflict_files(self) -> Result[list[Path], GitError]:
        """Get list of files with merge conflicts."""
        match await _run_git(self._root, "diff", "--name-only", "--diff-filter=U"):
            case Ok(output):
                files = [self._root / line.strip() for line in output.splitlines() if line.strip()]
                return Ok(files)
            case Err(err):
                return Err(err)
