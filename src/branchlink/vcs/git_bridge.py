"""Asynchronous wrapper over the local git executable."""

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

import git
import structlog
from git import Repo

from branchlink.errors import (
    BranchNotFoundError,
    CheckoutConflictError,
    GitError,
    ValidationError,
)
from branchlink.models.results import ChangedFile, ChangeSummary
from branchlink.tasks import run_to_completion

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _command_parts(command: Any) -> List[str]:
    if isinstance(command, (list, tuple)):
        return [str(part) for part in command]
    return [str(command)]


def _classify(status_code: str) -> str:
    """Map a porcelain XY status code to a change type."""
    if status_code == "??":
        return "untracked"
    if "R" in status_code or "C" in status_code:
        return "renamed"
    if "D" in status_code:
        return "deleted"
    if status_code[0] == "A":
        return "added"
    if status_code[1] in ("M", "T"):
        return "modified"
    return "staged"


def parse_porcelain(output: str) -> List[ChangedFile]:
    """Parse ``git status --porcelain -z`` output into changed files.

    Args:
        output: NUL-separated porcelain v1 output

    Returns:
        Changed files in git's order
    """
    changed = []
    entries = output.split("\0")
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if len(entry) < 4:
            continue
        status_code, path = entry[:2], entry[3:]
        if "R" in status_code or "C" in status_code:
            # the original path follows as its own field
            i += 1
        changed.append(ChangedFile(path=path, change_type=_classify(status_code)))
    return changed


class GitBridge:
    """Branch-level git operations for one workspace.

    All GitPython calls run in a worker thread. A single lock per bridge
    serializes them, so two operations never contend on git's index lock.
    """

    def __init__(self, repo_path: Path) -> None:
        """Initialize the bridge.

        Args:
            repo_path: Path inside the workspace's git repository
        """
        self.repo_path = Path(repo_path)
        self._repo: Optional[Repo] = None
        self._lock = asyncio.Lock()

    @property
    def repo(self) -> Repo:
        """Open the repository on first use.

        Raises:
            GitError: If the path is not inside a git repository
        """
        if self._repo is None:
            try:
                self._repo = Repo(self.repo_path, search_parent_directories=True)
            except git.exc.NoSuchPathError as e:
                raise GitError(f"Repository path does not exist: {self.repo_path}") from e
            except git.exc.InvalidGitRepositoryError as e:
                raise GitError(f"Not a git repository: {self.repo_path}") from e
        return self._repo

    @property
    def git_dir(self) -> Path:
        return Path(self.repo.git_dir)

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking git call in a thread, one at a time.

        The lock is held until the thread returns, even if the caller is
        cancelled while git is running.
        """
        async with self._lock:
            try:
                return await run_to_completion(asyncio.to_thread(func, *args))
            except git.exc.GitCommandError as e:
                logger.error("git_command_failed", command=e.command, status=e.status)
                raise GitError(
                    f"git failed: {e.stderr.strip() if e.stderr else e}",
                    command=_command_parts(e.command),
                    stderr=e.stderr,
                ) from e

    # ============================================================================
    # Synchronous helpers (called from worker threads only)
    # ============================================================================

    def _local_branches(self) -> List[str]:
        return [head.name for head in self.repo.heads]

    def _current_branch(self) -> Optional[str]:
        if self.repo.head.is_detached:
            return None
        return self.repo.active_branch.name

    def _changed_files(self) -> List[ChangedFile]:
        output = self.repo.git.status("--porcelain", "-z", "--untracked-files=all")
        return parse_porcelain(output)

    def _checkout(self, branch_name: str, allow_uncommitted: bool) -> None:
        if branch_name not in self._local_branches():
            raise BranchNotFoundError(branch_name)
        if not allow_uncommitted:
            changed = self._changed_files()
            if changed:
                raise CheckoutConflictError(branch_name, [c.path for c in changed])
        self.repo.git.checkout(branch_name)

    def _stash(self, message: str) -> None:
        self.repo.git.stash("push", "-u", "-m", message)

    def _stash_pop(self) -> None:
        self.repo.git.stash("pop")

    def _create_branch(self, branch_name: str, start_point: Optional[str]) -> None:
        if branch_name in self._local_branches():
            raise ValidationError(f"Branch already exists: {branch_name}")
        args = ["-b", branch_name]
        if start_point:
            args.append(start_point)
        self.repo.git.checkout(*args)

    # ============================================================================
    # Public API
    # ============================================================================

    async def list_local_branches(self) -> List[str]:
        """List local branch names; remote-tracking branches are excluded.

        Raises:
            GitError: If the workspace is not a git repository
        """
        return await self._run(self._local_branches)

    async def current_branch(self) -> Optional[str]:
        """Get the checked-out branch, or None on a detached HEAD."""
        return await self._run(self._current_branch)

    async def branch_exists(self, branch_name: str) -> bool:
        branches = await self.list_local_branches()
        return branch_name in branches

    async def has_uncommitted_changes(self) -> bool:
        """Check for staged, unstaged or untracked changes."""
        changed = await self._run(self._changed_files)
        return bool(changed)

    async def changed_files_summary(self, limit: int = 5) -> ChangeSummary:
        """Summarize uncommitted changes for display.

        Args:
            limit: Maximum number of files to list

        Returns:
            ChangeSummary with the first ``limit`` files and the remaining count
        """
        changed = await self._run(self._changed_files)
        counts: Dict[str, int] = {}
        for changed_file in changed:
            counts[changed_file.change_type] = counts.get(changed_file.change_type, 0) + 1
        return ChangeSummary(
            files=changed[:limit],
            remaining=max(len(changed) - limit, 0),
            total=len(changed),
            counts=counts,
        )

    async def checkout(self, branch_name: str, allow_uncommitted: bool = False) -> None:
        """Check out an existing local branch.

        Args:
            branch_name: Branch to check out
            allow_uncommitted: Carry uncommitted changes across instead of refusing

        Raises:
            BranchNotFoundError: If the branch does not exist
            CheckoutConflictError: If there are uncommitted changes and
                allow_uncommitted is False
            GitError: If git refuses the checkout
        """
        await self._run(self._checkout, branch_name, allow_uncommitted)
        logger.info("branch_checked_out", branch=branch_name)

    async def stash(self, message: str) -> str:
        """Stash all changes, including untracked files.

        Args:
            message: Stash message

        Returns:
            The stash message
        """
        await self._run(self._stash, message)
        logger.info("changes_stashed", message=message)
        return message

    async def create_branch(self, branch_name: str, start_point: Optional[str] = None) -> None:
        """Create a branch and check it out.

        Args:
            branch_name: New branch name
            start_point: Commit-ish to branch from (defaults to HEAD)

        Raises:
            ValidationError: If the branch already exists
        """
        await self._run(self._create_branch, branch_name, start_point)
        logger.info("branch_created", branch=branch_name, start_point=start_point)

    async def stash_pop(self) -> None:
        """Restore the most recent stash and drop it.

        Raises:
            GitError: If there is no stash or it does not apply cleanly
        """
        await self._run(self._stash_pop)
        logger.info("stash_popped")
