"""Git backend for sprout.

This is the only module that runs git. Every call is a blocking
``subprocess.run``; failures are reported with git's own stderr and are
never retried.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from .errors import NotAWorktreeError, ToolFailureError, WorktreeExistsError

logger = logging.getLogger(__name__)


class GitBackend:
    """Wraps the git commands sprout needs."""

    def __init__(self, git: str = "git"):
        """Initialize the backend with the git executable to run."""
        self.git = git

    def _run(
        self, args: List[str], cwd: Optional[Path] = None, check: bool = True
    ) -> subprocess.CompletedProcess:
        cmd = [self.git] + args
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                check=check,
            )
        except subprocess.CalledProcessError as e:
            logger.error(f"git failed: {e.stderr}")
            raise ToolFailureError(cmd, e.stderr) from e
        except OSError as e:
            raise ToolFailureError(cmd, str(e)) from e
        if result.stdout:
            logger.debug(f"git output: {result.stdout.strip()}")
        return result

    def repo_root(self, cwd: Path) -> Path:
        """Return the top level of the checkout containing ``cwd``."""
        try:
            result = self._run(["rev-parse", "--show-toplevel"], cwd=cwd)
        except ToolFailureError as e:
            raise NotAWorktreeError(cwd, "not in a git repository") from e
        return Path(result.stdout.strip()).resolve()

    def branch_exists(self, repo_path: Path, branch: str) -> bool:
        """Check if a branch exists locally."""
        result = self._run(
            ["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"],
            cwd=repo_path,
            check=False,
        )
        return result.returncode == 0

    def create_worktree(self, source_repo: Path, path: Path, branch: str) -> None:
        """Create a worktree at ``path`` on a new branch ``branch``."""
        if path.exists():
            raise WorktreeExistsError(f"worktree directory {path}")
        if self.branch_exists(source_repo, branch):
            raise WorktreeExistsError(f"branch {branch}")

        path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Creating worktree {path} on branch {branch} from {source_repo}")
        self._run(["worktree", "add", "-b", branch, str(path)], cwd=source_repo)

    def remove_worktree(self, source_repo: Path, path: Path, force: bool = False) -> None:
        """Remove the worktree at ``path`` and prune git's bookkeeping."""
        args = ["worktree", "remove", str(path)]
        if force:
            args.append("--force")
        logger.info(f"Removing worktree {path}")
        self._run(args, cwd=source_repo)
        self.prune(source_repo)

    def prune(self, source_repo: Path) -> None:
        """Drop git's records of worktrees whose directories are gone."""
        self._run(["worktree", "prune"], cwd=source_repo)

    def delete_branch(self, source_repo: Path, branch: str, force: bool = False) -> None:
        """Delete a local branch."""
        logger.info(f"Deleting branch {branch}")
        self._run(["branch", "-D" if force else "-d", branch], cwd=source_repo)

    def last_commit_time(self, path: Path) -> int:
        """Return the epoch time of the newest commit in ``path``, or 0 if unknown."""
        if not Path(path).is_dir():
            return 0
        try:
            result = self._run(["log", "-1", "--format=%ct"], cwd=path, check=False)
        except ToolFailureError:
            return 0
        if result.returncode != 0:
            return 0
        try:
            return int(result.stdout.strip())
        except ValueError:
            return 0

    def resolve_base(self, path: Path) -> Path:
        """Return the repository that the linked worktree at ``path`` came from."""
        try:
            result = self._run(
                ["rev-parse", "--path-format=absolute", "--show-toplevel", "--git-common-dir"],
                cwd=path,
            )
        except ToolFailureError as e:
            raise NotAWorktreeError(path, "not in a git repository") from e

        lines = result.stdout.strip().splitlines()
        if len(lines) != 2:
            raise NotAWorktreeError(path, "unexpected git rev-parse output")
        toplevel = Path(lines[0]).resolve()
        base = Path(lines[1]).resolve().parent
        if toplevel == base:
            raise NotAWorktreeError(path, "in the main checkout, not a linked worktree")
        return base
