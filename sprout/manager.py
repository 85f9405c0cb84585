"""Worktree manager for sprout.

Directory Structure
-------------------
~/.sprout/                  # or $SPROUT_HOME
├── worktrees/
│   └── <name>/             # One linked worktree per registered name
├── metadata.json           # Registry: name -> path, source repo, branch
├── metadata.lock           # Advisory lock for registry updates
└── config.toml             # branch_prefix

The registry is an index over git's own worktree state. The two can drift
apart when a directory is deleted by hand; such entries are reported as
dangling and removed by :meth:`WorktreeManager.prune`.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from .backend import GitBackend
from .config import SproutPaths, get_config
from .errors import DanglingEntryError, DuplicateNameError, InvalidNameError, SproutError
from .models import WorktreeEntry
from .storage import MetadataStorage

logger = logging.getLogger(__name__)


def validate_worktree_name(name: str) -> None:
    """Reject names that cannot be used as a single directory name."""
    if not name or not name.strip():
        raise InvalidNameError(name, "name is empty")
    if name in (".", ".."):
        raise InvalidNameError(name, "name is reserved")
    if "/" in name or "\\" in name:
        raise InvalidNameError(name, "name must not contain path separators")
    if name.startswith("-"):
        raise InvalidNameError(name, "name must not start with '-'")


def make_branch_name(prefix: str, name: str) -> str:
    """Build the branch name for a new worktree."""
    return f"{prefix}{name}" if prefix else name


class WorktreeManager:
    """Creates, finds, lists and removes sprout worktrees."""

    def __init__(
        self,
        paths: Optional[SproutPaths] = None,
        storage: Optional[MetadataStorage] = None,
        backend: Optional[GitBackend] = None,
    ):
        """Initialize worktree manager."""
        self.paths = paths or SproutPaths.from_env()
        self.storage = storage or MetadataStorage(self.paths.metadata_path)
        self.backend = backend or GitBackend()

    def get_worktree_path(self, name: str) -> Path:
        """Get local path for a worktree."""
        return self.paths.worktrees_dir / name

    def create(self, name: str, cwd: Path) -> WorktreeEntry:
        """Create a worktree named ``name`` from the repository containing ``cwd``.

        The name is checked against the registry before git is touched. If
        registering the new worktree fails afterwards, the worktree and its
        branch are removed again so nothing is left orphaned on disk.
        """
        validate_worktree_name(name)
        source_repo = self.backend.repo_root(cwd)
        config = get_config(self.paths.config_path)
        branch = make_branch_name(config.branch_prefix, name)
        worktree_path = self.get_worktree_path(name)

        with self.storage.transaction() as storage:
            if name in storage.worktrees:
                raise DuplicateNameError(name)

            self.backend.create_worktree(source_repo, worktree_path, branch)
            try:
                entry = WorktreeEntry(
                    name=name,
                    path=worktree_path.resolve(),
                    source_repo=source_repo,
                    branch=branch,
                )
                storage.insert(entry)
                storage.save()
            except Exception:
                logger.error(f"Failed to register worktree {name}; rolling back")
                self._rollback_create(source_repo, worktree_path, branch)
                raise

        logger.info(f"Created worktree {name} at {entry.path} on branch {branch}")
        return entry

    def _rollback_create(self, source_repo: Path, path: Path, branch: str) -> None:
        try:
            self.backend.remove_worktree(source_repo, path, force=True)
            self.backend.delete_branch(source_repo, branch, force=True)
        except SproutError as e:
            logger.warning(f"Rollback incomplete, clean up {path} by hand: {e}")

    def get(self, name: str) -> WorktreeEntry:
        """Get a registered worktree, failing if its directory is gone."""
        entry = self.storage.get(name)
        if not entry.path.is_dir():
            logger.warning(f"Worktree {name} metadata exists but directory missing")
            raise DanglingEntryError(name, entry.path)
        return entry

    def get_path(self, name: str) -> Path:
        """Get the directory of a registered worktree."""
        return self.get(name).path

    def base(self, cwd: Path) -> Path:
        """Return the source repository of the worktree containing ``cwd``.

        Registered worktrees report their recorded source repo. Linked
        worktrees sprout does not track fall back to git's common directory.
        """
        entry = self.storage.find_by_path(self.backend.repo_root(cwd))
        if entry is not None:
            return entry.source_repo
        return self.backend.resolve_base(cwd)

    def list_entries(self) -> List[Tuple[WorktreeEntry, int, bool]]:
        """List worktrees with last-commit time, newest first.

        Returns (entry, last_commit_timestamp, directory_exists) tuples.
        Entries with equal timestamps keep their registry order.
        """
        rows = []
        for entry in self.storage.list():
            exists = entry.path.is_dir()
            timestamp = self.backend.last_commit_time(entry.path) if exists else 0
            rows.append((entry, timestamp, exists))
        return sorted(rows, key=lambda row: row[1], reverse=True)

    def delete(self, name: str, force: bool = False, delete_branch: bool = False) -> WorktreeEntry:
        """Remove a worktree and unregister it.

        If git refuses to remove the worktree the registry is left untouched.
        The branch is deleted last, after the registry has been updated.
        """
        with self.storage.transaction() as storage:
            entry = storage.get(name)
            if entry.path.exists():
                self.backend.remove_worktree(entry.source_repo, entry.path, force=force)
            else:
                logger.warning(f"Worktree {entry.path} does not exist; removing metadata only")
                if entry.source_repo.is_dir():
                    self.backend.prune(entry.source_repo)
            storage.remove(name)

        logger.info(f"Deleted worktree {name}")
        if delete_branch:
            self.backend.delete_branch(entry.source_repo, entry.branch, force=force)
        return entry

    def prune(self) -> List[WorktreeEntry]:
        """Unregister worktrees whose directories no longer exist.

        Returns:
            List of entries that were pruned.
        """
        pruned = []
        with self.storage.transaction() as storage:
            for entry in storage.list():
                if entry.path.is_dir():
                    continue
                logger.info(f"Pruning dangling worktree {entry.name} ({entry.path})")
                if entry.source_repo.is_dir():
                    self.backend.prune(entry.source_repo)
                storage.remove(entry.name)
                pruned.append(entry)

        if not pruned:
            logger.info("No dangling worktrees to prune")
        return pruned

