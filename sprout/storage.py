"""Storage utilities for worktree metadata."""

import fcntl
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from .atomic import write_atomic
from .config import SproutPaths
from .errors import DuplicateNameError, MetadataParseError, WorktreeNotFoundError
from .models import WorktreeEntry

logger = logging.getLogger(__name__)


def _get_default_metadata_path() -> Path:
    """Get the default metadata path, honoring SPROUT_HOME."""
    return SproutPaths.from_env().metadata_path


class MetadataStorage:
    """Handles persistent storage of the worktree registry.

    The whole file is loaded into memory, mutated, and written back in one
    piece. Use :meth:`transaction` for load-modify-save so that concurrent
    sprout processes serialize on an advisory lock.
    """

    def __init__(self, metadata_path: Optional[Path] = None):
        """Initialize metadata storage."""
        if metadata_path is None:
            metadata_path = _get_default_metadata_path()
        self.metadata_path = metadata_path
        self.lock_path = metadata_path.with_suffix(".lock")
        self.worktrees: Dict[str, WorktreeEntry] = {}
        self.load()

    def load(self) -> None:
        """Load metadata from disk. A missing file is an empty registry."""
        self.worktrees = {}
        if not self.metadata_path.exists():
            return

        try:
            with open(self.metadata_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MetadataParseError(self.metadata_path, str(e)) from e

        if not isinstance(data, dict):
            raise MetadataParseError(self.metadata_path, "expected a JSON object")

        raw = data.get("worktrees", {})
        # Older files stored a list of entries instead of a mapping
        if isinstance(raw, list):
            items = [(None, entry_data) for entry_data in raw]
        elif isinstance(raw, dict):
            items = list(raw.items())
        else:
            raise MetadataParseError(self.metadata_path, "'worktrees' must be an object")

        for key, entry_data in items:
            if not isinstance(entry_data, dict):
                raise MetadataParseError(self.metadata_path, f"bad entry for {key}")
            if key is not None and "name" not in entry_data:
                entry_data = dict(entry_data, name=key)
            try:
                entry = WorktreeEntry.from_dict(entry_data)
            except (ValueError, OverflowError, OSError) as e:
                raise MetadataParseError(self.metadata_path, f"bad entry for {key}: {e}") from e
            if entry.name in self.worktrees:
                raise MetadataParseError(
                    self.metadata_path, f"duplicate worktree name {entry.name}"
                )
            self.worktrees[entry.name] = entry

    def save(self) -> None:
        """Save metadata to disk."""
        data = {"worktrees": {name: entry.to_dict() for name, entry in self.worktrees.items()}}
        write_atomic(self.metadata_path, (json.dumps(data, indent=2) + "\n").encode("utf-8"))
        logger.debug(f"Saved {len(self.worktrees)} worktree(s) to {self.metadata_path}")

    @contextmanager
    def transaction(self) -> Iterator["MetadataStorage"]:
        """Hold the metadata lock for a load-modify-save cycle.

        The registry is reloaded once the lock is held and saved when the
        block exits normally. On an exception nothing is written.
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "w", encoding="utf-8") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            try:
                self.load()
                yield self
                self.save()
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)

    def insert(self, entry: WorktreeEntry) -> None:
        """Register a new worktree."""
        if entry.name in self.worktrees:
            raise DuplicateNameError(entry.name)
        self.worktrees[entry.name] = entry

    def get(self, name: str) -> WorktreeEntry:
        """Get a worktree by name."""
        try:
            return self.worktrees[name]
        except KeyError:
            raise WorktreeNotFoundError(name) from None

    def remove(self, name: str) -> WorktreeEntry:
        """Unregister a worktree and return its entry."""
        try:
            return self.worktrees.pop(name)
        except KeyError:
            raise WorktreeNotFoundError(name) from None

    def list(self) -> List[WorktreeEntry]:
        """List all worktrees."""
        return list(self.worktrees.values())

    def find_by_path(self, path: Path) -> Optional[WorktreeEntry]:
        """Find the entry registered for ``path``, comparing resolved paths."""
        target = Path(path).resolve()
        for entry in self.worktrees.values():
            if entry.path.resolve() == target:
                return entry
        return None
