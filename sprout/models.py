"""Data models for sprout."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict


@dataclass
class WorktreeEntry:
    """Represents a worktree registered with sprout."""

    name: str
    path: Path
    source_repo: Path
    branch: str
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        """Ensure paths are Path objects."""
        if isinstance(self.path, str):
            self.path = Path(self.path)
        if isinstance(self.source_repo, str):
            self.source_repo = Path(self.source_repo)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["path"] = str(self.path)
        data["source_repo"] = str(self.source_repo)
        data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "WorktreeEntry":
        """Create from dictionary.

        ``created_at`` may be an ISO-8601 string, epoch seconds, or missing.
        """
        for key in ("name", "path", "source_repo", "branch"):
            if not isinstance(data.get(key), str):
                raise ValueError(f"field {key!r} must be a string")

        entry = cls(
            name=data["name"],
            path=Path(data["path"]),
            source_repo=Path(data["source_repo"]),
            branch=data["branch"],
        )

        created_at = data.get("created_at")
        if isinstance(created_at, str):
            entry.created_at = datetime.fromisoformat(created_at)
        elif isinstance(created_at, (int, float)) and not isinstance(created_at, bool):
            entry.created_at = datetime.fromtimestamp(created_at)

        return entry
