"""sprout: minimal git worktree manager."""

from .backend import GitBackend
from .config import SproutConfig, SproutPaths, get_config
from .manager import WorktreeManager
from .models import WorktreeEntry
from .storage import MetadataStorage

__all__ = [
    "GitBackend",
    "SproutConfig",
    "SproutPaths",
    "get_config",
    "WorktreeManager",
    "WorktreeEntry",
    "MetadataStorage",
]
