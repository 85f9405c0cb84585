"""Exceptions raised by sprout."""

from pathlib import Path
from typing import List, Optional, Union


class SproutError(Exception):
    """Base exception for all sprout errors."""


class ConfigError(SproutError):
    """Errors reading or updating the config file."""


class UnknownConfigKeyError(ConfigError):
    """Raised when a config key is not one sprout knows about."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"unknown config key: {key}")


class ConfigParseError(ConfigError):
    """Raised when the config file cannot be parsed."""

    def __init__(self, path: Union[Path, str], message: str):
        self.path = Path(path)
        super().__init__(f"invalid config file {path}: {message}")


class MetadataError(SproutError):
    """Errors reading or updating the worktree registry."""


class DuplicateNameError(MetadataError):
    """Raised when a worktree name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"worktree name already exists: {name}")


class WorktreeNotFoundError(MetadataError):
    """Raised when a worktree name is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"unknown worktree: {name}")


class MetadataParseError(MetadataError):
    """Raised when the metadata file cannot be parsed."""

    def __init__(self, path: Union[Path, str], message: str):
        self.path = Path(path)
        super().__init__(f"invalid metadata file {path}: {message}")


class DanglingEntryError(MetadataError):
    """Raised when a registered worktree directory no longer exists."""

    def __init__(self, name: str, path: Union[Path, str]):
        self.name = name
        self.path = Path(path)
        super().__init__(
            f"worktree {name} is registered at {path} but the directory is missing "
            "(run 'sprout prune' to clean up)"
        )


class InvalidNameError(MetadataError):
    """Raised when a worktree name cannot be used as a directory name."""

    def __init__(self, name: str, reason: str):
        self.name = name
        super().__init__(f"invalid worktree name {name!r}: {reason}")


class BackendError(SproutError):
    """Errors reported by git."""


class WorktreeExistsError(BackendError):
    """Raised when the worktree directory or branch already exists."""

    def __init__(self, what: str):
        super().__init__(f"{what} already exists")


class ToolFailureError(BackendError):
    """Raised when a git command exits non-zero."""

    def __init__(self, command: List[str], stderr: Optional[str] = None):
        self.command = command
        self.stderr = (stderr or "").strip()
        message = f"git command failed: {' '.join(command)}"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)


class NotAWorktreeError(BackendError):
    """Raised when a path is not inside a git worktree."""

    def __init__(self, path: Union[Path, str], message: str = "not inside a git worktree"):
        self.path = Path(path)
        super().__init__(f"{message}: {path}")
