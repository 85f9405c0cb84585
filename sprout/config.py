"""Configuration management for sprout."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import tomli
import tomli_w

from .atomic import write_atomic
from .errors import ConfigParseError, UnknownConfigKeyError

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_PREFIX = "sprout/"
CONFIG_KEYS = ("branch_prefix",)


def get_sprout_home() -> Path:
    """Get the sprout root directory, honoring SPROUT_HOME."""
    sprout_home = os.environ.get("SPROUT_HOME")
    if sprout_home:
        return Path(sprout_home).expanduser()
    return Path.home() / ".sprout"


@dataclass
class SproutPaths:
    """Filesystem layout under the sprout root."""

    root: Path

    @property
    def worktrees_dir(self) -> Path:
        return self.root / "worktrees"

    @property
    def metadata_path(self) -> Path:
        return self.root / "metadata.json"

    @property
    def lock_path(self) -> Path:
        return self.root / "metadata.lock"

    @property
    def config_path(self) -> Path:
        return self.root / "config.toml"

    @classmethod
    def from_env(cls) -> "SproutPaths":
        return cls(root=get_sprout_home())


@dataclass
class SproutConfig:
    """User preferences stored in config.toml."""

    branch_prefix: str = DEFAULT_BRANCH_PREFIX

    def to_dict(self) -> Dict:
        """Convert to dictionary for TOML serialization."""
        return {"branch_prefix": self.branch_prefix}

    @classmethod
    def from_dict(cls, data: Dict) -> "SproutConfig":
        """Create from dictionary."""
        return cls(branch_prefix=data.get("branch_prefix", DEFAULT_BRANCH_PREFIX))


def get_config_path() -> Path:
    """Get the path to the config file."""
    return SproutPaths.from_env().config_path


def load_config(config_path: Optional[Path] = None) -> Dict:
    """Load configuration from file.

    A missing file yields an empty dict.
    """
    config_path = config_path or get_config_path()
    if not config_path.exists():
        return {}

    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except (tomli.TOMLDecodeError, UnicodeDecodeError) as e:
        raise ConfigParseError(config_path, str(e)) from e

    for key in CONFIG_KEYS:
        if key in data and not isinstance(data[key], str):
            raise ConfigParseError(config_path, f"{key} must be a string")
    return data


def save_config(config: Dict, config_path: Optional[Path] = None) -> None:
    """Save configuration to file."""
    config_path = config_path or get_config_path()
    write_atomic(config_path, tomli_w.dumps(config).encode("utf-8"))
    logger.debug(f"Wrote config to {config_path}")


def get_config(config_path: Optional[Path] = None) -> SproutConfig:
    """Get sprout configuration, loading from file if it exists."""
    return SproutConfig.from_dict(load_config(config_path))


def _check_key(key: str) -> None:
    if key not in CONFIG_KEYS:
        raise UnknownConfigKeyError(key)


def get_config_value(key: str, config_path: Optional[Path] = None) -> str:
    """Return the value stored for ``key``, or its default."""
    _check_key(key)
    return getattr(get_config(config_path), key)


def set_config_value(key: str, value: str, config_path: Optional[Path] = None) -> None:
    """Store ``value`` under ``key``, keeping the rest of the file intact."""
    _check_key(key)
    data = load_config(config_path)
    data[key] = value
    save_config(data, config_path)
    logger.info(f"Set {key} = {value!r}")
