"""Test fixtures for sprout tests."""

# Note: Fixtures are imported directly from modules in conftest.py
# This __init__.py enables the fixtures package to be imported

__all__ = [
    "git",
    "isolated_sprout_env",
    "local_git_repo",
]
