"""Tests for the worktree manager."""
# pylint: disable=redefined-outer-name

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from sprout.backend import GitBackend
from sprout.config import SproutPaths, set_config_value
from sprout.errors import (
    DanglingEntryError,
    DuplicateNameError,
    InvalidNameError,
    ToolFailureError,
    WorktreeExistsError,
    WorktreeNotFoundError,
)
from sprout.manager import WorktreeManager, make_branch_name, validate_worktree_name
from sprout.models import WorktreeEntry
from sprout.storage import MetadataStorage


@pytest.fixture
def paths(tmp_path):
    return SproutPaths(root=tmp_path / "sprout-home")


@pytest.fixture
def source_repo(tmp_path):
    repo = tmp_path / "source"
    repo.mkdir()
    return repo


@pytest.fixture
def backend(source_repo):
    """A backend double whose create_worktree makes the directory."""
    mock = MagicMock(spec=GitBackend)
    mock.repo_root.return_value = source_repo
    mock.create_worktree.side_effect = lambda repo, path, branch: path.mkdir(parents=True)
    mock.last_commit_time.return_value = 0
    return mock


@pytest.fixture
def manager(paths, backend):
    return WorktreeManager(paths, backend=backend)


def register(paths: SproutPaths, name: str, source_repo: Path, create_dir: bool = True):
    path = paths.worktrees_dir / name
    if create_dir:
        path.mkdir(parents=True)
    storage = MetadataStorage(paths.metadata_path)
    entry = WorktreeEntry(name=name, path=path, source_repo=source_repo, branch=f"sprout/{name}")
    storage.insert(entry)
    storage.save()
    return entry


class TestNames:
    """Tests for name validation and branch naming."""

    @pytest.mark.parametrize("name", ["feat-a", "fix_1", "v1.2", "UPPER"])
    def test_valid_names(self, name):
        """Test names usable as directory names."""
        validate_worktree_name(name)

    @pytest.mark.parametrize("name", ["", "  ", ".", "..", "a/b", "a\\b", "-x"])
    def test_invalid_names(self, name):
        """Test names that are rejected."""
        with pytest.raises(InvalidNameError):
            validate_worktree_name(name)

    def test_branch_name_with_prefix(self):
        """Test the prefix is prepended."""
        assert make_branch_name("sprout/", "feat-a") == "sprout/feat-a"

    def test_branch_name_without_prefix(self):
        """Test an empty prefix leaves the name alone."""
        assert make_branch_name("", "feat-a") == "feat-a"


class TestCreate:
    """Tests for WorktreeManager.create."""

    def test_create_registers_entry(self, manager, backend, paths, source_repo):
        """Test creating a worktree with the default prefix."""
        entry = manager.create("feat-a", source_repo)

        expected_path = (paths.worktrees_dir / "feat-a").resolve()
        assert entry.path == expected_path
        assert entry.branch == "sprout/feat-a"
        assert entry.source_repo == source_repo
        backend.create_worktree.assert_called_once_with(
            source_repo, paths.worktrees_dir / "feat-a", "sprout/feat-a"
        )
        assert MetadataStorage(paths.metadata_path).get("feat-a").path == expected_path

    def test_create_uses_configured_prefix(self, manager, paths, source_repo):
        """Test that branch_prefix from config.toml is used."""
        set_config_value("branch_prefix", "me/", paths.config_path)

        assert manager.create("feat-a", source_repo).branch == "me/feat-a"

    def test_create_then_get_path(self, manager, source_repo):
        """Test that get_path returns the path create produced."""
        entry = manager.create("feat-a", source_repo)

        assert manager.get_path("feat-a") == entry.path

    def test_create_duplicate_name(self, manager, backend, paths, source_repo):
        """Test that a registered name is refused before git runs."""
        original = register(paths, "feat-a", source_repo)

        with pytest.raises(DuplicateNameError):
            manager.create("feat-a", source_repo)

        backend.create_worktree.assert_not_called()
        assert MetadataStorage(paths.metadata_path).get("feat-a") == original

    def test_create_invalid_name(self, manager, backend, source_repo):
        """Test that invalid names are refused before git runs."""
        with pytest.raises(InvalidNameError):
            manager.create("a/b", source_repo)
        backend.repo_root.assert_not_called()

    def test_create_backend_failure_writes_nothing(self, manager, backend, paths, source_repo):
        """Test that a git failure leaves the registry untouched."""
        backend.create_worktree.side_effect = WorktreeExistsError("branch sprout/feat-a")

        with pytest.raises(WorktreeExistsError):
            manager.create("feat-a", source_repo)

        assert MetadataStorage(paths.metadata_path).list() == []

    def test_create_rolls_back_when_save_fails(self, manager, backend, paths, source_repo):
        """Test that the worktree and branch are removed if registering fails."""
        with patch.object(MetadataStorage, "save", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                manager.create("feat-a", source_repo)

        backend.remove_worktree.assert_called_once_with(
            source_repo, paths.worktrees_dir / "feat-a", force=True
        )
        backend.delete_branch.assert_called_once_with(source_repo, "sprout/feat-a", force=True)
        assert not paths.metadata_path.exists()

    def test_rollback_failure_keeps_original_error(self, manager, backend, source_repo):
        """Test that a failing rollback does not mask the original error."""
        backend.remove_worktree.side_effect = ToolFailureError(["git"], "locked")

        with patch.object(MetadataStorage, "save", side_effect=OSError("disk full")):
            with pytest.raises(OSError, match="disk full"):
                manager.create("feat-a", source_repo)


class TestGet:
    """Tests for lookups."""

    def test_get_unknown(self, manager):
        """Test that unknown names raise WorktreeNotFoundError."""
        with pytest.raises(WorktreeNotFoundError):
            manager.get_path("nope")

    def test_get_dangling(self, paths, backend, source_repo):
        """Test that an entry without a directory is reported as dangling."""
        register(paths, "gone", source_repo, create_dir=False)
        manager = WorktreeManager(paths, backend=backend)

        with pytest.raises(DanglingEntryError, match="prune"):
            manager.get_path("gone")

    def test_base_prefers_registry(self, paths, backend, source_repo):
        """Test that a registered worktree reports its recorded source repo."""
        entry = register(paths, "feat-a", source_repo)
        backend.repo_root.return_value = entry.path
        manager = WorktreeManager(paths, backend=backend)

        assert manager.base(entry.path) == source_repo
        backend.resolve_base.assert_not_called()

    def test_base_falls_back_to_git(self, manager, backend, tmp_path):
        """Test that unregistered worktrees are resolved through git."""
        backend.repo_root.return_value = tmp_path / "other-wt"
        backend.resolve_base.return_value = tmp_path / "other-repo"

        assert manager.base(tmp_path / "other-wt") == tmp_path / "other-repo"


class TestList:
    """Tests for list_entries ordering."""

    def test_empty(self, manager):
        """Test listing an empty registry."""
        assert manager.list_entries() == []

    def test_sorted_newest_first(self, paths, backend, source_repo):
        """Test that entries are sorted by last commit time, descending."""
        for name in ("old", "new", "mid"):
            register(paths, name, source_repo)
        times = {"old": 100, "new": 300, "mid": 200}
        backend.last_commit_time.side_effect = lambda path: times[Path(path).name]
        manager = WorktreeManager(paths, backend=backend)

        assert [row[0].name for row in manager.list_entries()] == ["new", "mid", "old"]

    def test_ties_keep_registry_order(self, paths, backend, source_repo):
        """Test that equal timestamps keep a stable order."""
        for name in ("b", "a", "c"):
            register(paths, name, source_repo)
        backend.last_commit_time.return_value = 500
        manager = WorktreeManager(paths, backend=backend)

        assert [row[0].name for row in manager.list_entries()] == ["b", "a", "c"]

    def test_dangling_entries_flagged(self, paths, backend, source_repo):
        """Test that missing directories are reported and not queried."""
        register(paths, "gone", source_repo, create_dir=False)
        manager = WorktreeManager(paths, backend=backend)

        (entry, timestamp, exists), = manager.list_entries()
        assert entry.name == "gone"
        assert timestamp == 0
        assert exists is False
        backend.last_commit_time.assert_not_called()


class TestDelete:
    """Tests for WorktreeManager.delete."""

    def test_delete(self, paths, backend, source_repo):
        """Test deleting removes the worktree and the entry."""
        entry = register(paths, "feat-a", source_repo)
        manager = WorktreeManager(paths, backend=backend)

        manager.delete("feat-a")

        backend.remove_worktree.assert_called_once_with(source_repo, entry.path, force=False)
        backend.delete_branch.assert_not_called()
        with pytest.raises(WorktreeNotFoundError):
            manager.get_path("feat-a")

    def test_delete_with_branch(self, paths, backend, source_repo):
        """Test deleting the branch as well."""
        register(paths, "feat-a", source_repo)
        manager = WorktreeManager(paths, backend=backend)

        manager.delete("feat-a", force=True, delete_branch=True)

        backend.delete_branch.assert_called_once_with(source_repo, "sprout/feat-a", force=True)

    def test_delete_unknown(self, manager, backend):
        """Test deleting an unknown name."""
        with pytest.raises(WorktreeNotFoundError):
            manager.delete("nope")
        backend.remove_worktree.assert_not_called()

    def test_delete_backend_failure_keeps_entry(self, paths, backend, source_repo):
        """Test that a git failure leaves the entry registered."""
        register(paths, "feat-a", source_repo)
        backend.remove_worktree.side_effect = ToolFailureError(["git"], "contains modified files")
        manager = WorktreeManager(paths, backend=backend)

        with pytest.raises(ToolFailureError):
            manager.delete("feat-a")

        assert MetadataStorage(paths.metadata_path).get("feat-a").name == "feat-a"

    def test_delete_branch_failure_still_unregisters(self, paths, backend, source_repo):
        """Test that a refused branch delete does not leave a stale entry."""
        register(paths, "feat-a", source_repo)
        backend.delete_branch.side_effect = ToolFailureError(["git"], "not fully merged")
        manager = WorktreeManager(paths, backend=backend)

        with pytest.raises(ToolFailureError):
            manager.delete("feat-a", delete_branch=True)

        assert MetadataStorage(paths.metadata_path).list() == []

    def test_delete_dangling(self, paths, backend, source_repo):
        """Test deleting an entry whose directory is already gone."""
        register(paths, "gone", source_repo, create_dir=False)
        manager = WorktreeManager(paths, backend=backend)

        manager.delete("gone")

        backend.remove_worktree.assert_not_called()
        backend.prune.assert_called_once_with(source_repo)
        assert MetadataStorage(paths.metadata_path).list() == []


class TestPrune:
    """Tests for WorktreeManager.prune."""

    def test_prune_dangling_only(self, paths, backend, source_repo):
        """Test that only entries without directories are dropped."""
        register(paths, "alive", source_repo)
        register(paths, "gone", source_repo, create_dir=False)
        manager = WorktreeManager(paths, backend=backend)

        pruned = manager.prune()

        assert [e.name for e in pruned] == ["gone"]
        backend.prune.assert_called_once_with(source_repo)
        names = [e.name for e in MetadataStorage(paths.metadata_path).list()]
        assert names == ["alive"]

    def test_prune_nothing(self, paths, backend, source_repo):
        """Test pruning when everything exists."""
        register(paths, "alive", source_repo)
        manager = WorktreeManager(paths, backend=backend)

        assert manager.prune() == []
        backend.prune.assert_not_called()
