"""Pytest fixtures for git-worktree-manager tests"""
import os
import tempfile
from pathlib import Path

import pytest
import git

from git_worktree_manager.config import NamingSettings, ResolvedConfig, WorktreeSettings
from git_worktree_manager.core.lifecycle import WorktreeLifecycleManager


def commit_file(repo, name, content, message):
    """Write a file in the repo's working tree and commit it."""
    path = Path(repo.working_tree_dir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([name])
    repo.index.commit(message)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(os.path.realpath(tmpdir))


@pytest.fixture
def git_repo(temp_dir):
    """Create a real Git repository for testing."""
    repo_path = temp_dir / "test_repo"
    repo_path.mkdir()

    # Initialize repository
    repo = git.Repo.init(repo_path)

    # Configure git user for commits
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    # Create initial commit on main branch
    commit_file(repo, "README.md", "# Test Repository\n", "Initial commit")

    # Rename master to main if needed
    repo.git.branch('-M', 'main')

    # Add a fake GitHub remote for testing
    repo.create_remote('origin', 'git@github.com:test/test-repo.git')

    yield repo

    # Cleanup
    repo.close()


@pytest.fixture
def repo_path(git_repo):
    return str(Path(git_repo.working_tree_dir))


@pytest.fixture
def worktrees_dir(temp_dir):
    return temp_dir / "worktrees"


@pytest.fixture
def make_config(repo_path, worktrees_dir):
    """Factory for a ResolvedConfig pointing worktrees into the temp dir."""

    def _make(**overrides):
        values = dict(
            worktree=WorktreeSettings(basedir=str(worktrees_dir), auto_mkdir=True),
            naming=NamingSettings(),
            repo_root=repo_path,
            origin_url="git@github.com:test/test-repo.git",
        )
        values.update(overrides)
        return ResolvedConfig(**values)

    return _make


@pytest.fixture
def make_lifecycle(make_config):
    """Factory for lifecycle managers; pools are shut down after the test."""
    managers = []

    def _make(**overrides):
        manager = WorktreeLifecycleManager(make_config(**overrides), max_workers=2)
        managers.append(manager)
        return manager

    yield _make

    for manager in managers:
        manager.shutdown(wait=True)


@pytest.fixture
def git_repo_with_worktrees(git_repo, temp_dir):
    """Repository with worktrees A (merged), B (unmerged) and C (merged)."""
    repo = git_repo
    wt_root = temp_dir / "existing"
    wt_root.mkdir()

    for name in ("feature-a", "feature-b", "feature-c"):
        repo.git.branch(name)

    # Commits on A and C are merged back into main; B keeps an extra commit
    for name in ("feature-a", "feature-c"):
        repo.git.checkout(name)
        commit_file(repo, f"{name}.txt", f"{name}\n", f"Add {name}")
        repo.git.checkout("main")
        repo.git.merge(name, "--no-ff", "-m", f"Merge {name}")

    repo.git.checkout("feature-b")
    commit_file(repo, "feature-b.txt", "feature-b\n", "Add feature-b")
    repo.git.checkout("main")

    for name in ("feature-a", "feature-b", "feature-c"):
        repo.git.worktree("add", str(wt_root / name), name)

    yield repo
