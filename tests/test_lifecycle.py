"""Integration tests for the worktree lifecycle manager using real git repositories"""
from pathlib import Path

import git
import pytest

from git_worktree_manager.config import HookEvent, HookSpec, NamingSettings, WorktreeSettings
from git_worktree_manager.exceptions import (
    GitOperationFailed,
    InvalidBranch,
    PathConflict,
    TaskRejected,
)
from git_worktree_manager.models.task import CreateRequest, DeleteRequest, TaskKind, TaskStatus

TIMEOUT = 30
SLOW_PRE_DELETE = (HookSpec(event=HookEvent.PRE_DELETE, command="sleep 1"),)


def paths_of(worktrees):
    return [wt.path for wt in worktrees]


class TestQueries:
    """Test listing worktrees and branches."""

    def test_list_includes_main(self, make_lifecycle, repo_path):
        manager = make_lifecycle()
        worktrees = manager.list()
        assert len(worktrees) == 1
        assert worktrees[0].path == repo_path
        assert worktrees[0].is_main is True
        assert worktrees[0].branch == "main"

    def test_list_sorted_by_path(self, git_repo_with_worktrees, make_lifecycle, repo_path, temp_dir):
        worktrees = make_lifecycle().list()
        assert paths_of(worktrees) == sorted(paths_of(worktrees))
        assert set(paths_of(worktrees)) == {
            repo_path,
            str(temp_dir / "existing" / "feature-a"),
            str(temp_dir / "existing" / "feature-b"),
            str(temp_dir / "existing" / "feature-c"),
        }
        assert sum(wt.is_main for wt in worktrees) == 1

    def test_merged_worktrees(self, git_repo_with_worktrees, make_lifecycle):
        merged = make_lifecycle().merged_worktrees()
        assert sorted(wt.branch for wt in merged) == ["feature-a", "feature-c"]

    def test_list_branches(self, git_repo_with_worktrees, make_lifecycle):
        git_repo_with_worktrees.git.branch("spare")
        branches = {b.name: b for b in make_lifecycle().list_branches()}
        assert branches["feature-a"].is_merged is True
        assert branches["feature-a"].has_worktree is True
        assert branches["feature-b"].is_merged is False
        assert branches["spare"].has_worktree is False
        assert branches["spare"].is_merged is False
        assert branches["main"].is_merged is False

    def test_details(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        target = temp_dir / "existing" / "feature-b"
        (target / "notes.txt").write_text("x\n")
        details = make_lifecycle().details(str(target))
        assert details.changes.added == 1
        assert details.commits[0].subject == "Add feature-b"


class TestCreate:
    """Test worktree creation."""

    def test_create_new_branch(self, make_lifecycle, worktrees_dir, git_repo):
        manager = make_lifecycle()
        task = manager.create("feature/login", request_id=5)
        assert task.kind == TaskKind.CREATE
        assert task.request_id == 5

        result = manager.wait(task, timeout=TIMEOUT)
        target = worktrees_dir / "feature-login"
        assert result.ok, result.error
        assert result.worktree_path == str(target)
        assert result.branch == "feature/login"
        assert target.is_dir()
        assert "feature/login" in [head.name for head in git_repo.heads]
        assert str(target) in paths_of(manager.list())
        assert manager.drain() == [result]
        assert not manager.is_inflight(str(target))

    def test_create_existing_branch(self, make_lifecycle, worktrees_dir, git_repo):
        git_repo.git.branch("spare")
        manager = make_lifecycle()
        result = manager.wait(manager.create("spare", new_branch=False), timeout=TIMEOUT)
        assert result.ok, result.error
        created = [wt for wt in manager.list() if wt.path == str(worktrees_dir / "spare")]
        assert created[0].branch == "spare"

    def test_create_from_remote_branch(self, make_lifecycle, worktrees_dir, git_repo, temp_dir):
        """A remote-only branch gets a local tracking branch."""
        upstream = temp_dir / "upstream.git"
        git_repo.git.clone("--bare", git_repo.working_tree_dir, str(upstream))
        git_repo.git.remote("set-url", "origin", str(upstream))
        git_repo.git.push("origin", "main:remote-topic")
        git_repo.git.fetch("origin")

        manager = make_lifecycle()
        result = manager.wait(manager.create("remote-topic", new_branch=False), timeout=TIMEOUT)
        assert result.ok, result.error
        assert "remote-topic" in [head.name for head in git_repo.heads]
        assert git_repo.heads["remote-topic"].tracking_branch().name == "origin/remote-topic"

    def test_template_and_remote_variables(self, make_lifecycle, worktrees_dir):
        manager = make_lifecycle(naming=NamingSettings(template="{owner}/{repository}/{branch}"))
        result = manager.wait(manager.create("topic"), timeout=TIMEOUT)
        assert result.worktree_path == str(worktrees_dir / "test" / "test-repo" / "topic")

    def test_invalid_branch_name(self, make_lifecycle):
        with pytest.raises(InvalidBranch, match="not a valid branch name"):
            make_lifecycle().create("bad..name")

    def test_branch_already_exists(self, git_repo_with_worktrees, make_lifecycle):
        with pytest.raises(InvalidBranch, match="already exists"):
            make_lifecycle().create("feature-b")

    def test_branch_already_checked_out(self, git_repo_with_worktrees, make_lifecycle):
        with pytest.raises(InvalidBranch, match="already checked out"):
            make_lifecycle().create("feature-b", new_branch=False)

    def test_missing_branch(self, make_lifecycle):
        with pytest.raises(InvalidBranch, match="does not exist"):
            make_lifecycle().create("nowhere", new_branch=False)

    def test_target_exists(self, make_lifecycle, worktrees_dir):
        (worktrees_dir / "taken").mkdir(parents=True)
        with pytest.raises(PathConflict) as exc_info:
            make_lifecycle().create("taken")
        assert exc_info.value.path == str(worktrees_dir / "taken")

    def test_basedir_without_auto_mkdir(self, make_lifecycle, temp_dir):
        settings = WorktreeSettings(basedir=str(temp_dir / "missing"), auto_mkdir=False)
        with pytest.raises(PathConflict, match="auto_mkdir"):
            make_lifecycle(worktree=settings).create("topic")

    def test_basedir_created(self, make_lifecycle, worktrees_dir):
        assert not worktrees_dir.exists()
        manager = make_lifecycle()
        manager.wait(manager.create("topic"), timeout=TIMEOUT)
        assert worktrees_dir.is_dir()

    def test_copy_files_and_setup(self, make_lifecycle, repo_path, worktrees_dir):
        root = Path(repo_path)
        (root / ".env").write_text("SECRET=1\n")
        (root / "config").mkdir()
        (root / "config" / "local.yml").write_text("a: 1\n")
        manager = make_lifecycle(
            copy_files=(".env", "config/*.yml", "missing.txt"),
            setup_commands=("touch setup-ran",),
        )
        result = manager.wait(manager.create("topic"), timeout=TIMEOUT)
        target = worktrees_dir / "topic"
        assert result.ok, result.error
        assert (target / ".env").read_text() == "SECRET=1\n"
        assert (target / "config" / "local.yml").exists()
        assert (target / "setup-ran").exists()

    def test_setup_failure_is_partial(self, make_lifecycle, repo_path, worktrees_dir):
        """The worktree and copied files stay when a setup command fails."""
        (Path(repo_path) / ".env").write_text("SECRET=1\n")
        manager = make_lifecycle(copy_files=(".env",), setup_commands=("false", "touch never"))
        result = manager.wait(manager.create("topic"), timeout=TIMEOUT)
        target = worktrees_dir / "topic"

        assert result.status == TaskStatus.FAILED
        assert result.partial is True
        assert result.error_code == "hook_failed"
        assert result.worktree_path == str(target)
        assert target.is_dir()
        assert (target / ".env").exists()
        assert not (target / "never").exists()
        assert str(target) in paths_of(manager.list())

    def test_pre_create_failure_creates_nothing(self, make_lifecycle, worktrees_dir, git_repo):
        hooks = (HookSpec(event=HookEvent.PRE_CREATE, command="echo nope >&2; exit 3"),)
        manager = make_lifecycle(hooks=hooks)
        result = manager.wait(manager.create("topic"), timeout=TIMEOUT)
        assert result.status == TaskStatus.FAILED
        assert result.partial is False
        assert result.error.returncode == 3
        assert result.error.output == "nope"
        assert not (worktrees_dir / "topic").exists()
        assert "topic" not in [head.name for head in git_repo.heads]

    def test_post_create_hook_sees_variables(self, make_lifecycle, worktrees_dir):
        hooks = (HookSpec(event=HookEvent.POST_CREATE, command='echo "$WORKTREE_BRANCH" > branch.txt'),)
        manager = make_lifecycle(hooks=hooks)
        manager.wait(manager.create("feature/hooked"), timeout=TIMEOUT)
        assert (worktrees_dir / "feature-hooked" / "branch.txt").read_text().strip() == "feature/hooked"


class TestDelete:
    """Test worktree deletion."""

    def test_delete(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        target = str(temp_dir / "existing" / "feature-b")
        manager = make_lifecycle()
        result = manager.wait(manager.delete(target), timeout=TIMEOUT)
        assert result.ok, result.error
        assert result.branch is None
        assert not Path(target).exists()
        assert target not in paths_of(manager.list())
        assert "feature-b" in [head.name for head in git_repo_with_worktrees.heads]

    def test_delete_with_branch(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        target = str(temp_dir / "existing" / "feature-b")
        manager = make_lifecycle()
        result = manager.wait(manager.delete(target, delete_branch=True), timeout=TIMEOUT)
        assert result.ok, result.error
        assert result.branch == "feature-b"
        assert "feature-b" not in [head.name for head in git_repo_with_worktrees.heads]

    def test_delete_dirty_worktree(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        target = temp_dir / "existing" / "feature-a"
        (target / "scratch.txt").write_text("uncommitted\n")
        manager = make_lifecycle()
        result = manager.wait(manager.delete(str(target)), timeout=TIMEOUT)
        assert result.ok, result.error
        assert not target.exists()

    def test_delete_main_is_refused(self, make_lifecycle, repo_path):
        with pytest.raises(PathConflict, match="main worktree"):
            make_lifecycle().delete(repo_path)

    def test_delete_unknown_path(self, make_lifecycle, temp_dir):
        with pytest.raises(GitOperationFailed, match="not a worktree"):
            make_lifecycle().delete(str(temp_dir / "nowhere"))

    def test_double_delete_is_rejected(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        """Only one task may target a worktree at a time."""
        target = str(temp_dir / "existing" / "feature-b")
        manager = make_lifecycle(hooks=SLOW_PRE_DELETE)

        first = manager.delete(target)
        assert manager.is_inflight(target)
        with pytest.raises(TaskRejected) as exc_info:
            manager.delete(target)
        assert exc_info.value.task_id == first.id
        with pytest.raises(TaskRejected):
            manager.rebase(target)

        result = manager.wait(first, timeout=TIMEOUT)
        assert result.ok, result.error
        assert manager.drain() == [result]
        assert not manager.is_inflight(target)

    def test_post_delete_failure_is_partial(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        target = temp_dir / "existing" / "feature-b"
        hooks = (HookSpec(event=HookEvent.POST_DELETE, command="exit 1"),)
        manager = make_lifecycle(hooks=hooks)
        result = manager.wait(manager.delete(str(target)), timeout=TIMEOUT)
        assert result.status == TaskStatus.FAILED
        assert result.partial is True
        assert not target.exists()

    def test_submit_request(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        target = str(temp_dir / "existing" / "feature-b")
        manager = make_lifecycle()
        task = manager.submit(DeleteRequest(request_id=9, path=target, delete_branch=True))
        result = manager.wait(task, timeout=TIMEOUT)
        assert result.request_id == 9
        assert result.kind == TaskKind.DELETE


class TestPrune:
    """Test pruning merged worktrees."""

    def test_prune_merged(self, git_repo_with_worktrees, make_lifecycle, repo_path, temp_dir):
        manager = make_lifecycle()
        result = manager.wait(manager.prune(), timeout=TIMEOUT)

        assert result.ok, result.error
        assert result.succeeded == 2
        assert result.failed == 0
        assert paths_of(manager.list()) == sorted([repo_path, str(temp_dir / "existing" / "feature-b")])
        assert not (temp_dir / "existing" / "feature-a").exists()
        assert not (temp_dir / "existing" / "feature-c").exists()
        # Branches are kept unless requested
        assert "feature-a" in [head.name for head in git_repo_with_worktrees.heads]

    def test_prune_with_branches(self, git_repo_with_worktrees, make_lifecycle):
        manager = make_lifecycle()
        result = manager.wait(manager.prune(delete_branch=True), timeout=TIMEOUT)
        assert result.succeeded == 2
        heads = [head.name for head in git_repo_with_worktrees.heads]
        assert "feature-a" not in heads
        assert "feature-c" not in heads
        assert "feature-b" in heads

    def test_prune_nothing(self, make_lifecycle):
        manager = make_lifecycle()
        result = manager.wait(manager.prune(), timeout=TIMEOUT)
        assert result.ok
        assert result.succeeded == 0
        assert result.paths == ()

    def test_prune_counts_failures(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        hooks = (HookSpec(event=HookEvent.PRE_DELETE, command='test "$WORKTREE_NAME" != feature-c'),)
        manager = make_lifecycle(hooks=hooks)
        result = manager.wait(manager.prune(), timeout=TIMEOUT)
        assert result.status == TaskStatus.FAILED
        assert result.succeeded == 1
        assert result.failed == 1
        assert (temp_dir / "existing" / "feature-c").exists()
        assert not (temp_dir / "existing" / "feature-a").exists()

    def test_prune_skips_inflight(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        feature_a = str(temp_dir / "existing" / "feature-a")
        manager = make_lifecycle(hooks=SLOW_PRE_DELETE)
        delete_task = manager.delete(feature_a)
        prune_task = manager.prune()
        assert prune_task.paths == (str(temp_dir / "existing" / "feature-c"),)

        assert manager.wait(delete_task, timeout=TIMEOUT).ok
        assert manager.wait(prune_task, timeout=TIMEOUT).succeeded == 1

    def test_prune_keeps_fresh_worktree(self, git_repo_with_worktrees, make_lifecycle):
        manager = make_lifecycle()
        created = manager.wait(manager.create("fresh-work"), timeout=TIMEOUT)
        assert created.ok, created.error
        notes = Path(created.worktree_path) / "notes.txt"
        notes.write_text("uncommitted\n")

        assert "fresh-work" not in [wt.branch for wt in manager.merged_worktrees()]
        result = manager.wait(manager.prune(), timeout=TIMEOUT)
        assert result.succeeded == 2
        assert created.worktree_path not in result.paths
        assert notes.read_text() == "uncommitted\n"

    def test_prune_counts_removed_worktree_with_failed_cleanup(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        hooks = (HookSpec(event=HookEvent.POST_DELETE, command='test "$WORKTREE_NAME" != feature-c'),)
        manager = make_lifecycle(hooks=hooks)
        result = manager.wait(manager.prune(), timeout=TIMEOUT)
        assert result.status == TaskStatus.FAILED
        assert result.partial is True
        assert result.succeeded == 2
        assert result.failed == 0
        assert not (temp_dir / "existing" / "feature-c").exists()
        assert any(line.startswith(f"deleted {temp_dir / 'existing' / 'feature-c'}, but:") for line in result.details)


class TestRebase:
    def test_rebase_onto_default(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        target = temp_dir / "existing" / "feature-b"
        manager = make_lifecycle()
        result = manager.wait(manager.rebase(str(target)), timeout=TIMEOUT)
        assert result.ok, result.error
        assert result.message == "main"
        # Files merged into main are now in the rebased worktree
        assert (target / "feature-a.txt").exists()
        assert (target / "feature-b.txt").exists()

    def test_rebase_conflict_is_reported(self, git_repo_with_worktrees, make_lifecycle, temp_dir, repo_path):
        target = temp_dir / "existing" / "feature-b"
        (Path(repo_path) / "feature-b.txt").write_text("main side\n")
        git_repo_with_worktrees.index.add(["feature-b.txt"])
        git_repo_with_worktrees.index.commit("Conflicting change")
        manager = make_lifecycle()
        result = manager.wait(manager.rebase(str(target)), timeout=TIMEOUT)
        assert result.status == TaskStatus.FAILED
        assert result.error_code == "git_operation_failed"
        git.Repo(str(target)).git.rebase("--abort")

    def test_rebase_default_branch_is_refused(self, make_lifecycle, repo_path):
        with pytest.raises(InvalidBranch, match="default branch"):
            make_lifecycle().rebase(repo_path)

    def test_rebase_detached_is_refused(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        target = temp_dir / "existing" / "feature-c"
        git.Repo(str(target)).git.checkout("--detach")
        with pytest.raises(InvalidBranch, match="detached HEAD"):
            make_lifecycle().rebase(str(target))


class TestConcurrency:
    def test_independent_tasks_run_together(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        manager = make_lifecycle(hooks=SLOW_PRE_DELETE)
        tasks = [
            manager.delete(str(temp_dir / "existing" / "feature-a")),
            manager.delete(str(temp_dir / "existing" / "feature-b")),
            manager.submit(CreateRequest(request_id=1, branch="topic")),
        ]
        assert len({task.id for task in tasks}) == 3
        results = [manager.wait(task, timeout=TIMEOUT) for task in tasks]
        assert all(result.ok for result in results), [r.error for r in results]
        drained = manager.drain()
        assert sorted(r.task_id for r in drained) == sorted(task.id for task in tasks)

    def test_finished_tasks_are_released(self, git_repo_with_worktrees, make_lifecycle, temp_dir):
        manager = make_lifecycle()
        task = manager.delete(str(temp_dir / "existing" / "feature-a"))
        result = manager.wait(task, timeout=TIMEOUT)
        assert result.ok
        assert manager._futures == {}
        assert task.result is result
        # Waiting again returns the recorded result
        assert manager.wait(task) is result
