"""Worktree operations service for git-worktree-manager."""

import os
from typing import Any, Dict, List, Optional

import git

from git_worktree_manager.exceptions import GitOperationFailed, PermissionDenied, WorktreeOperationError
from git_worktree_manager.logging_config import get_logger
from git_worktree_manager.models.worktree import ChangedFiles, CommitSummary, Worktree, WorktreeDetails

logger = get_logger(__name__)

RECENT_COMMITS = 5
# short sha, subject, author, parent shas
LOG_FORMAT = "%h%x1f%s%x1f%an%x1f%p"


def translate_git_error(operation: str, error: git.exc.GitCommandError, target: Optional[str] = None) -> WorktreeOperationError:
    """Turn a GitCommandError into the task error taxonomy."""
    stderr = (error.stderr if getattr(error, "stderr", None) else str(error)).strip()
    # GitPython prefixes captured stderr with "stderr: '...'"
    if stderr.startswith("stderr: "):
        stderr = stderr[len("stderr: "):].strip("'\n ")
    status = error.status if getattr(error, "status", None) is not None else "unknown"

    if "Permission denied" in stderr:
        return PermissionDenied(target or operation, stderr)

    if stderr:
        message = f"(exit {status}) {stderr}"
    else:
        message = f"exit code {status}"
    return GitOperationFailed(operation, message, target)


class WorktreeService:
    """Service for managing git worktrees."""

    def __init__(self, repo_path: str):
        """Initialize the worktree service.

        Args:
            repo_path: Path to the main repository checkout
        """
        self.repo_path = repo_path

    def _get_repo(self):
        """Get a thread-safe git.Repo instance.

        Creates a new repo instance for each call so worker threads never share one.
        """
        return git.Repo(self.repo_path)

    def list_worktrees(self) -> List[Worktree]:
        """List all worktrees with HEAD summary and dirty state.

        Raises:
            GitOperationFailed: if ``git worktree list`` fails
        """
        try:
            repo = self._get_repo()
            output = repo.git.worktree("list", "--porcelain")
        except git.exc.GitCommandError as e:
            raise translate_git_error("worktree list", e) from e

        worktrees = [self._build_worktree(repo, entry, index == 0)
                     for index, entry in enumerate(self.parse_porcelain(output))]
        logger.debug(f"Found {len(worktrees)} worktrees")
        for wt in worktrees:
            logger.debug(f"  {wt}")
        return worktrees

    @staticmethod
    def parse_porcelain(output: str) -> List[Dict[str, Any]]:
        """Parse ``git worktree list --porcelain``.

        Format (blank line between worktrees)::

            worktree /path/to/worktree
            HEAD commit_sha
            branch refs/heads/branch-name   | detached
            locked [reason]
        """
        entries: List[Dict[str, Any]] = []
        current: Dict[str, Any] = {}
        for line in output.splitlines() + [""]:
            line = line.strip()
            if not line:
                if current.get("path"):
                    entries.append(current)
                current = {}
                continue

            keyword, _, value = line.partition(" ")
            if keyword == "worktree":
                current["path"] = value
            elif keyword == "HEAD":
                current["head"] = value
            elif keyword == "branch":
                current["branch"] = value[len("refs/heads/"):] if value.startswith("refs/heads/") else None
            elif keyword == "detached":
                current["branch"] = None
            elif keyword == "locked":
                current["locked"] = True
            elif keyword == "bare":
                current["bare"] = True
        return entries

    def _build_worktree(self, repo, entry: Dict[str, Any], is_main: bool) -> Worktree:
        path = entry["path"]
        head = entry.get("head", "")
        exists = os.path.isdir(path)
        summary = ""
        is_dirty = False
        if exists and not entry.get("bare"):
            summary = self._head_summary(repo, path)
            is_dirty = self.is_dirty(path)
        return Worktree(
            path=path,
            branch=entry.get("branch"),
            head=head,
            summary=summary,
            is_dirty=is_dirty,
            is_main=is_main,
            is_locked=entry.get("locked", False),
            is_orphaned=not exists,
        )

    @staticmethod
    def _head_summary(repo, path: str) -> str:
        try:
            return repo.git.execute(["git", "-C", path, "log", "-1", "--format=%s"]).strip()
        except git.exc.GitCommandError as e:
            # Fresh worktree on an unborn branch has no commit
            logger.debug(f"Could not read HEAD summary of {path}: {e}")
            return ""

    def is_dirty(self, worktree_path: str) -> bool:
        """Whether the worktree has staged, modified or untracked files."""
        try:
            repo = self._get_repo()
            status = repo.git.execute(["git", "-C", worktree_path, "status", "--porcelain"])
            return bool(status.strip())
        except git.exc.GitCommandError as e:
            logger.warning(f"Could not check worktree status for {worktree_path}: {e}")
            return False

    # Detail queries

    @staticmethod
    def parse_status(output: str) -> ChangedFiles:
        """Count ``git status --porcelain`` entries.

        Untracked and newly added files count as added, deletions in the index
        or the working tree as deleted, everything else (renames too) as modified.
        """
        added = modified = deleted = 0
        for line in output.splitlines():
            if len(line) < 2:
                continue
            code = line[:2]
            if code == "??" or "A" in code:
                added += 1
            elif "D" in code:
                deleted += 1
            else:
                modified += 1
        return ChangedFiles(added=added, modified=modified, deleted=deleted)

    @staticmethod
    def parse_log(output: str) -> List[CommitSummary]:
        """Parse ``git log`` lines written with :data:`LOG_FORMAT`."""
        commits = []
        for line in output.splitlines():
            fields = line.split("\x1f")
            if len(fields) != 4:
                continue
            short_sha, subject, author, parents = fields
            commits.append(CommitSummary(
                short_sha=short_sha,
                subject=subject,
                author=author,
                is_merge=len(parents.split()) > 1,
            ))
        return commits

    def changed_files(self, worktree_path: str) -> ChangedFiles:
        """Summary of uncommitted changes in the worktree."""
        try:
            repo = self._get_repo()
            status = repo.git.execute(["git", "-C", worktree_path, "status", "--porcelain"])
        except git.exc.GitCommandError as e:
            logger.warning(f"Could not read status of {worktree_path}: {e}")
            return ChangedFiles()
        return self.parse_status(status)

    def recent_commits(self, worktree_path: str, count: int = RECENT_COMMITS) -> List[CommitSummary]:
        """The last ``count`` commits reachable from the worktree's HEAD."""
        try:
            repo = self._get_repo()
            output = repo.git.execute(
                ["git", "-C", worktree_path, "log", "-n", str(count), f"--format={LOG_FORMAT}"]
            )
        except git.exc.GitCommandError as e:
            # Unborn branch
            logger.debug(f"Could not read log of {worktree_path}: {e}")
            return []
        return self.parse_log(output)

    def details(self, worktree_path: str) -> WorktreeDetails:
        if not os.path.isdir(worktree_path):
            return WorktreeDetails(path=worktree_path)
        return WorktreeDetails(
            path=worktree_path,
            changes=self.changed_files(worktree_path),
            commits=tuple(self.recent_commits(worktree_path)),
        )

    def add_worktree(
        self,
        path: str,
        branch: str,
        new_branch: bool = False,
        base: Optional[str] = None,
        track: Optional[str] = None,
    ):
        """Create a worktree at ``path``.

        Args:
            path: Target directory (must not exist)
            branch: Branch to check out
            new_branch: Create ``branch`` from ``base`` (``git worktree add -b``)
            base: Start point for a new branch
            track: Remote branch to track when creating a local branch from it

        Raises:
            GitOperationFailed / PermissionDenied: if git fails
        """
        if new_branch or track:
            args = ["add", "-b", branch, path]
            if track:
                args = ["add", "--track", "-b", branch, path, track]
            elif base:
                args.append(base)
        else:
            args = ["add", path, branch]

        try:
            repo = self._get_repo()
            repo.git.worktree(*args)
            logger.info(f"Created worktree at {path} for branch {branch}")
        except git.exc.GitCommandError as e:
            error = translate_git_error("worktree add", e, path)
            logger.error(f"Failed to create worktree at {path}: {error}")
            raise error from e

    def remove_worktree(self, path: str, force: bool = False):
        """Remove a worktree at the specified path.

        Args:
            path: Path to the worktree directory
            force: Force removal even if working tree is dirty or locked
        """
        try:
            repo = self._get_repo()
            args = ["remove", path]
            if force:
                args.append("--force")

            repo.git.worktree(*args)
            logger.info(f"Removed worktree at {path}")
        except git.exc.GitCommandError as e:
            error = translate_git_error("worktree remove", e, path)
            logger.error(f"Failed to remove worktree at {path}: {error}")
            raise error from e

    def prune_metadata(self):
        """Prune administrative data of worktrees whose directory is gone."""
        try:
            repo = self._get_repo()
            repo.git.worktree("prune")
            logger.info("Pruned orphaned worktree metadata")
        except git.exc.GitCommandError as e:
            raise translate_git_error("worktree prune", e) from e

    def delete_branch(self, branch: str):
        """Force-delete a local branch (``git branch -D``)."""
        try:
            repo = self._get_repo()
            repo.git.branch("-D", branch)
            logger.info(f"Deleted branch {branch}")
        except git.exc.GitCommandError as e:
            error = translate_git_error("branch delete", e, branch)
            logger.error(f"Failed to delete branch {branch}: {error}")
            raise error from e

    def rebase(self, worktree_path: str, onto: str):
        """Rebase the branch checked out in ``worktree_path`` onto ``onto``.

        A conflicting rebase is left in progress for the user to resolve.
        """
        try:
            repo = self._get_repo()
            repo.git.execute(["git", "-C", worktree_path, "rebase", onto])
            logger.info(f"Rebased {worktree_path} onto {onto}")
        except git.exc.GitCommandError as e:
            error = translate_git_error("rebase", e, worktree_path)
            logger.warning(f"Rebase of {worktree_path} onto {onto} failed: {error}")
            raise error from e
