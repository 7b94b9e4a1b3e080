"""Branch query service for git-worktree-manager."""

from typing import Iterable, List, Optional, Set

import git

from git_worktree_manager.logging_config import get_logger
from git_worktree_manager.models.worktree import Branch

logger = get_logger(__name__)


class BranchQueries:
    """Service for querying branch information."""

    def __init__(self, repo_path: str, remote_name: str = "origin"):
        self.repo_path = repo_path
        self.remote_name = remote_name

    def _get_repo(self):
        """Get a thread-safe git.Repo instance.

        GitPython repos are lightweight - they don't clone, just open the existing repo.
        """
        return git.Repo(self.repo_path)

    def default_branch(self) -> str:
        """Name of the branch other branches are merged into.

        Tries ``refs/remotes/origin/HEAD``, then ``main``, then ``master``, then
        the branch checked out in the main worktree.
        """
        repo = self._get_repo()
        try:
            ref = repo.git.symbolic_ref(f"refs/remotes/{self.remote_name}/HEAD")
            prefix = f"refs/remotes/{self.remote_name}/"
            if ref.startswith(prefix):
                name = ref[len(prefix):]
                if self.branch_exists(name):
                    return name
                return f"{self.remote_name}/{name}"
        except git.exc.GitCommandError:
            logger.debug(f"{self.remote_name}/HEAD is not set")

        for candidate in ("main", "master"):
            if self.branch_exists(candidate):
                return candidate

        try:
            return repo.active_branch.name
        except TypeError:
            # Detached HEAD in the main worktree
            return "HEAD"

    def local_branches(self) -> List[str]:
        repo = self._get_repo()
        return sorted(head.name for head in repo.heads)

    def remote_branches(self) -> List[str]:
        """Remote-tracking branches of the remote, without the symbolic HEAD."""
        prefix = f"refs/remotes/{self.remote_name}/"
        try:
            repo = self._get_repo()
            output = repo.git.for_each_ref("--format=%(refname)", prefix)
        except git.exc.GitCommandError as e:
            logger.debug(f"Could not list remote branches: {e}")
            return []
        names = []
        for ref in output.splitlines():
            ref = ref.strip()
            if ref.startswith(prefix) and not ref.endswith("/HEAD"):
                names.append(f"{self.remote_name}/{ref[len(prefix):]}")
        return sorted(names)

    def branch_exists(self, name: str) -> bool:
        repo = self._get_repo()
        return name in [head.name for head in repo.heads]

    def remote_branch_exists(self, name: str) -> bool:
        return f"{self.remote_name}/{name}" in self.remote_branches()

    def merged_branches(self, into: str) -> Set[str]:
        """Local branches whose tip is a strict ancestor of ``into``.

        A branch pointing at the same commit as ``into`` (for example one just
        created from it) has nothing merged yet and is left out.
        """
        try:
            repo = self._get_repo()
            tip = repo.git.rev_parse("--verify", f"{into}^{{commit}}")
            output = repo.git.branch("--merged", into, "--format=%(objectname) %(refname:short)")
        except git.exc.GitCommandError as e:
            logger.warning(f"Could not list branches merged into {into}: {e}")
            return set()
        merged = set()
        for line in output.splitlines():
            sha, _, name = line.strip().partition(" ")
            if name and sha != tip:
                merged.add(name)
        return merged

    def is_valid_branch_name(self, name: str) -> bool:
        """Check a new branch name with ``git check-ref-format --branch``."""
        if not name or name.startswith("-"):
            return False
        try:
            repo = self._get_repo()
            repo.git.check_ref_format("--branch", name)
            return True
        except git.exc.GitCommandError:
            return False

    def list_branches(self, checked_out: Iterable[str] = ()) -> List[Branch]:
        """Local branches followed by remote-only branches.

        Args:
            checked_out: Branch names currently checked out by a worktree
        """
        checked_out = set(checked_out)
        default = self.default_branch()
        merged = self.merged_branches(default)

        local = self.local_branches()
        branches = [
            Branch(
                name=name,
                is_merged=name in merged and name != default,
                has_worktree=name in checked_out,
            )
            for name in local
        ]
        prefix = f"{self.remote_name}/"
        for name in self.remote_branches():
            short = name[len(prefix):] if name.startswith(prefix) else name
            if short in local:
                continue
            branches.append(Branch(name=name, is_remote=True))
        return branches

    def origin_url(self) -> Optional[str]:
        try:
            return self._get_repo().remote(self.remote_name).url
        except ValueError:
            return None
