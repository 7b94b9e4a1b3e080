"""Repository discovery for git-worktree-manager."""

import os
from dataclasses import dataclass
from typing import Optional

import git

from git_worktree_manager.exceptions import RepositoryNotFound
from git_worktree_manager.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RepositoryLocation:
    """Where the repository lives, seen from a working directory.

    ``worktree_root`` is the top level of the worktree containing the working
    directory; ``main_root`` is the main checkout, derived from the common git
    directory shared by all worktrees.
    """

    main_root: str
    worktree_root: str
    common_dir: str
    origin_url: Optional[str] = None

    @property
    def in_linked_worktree(self) -> bool:
        return os.path.realpath(self.main_root) != os.path.realpath(self.worktree_root)


def find_repository(cwd: str) -> RepositoryLocation:
    """Locate the repository enclosing ``cwd``.

    Raises:
        RepositoryNotFound: if ``cwd`` is not inside a git working tree
    """
    try:
        repo = git.Repo(cwd, search_parent_directories=True)
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
        logger.debug(f"No repository at {cwd}: {e}")
        raise RepositoryNotFound(str(cwd)) from e

    try:
        if repo.working_tree_dir is None:
            raise RepositoryNotFound(str(cwd))

        worktree_root = os.path.realpath(repo.working_tree_dir)
        common_dir = os.path.realpath(repo.common_dir)
        # A non-bare repository keeps its common dir at <main>/.git
        if os.path.basename(common_dir) == ".git":
            main_root = os.path.dirname(common_dir)
        else:
            main_root = worktree_root

        try:
            origin_url = repo.remote("origin").url
        except (ValueError, git.exc.GitCommandError):
            origin_url = None

        location = RepositoryLocation(
            main_root=main_root,
            worktree_root=worktree_root,
            common_dir=common_dir,
            origin_url=origin_url,
        )
        logger.debug(f"Repository: main={main_root} worktree={worktree_root} common={common_dir}")
        return location
    finally:
        repo.close()
