"""Git-related services for git-worktree-manager."""

from .repository import RepositoryLocation, find_repository
from .worktrees import WorktreeService
from .branch_queries import BranchQueries

__all__ = [
    "RepositoryLocation",
    "find_repository",
    "WorktreeService",
    "BranchQueries",
]
