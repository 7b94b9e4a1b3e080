"""Data models for git-worktree-manager."""

from .worktree import Worktree, Branch, ChangedFiles, CommitSummary, WorktreeDetails
from .task import (
    TaskKind,
    TaskStatus,
    CreateRequest,
    DeleteRequest,
    PruneRequest,
    RebaseRequest,
    BackgroundTask,
    TaskResult,
)

__all__ = [
    "Worktree",
    "Branch",
    "ChangedFiles",
    "CommitSummary",
    "WorktreeDetails",
    "TaskKind",
    "TaskStatus",
    "CreateRequest",
    "DeleteRequest",
    "PruneRequest",
    "RebaseRequest",
    "BackgroundTask",
    "TaskResult",
]
