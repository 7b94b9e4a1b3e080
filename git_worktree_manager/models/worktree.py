"""Worktree and branch data models."""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class Worktree:
    """A checked-out working tree of the repository."""

    path: str
    branch: Optional[str]  # None for a detached HEAD
    head: str
    summary: str = ""
    is_dirty: bool = False
    is_main: bool = False
    is_locked: bool = False
    is_orphaned: bool = False  # Directory missing?

    @property
    def name(self) -> str:
        """Directory name of the worktree."""
        return os.path.basename(self.path.rstrip(os.sep)) or self.path

    @property
    def short_head(self) -> str:
        return self.head[:7]

    @property
    def is_detached(self) -> bool:
        return self.branch is None

    def __str__(self) -> str:
        """String representation of worktree."""
        branch = self.branch or "(detached)"
        main_marker = " (main)" if self.is_main else ""
        status = "dirty" if self.is_dirty else "clean"
        return f"{branch} @ {self.path}{main_marker} [{status}]"


@dataclass(frozen=True)
class Branch:
    """A local or remote-tracking branch."""

    name: str
    is_merged: bool = False
    has_worktree: bool = False
    is_remote: bool = False

    @property
    def local_name(self) -> str:
        """Branch name without the remote prefix (origin/feature -> feature)."""
        if self.is_remote and "/" in self.name:
            return self.name.split("/", 1)[1]
        return self.name


@dataclass(frozen=True)
class ChangedFiles:
    """Counts of uncommitted changes in a worktree."""

    added: int = 0
    modified: int = 0
    deleted: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted)

    def __str__(self) -> str:
        if self.is_empty:
            return "no changes"
        return f"+{self.added} ~{self.modified} -{self.deleted}"


@dataclass(frozen=True)
class CommitSummary:
    short_sha: str
    subject: str
    author: str = ""
    is_merge: bool = False


@dataclass(frozen=True)
class WorktreeDetails:
    """Extra information shown in the detail overlay, loaded on demand."""

    path: str
    changes: ChangedFiles = field(default_factory=ChangedFiles)
    commits: Tuple[CommitSummary, ...] = ()
