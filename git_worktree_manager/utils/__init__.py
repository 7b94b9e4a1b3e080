"""Utility functions for git-worktree-manager."""

from .threading import get_worker_count, is_free_threading_enabled

__all__ = [
    "get_worker_count",
    "is_free_threading_enabled",
]
