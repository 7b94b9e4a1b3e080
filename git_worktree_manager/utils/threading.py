"""Worker pool sizing for background worktree operations."""

import os
import sys
from typing import Optional


def is_free_threading_enabled() -> bool:
    """Detect if Python is running with the GIL disabled (3.13+ free-threading build)."""
    is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
    return is_gil_enabled is not None and not is_gil_enabled()


def get_worker_count(user_specified: Optional[int] = None) -> int:
    """Number of threads for the task pool.

    Tasks spend their time waiting on git and hook subprocesses, so a small
    pool is enough; a prune of many worktrees runs its deletions in sequence
    inside one task.
    """
    if user_specified is not None and user_specified > 0:
        return user_specified

    cpu_count = os.cpu_count() or 1
    if is_free_threading_enabled():
        return min(16, cpu_count * 2)
    return min(8, cpu_count + 2)
