"""Shared formatting utilities for git-worktree-manager."""

import os
from typing import List, Optional

from git_worktree_manager.constants import SYMBOL_DETACHED
from git_worktree_manager.models.task import TaskKind, TaskResult
from git_worktree_manager.models.worktree import Worktree


def format_path(path: str, tilde_home: bool = True, home: Optional[str] = None) -> str:
    """
    Format a path for display, replacing the home directory with ``~``.

    Args:
        path: Absolute path
        tilde_home: Whether to abbreviate the home directory
        home: Home directory (defaults to ``~`` expanded)

    Returns:
        Display path
    """
    if not tilde_home:
        return path
    home = (home or os.path.expanduser("~")).rstrip(os.sep)
    if home and (path == home or path.startswith(home + os.sep)):
        return "~" + path[len(home):]
    return path


def format_branch(worktree: Worktree) -> str:
    return worktree.branch or f"{SYMBOL_DETACHED} {worktree.short_head}"


def format_delete_confirmation(worktree: Worktree, tilde_home: bool = True) -> str:
    """Confirm dialog text for deleting one worktree."""
    branch = worktree.branch or SYMBOL_DETACHED
    lines = [f"Delete worktree {format_path(worktree.path, tilde_home)} ({branch})?"]
    if worktree.is_dirty:
        lines.append("It has uncommitted changes, which will be lost.")
    lines.append("[y] delete  [Y] delete with branch  [n] cancel")
    return "\n".join(lines)


def format_prune_confirmation(worktrees: List[Worktree], tilde_home: bool = True) -> str:
    """
    Confirm dialog text for pruning merged worktrees.

    Example:
        "Delete 2 merged worktree(s)?\\n  • feature-a (~/worktrees/feature-a)"
    """
    lines = [f"Delete {len(worktrees)} merged worktree(s)?"]
    for worktree in worktrees:
        lines.append(f"  • {worktree.branch} ({format_path(worktree.path, tilde_home)})")
    lines.append("[y] delete  [Y] delete with branches  [n] cancel")
    return "\n".join(lines)


def format_result_message(result: TaskResult, tilde_home: bool = True) -> str:
    """
    One-line notification text for a finished task.

    Partial failures name what succeeded before the failure, so the user knows
    the worktree exists even though automation did not complete.
    """
    target = format_path(result.worktree_path or (result.paths[0] if result.paths else ""), tilde_home)
    error = str(result.error) if result.error is not None else result.message

    if result.kind == TaskKind.PRUNE:
        text = f"Pruned {result.succeeded} worktree(s), {result.failed} failed"
        if error and (result.failed or result.partial):
            text += f": {error}"
        return text

    if result.kind == TaskKind.CREATE:
        if result.ok:
            return f"Created worktree {target}"
        if result.partial:
            return f"Created worktree {target}, but setup did not complete: {error}"
        return f"Could not create worktree: {error}"

    if result.kind == TaskKind.DELETE:
        if result.ok:
            suffix = f" and branch {result.branch}" if result.branch else ""
            return f"Deleted worktree {target}{suffix}"
        if result.partial:
            return f"Deleted worktree {target}, but: {error}"
        return f"Could not delete worktree {target}: {error}"

    if result.ok:
        return f"Rebased {target} onto {result.message}" if result.message else f"Rebased {target}"
    return f"Rebase of {target} stopped, resolve it in the worktree: {error}"
