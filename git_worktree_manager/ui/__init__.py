"""Textual widgets for git-worktree-manager."""
