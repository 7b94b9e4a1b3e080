"""Custom exceptions for git-worktree-manager"""

from typing import Optional


class GwmError(Exception):
    """Base exception for all git-worktree-manager errors."""
    pass


class ConfigError(GwmError):
    """Exception raised when configuration cannot be parsed or validated."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.message = message
        self.path = path

        error_msg = message
        if path:
            error_msg = f"{path}: {message}"

        super().__init__(error_msg)


class TemplateError(GwmError):
    """Exception raised when a naming template cannot be rendered."""

    def __init__(self, message: str, variable: Optional[str] = None):
        self.message = message
        self.variable = variable
        super().__init__(message)


class RepositoryNotFound(GwmError):
    """Exception raised when no git repository encloses the working directory."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Not a git repository (or any parent up to /): {path}")


class TaskRejected(GwmError):
    """Exception raised when a destructive operation is already running for a path."""

    def __init__(self, path: str, task_id: Optional[int] = None):
        self.path = path
        self.task_id = task_id
        error_msg = f"An operation is already in progress for '{path}'"
        if task_id is not None:
            error_msg += f" (task #{task_id})"
        super().__init__(error_msg)


class WorktreeOperationError(GwmError):
    """Base class for errors reported on a background task."""

    code = "worktree_operation_failed"


class GitOperationFailed(WorktreeOperationError):
    """Exception raised for errors in Git operations."""

    code = "git_operation_failed"

    def __init__(self, operation: str, message: Optional[str] = None, target: Optional[str] = None):
        self.operation = operation
        self.message = message
        self.target = target

        error_msg = f"Git operation '{operation}' failed"
        if target:
            error_msg += f" for '{target}'"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class HookFailed(WorktreeOperationError):
    """Exception raised when a hook or setup command exits unsuccessfully."""

    code = "hook_failed"

    def __init__(self, event: str, command: str, returncode: Optional[int] = None, output: str = ""):
        self.event = event
        self.command = command
        self.returncode = returncode
        self.output = output

        error_msg = f"{event} command '{command}' failed"
        if returncode is not None:
            error_msg += f" (exit {returncode})"
        if output:
            error_msg += f": {output}"

        super().__init__(error_msg)


class PathConflict(WorktreeOperationError):
    """Exception raised when the target worktree path cannot be used."""

    code = "path_conflict"

    def __init__(self, path: str, message: str = "Path already exists"):
        self.path = path
        self.message = message
        super().__init__(f"{message}: {path}")


class InvalidBranch(WorktreeOperationError):
    """Exception raised for unusable branch names or branch states."""

    code = "invalid_branch"

    def __init__(self, branch: Optional[str], message: str):
        self.branch = branch
        self.message = message
        if branch:
            super().__init__(f"Branch '{branch}': {message}")
        else:
            super().__init__(message)


class PermissionDenied(WorktreeOperationError):
    """Exception raised when the filesystem refuses an operation."""

    code = "permission_denied"

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        self.message = message
        error_msg = f"Permission denied: {path}"
        if message:
            error_msg += f" ({message})"
        super().__init__(error_msg)
