"""Background task records and the messages that describe them."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from git_worktree_manager.exceptions import WorktreeOperationError


class TaskKind(Enum):
    """Kind of background operation."""
    CREATE = "create"
    DELETE = "delete"
    PRUNE = "prune"
    REBASE = "rebase"


class TaskStatus(Enum):
    """Lifecycle of a background task."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class CreateRequest:
    """Create a worktree for ``branch``.

    ``new_branch`` creates the branch from ``base`` (the default branch when
    None); otherwise the branch must already exist locally or on origin.
    """
    request_id: int
    branch: str
    new_branch: bool = True
    base: Optional[str] = None

    kind = TaskKind.CREATE


@dataclass(frozen=True)
class DeleteRequest:
    request_id: int
    path: str
    delete_branch: bool = False

    kind = TaskKind.DELETE


@dataclass(frozen=True)
class PruneRequest:
    request_id: int
    delete_branch: bool = False

    kind = TaskKind.PRUNE


@dataclass(frozen=True)
class RebaseRequest:
    request_id: int
    path: str

    kind = TaskKind.REBASE


TaskRequest = Union[CreateRequest, DeleteRequest, PruneRequest, RebaseRequest]


@dataclass
class BackgroundTask:
    """A task owned by the lifecycle manager until it completes."""

    id: int
    kind: TaskKind
    paths: Tuple[str, ...]
    request_id: Optional[int] = None
    status: TaskStatus = TaskStatus.PENDING
    reason: Optional[str] = None
    result: Optional["TaskResult"] = None  # set once the task has finished

    def __str__(self) -> str:
        targets = ", ".join(self.paths) or "-"
        return f"task #{self.id} {self.kind.value} [{self.status.value}] {targets}"


@dataclass(frozen=True)
class TaskResult:
    """Completion message sent from a worker to the main loop.

    ``partial`` marks a failure that happened after side effects were applied
    (for example a setup command failing after the worktree was created).
    Prune results carry per-worktree counts in ``succeeded``/``failed``.
    """

    task_id: int
    kind: TaskKind
    paths: Tuple[str, ...]
    status: TaskStatus
    request_id: Optional[int] = None
    message: str = ""
    error: Optional[WorktreeOperationError] = None
    partial: bool = False
    worktree_path: Optional[str] = None
    branch: Optional[str] = None
    succeeded: int = 0
    failed: int = 0
    details: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.status == TaskStatus.SUCCEEDED

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error is not None else None
