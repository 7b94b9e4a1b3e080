"""Worktree lifecycle: create, delete, prune and rebase as background tasks.

Each operation validates synchronously (raising before any task exists) and
then runs on a thread pool. Workers never touch application state; every task
produces exactly one :class:`TaskResult`, delivered through a queue that the
main loop reads with :meth:`WorktreeLifecycleManager.drain`.

At most one unfinished task may target a given worktree path.
"""

import itertools
import os
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from git_worktree_manager.config import HookEvent, ResolvedConfig
from git_worktree_manager.exceptions import (
    GitOperationFailed,
    InvalidBranch,
    PathConflict,
    PermissionDenied,
    TaskRejected,
    WorktreeOperationError,
)
from git_worktree_manager.logging_config import get_logger
from git_worktree_manager.models.task import (
    BackgroundTask,
    CreateRequest,
    DeleteRequest,
    PruneRequest,
    RebaseRequest,
    TaskKind,
    TaskRequest,
    TaskResult,
    TaskStatus,
)
from git_worktree_manager.models.worktree import Branch, Worktree, WorktreeDetails
from git_worktree_manager.services.file_copy_service import FileCopyService
from git_worktree_manager.services.git.branch_queries import BranchQueries
from git_worktree_manager.services.git.worktrees import WorktreeService
from git_worktree_manager.services.hook_service import HookContext, HookRunner
from git_worktree_manager.services.template_engine import TemplateEngine, parse_remote_url
from git_worktree_manager.utils.threading import get_worker_count

logger = get_logger(__name__)


def _key(path: str) -> str:
    return os.path.realpath(path)


@dataclass(frozen=True)
class CreatePlan:
    """Everything the create pipeline needs, computed before the task starts."""

    branch: str
    target: Path
    new_branch: bool
    base: Optional[str] = None
    track: Optional[str] = None


class WorktreeLifecycleManager:
    """Runs worktree operations against git with hooks and setup automation."""

    def __init__(
        self,
        config: ResolvedConfig,
        repo_root: Optional[str] = None,
        worktree_service: Optional[WorktreeService] = None,
        branch_queries: Optional[BranchQueries] = None,
        hook_runner: Optional[HookRunner] = None,
        file_copy: Optional[FileCopyService] = None,
        max_workers: Optional[int] = None,
    ):
        """Initialize the lifecycle manager.

        Args:
            config: Resolved configuration
            repo_root: Main repository root (defaults to ``config.repo_root``)
            max_workers: Size of the task pool (None = auto-detect)
        """
        self.config = config
        self.repo_root = repo_root or config.repo_root
        if not self.repo_root:
            raise ValueError("repo_root is required")

        self.worktree_service = worktree_service or WorktreeService(self.repo_root)
        self.branch_queries = branch_queries or BranchQueries(self.repo_root)
        self.hook_runner = hook_runner or HookRunner(config.hooks)
        self.file_copy = file_copy or FileCopyService()
        self.template_engine = TemplateEngine(config.naming.sanitize_chars)
        self.remote = parse_remote_url(config.origin_url)

        workers = get_worker_count(max_workers)
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gwm-task")
        self._completions: "queue.Queue[TaskResult]" = queue.Queue()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._inflight: Dict[str, int] = {}  # realpath -> task id
        self._futures: Dict[int, Future] = {}  # unfinished tasks only
        logger.debug(f"Lifecycle manager for {self.repo_root} with {workers} workers")

    # Queries

    def list(self) -> List[Worktree]:
        """All worktrees sorted by path; the main worktree is always included and flagged."""
        return sorted(self.worktree_service.list_worktrees(), key=lambda wt: wt.path)

    def list_branches(self, worktrees: Optional[Iterable[Worktree]] = None) -> List[Branch]:
        if worktrees is None:
            worktrees = self.worktree_service.list_worktrees()
        checked_out = [wt.branch for wt in worktrees if wt.branch]
        return self.branch_queries.list_branches(checked_out)

    def merged_worktrees(self) -> List[Worktree]:
        """Non-main worktrees whose branch is fully merged into the default branch."""
        default = self.branch_queries.default_branch()
        merged = self.branch_queries.merged_branches(default)
        return [
            wt for wt in self.list()
            if not wt.is_main and wt.branch and wt.branch != default and wt.branch in merged
        ]

    def details(self, path: str) -> WorktreeDetails:
        """Changed-file counts and recent commits for the detail overlay."""
        return self.worktree_service.details(path)

    def is_inflight(self, path: str) -> bool:
        with self._lock:
            return _key(path) in self._inflight

    # Operations

    def submit(self, request: TaskRequest) -> BackgroundTask:
        """Start the task described by a request from the state machine."""
        if isinstance(request, CreateRequest):
            return self.create(request.branch, request.new_branch, request.base, request_id=request.request_id)
        if isinstance(request, DeleteRequest):
            return self.delete(request.path, request.delete_branch, request_id=request.request_id)
        if isinstance(request, PruneRequest):
            return self.prune(request.delete_branch, request_id=request.request_id)
        if isinstance(request, RebaseRequest):
            return self.rebase(request.path, request_id=request.request_id)
        raise TypeError(f"unknown request: {request!r}")

    def create(
        self,
        branch: str,
        new_branch: bool = True,
        base: Optional[str] = None,
        request_id: Optional[int] = None,
    ) -> BackgroundTask:
        """Create a worktree for ``branch`` in the background.

        Raises:
            TemplateError, InvalidBranch, PathConflict, PermissionDenied, TaskRejected:
                when the request is refused before a task is created
        """
        plan = self.plan_create(branch, new_branch, base)
        task = self._register(TaskKind.CREATE, (str(plan.target),), request_id)
        return self._start(task, self._run_create, plan)

    def plan_create(self, branch: str, new_branch: bool = True, base: Optional[str] = None) -> CreatePlan:
        """Validate a create request and compute the target directory."""
        name = branch.strip()
        track = None
        if new_branch:
            if not self.branch_queries.is_valid_branch_name(name):
                raise InvalidBranch(name, "not a valid branch name")
            if self.branch_queries.branch_exists(name):
                raise InvalidBranch(name, "already exists")
            base = base or self.branch_queries.default_branch()
        else:
            if not self.branch_queries.branch_exists(name):
                if not self.branch_queries.remote_branch_exists(name):
                    raise InvalidBranch(name, "does not exist")
                track = f"{self.branch_queries.remote_name}/{name}"
            checked_out = {wt.branch for wt in self.worktree_service.list_worktrees() if wt.branch}
            if name in checked_out:
                raise InvalidBranch(name, "is already checked out in another worktree")

        relative = self.template_engine.render(self.config.naming.template, name, self.remote)
        basedir = self.config.basedir_path(self.repo_root)
        if not basedir.is_dir():
            if not self.config.worktree.auto_mkdir:
                raise PathConflict(str(basedir), "Base directory does not exist and worktree.auto_mkdir is off")
            try:
                basedir.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created base directory {basedir}")
            except PermissionError as e:
                raise PermissionDenied(str(basedir), e.strerror) from e

        target = basedir / relative
        if os.path.lexists(target):
            raise PathConflict(str(target))
        return CreatePlan(branch=name, target=target, new_branch=new_branch, base=base, track=track)

    def delete(self, path: str, delete_branch: bool = False, request_id: Optional[int] = None) -> BackgroundTask:
        """Remove the worktree at ``path`` (and its branch, if requested) in the background.

        Raises:
            TaskRejected: if another task for ``path`` has not finished
            PathConflict: for the main worktree
            GitOperationFailed: if ``path`` is not a worktree of this repository
        """
        self._ensure_idle(path)
        worktree = self._find(path)
        if worktree.is_main:
            raise PathConflict(worktree.path, "The main worktree cannot be removed")
        task = self._register(TaskKind.DELETE, (worktree.path,), request_id)
        return self._start(task, self._run_delete, worktree, delete_branch)

    def prune(self, delete_branch: bool = False, request_id: Optional[int] = None) -> BackgroundTask:
        """Delete every merged worktree (never the main one) as one aggregate task.

        Worktrees that already have a task running are skipped.
        """
        candidates = []
        for worktree in self.merged_worktrees():
            if self.is_inflight(worktree.path):
                logger.info(f"Skipping {worktree.path}: operation in progress")
                continue
            candidates.append(worktree)
        logger.info(f"Prune candidates: {[wt.branch for wt in candidates]}")
        task = self._register(TaskKind.PRUNE, tuple(wt.path for wt in candidates), request_id)
        return self._start(task, self._run_prune, candidates, delete_branch)

    def rebase(self, path: str, request_id: Optional[int] = None) -> BackgroundTask:
        """Rebase the worktree's branch onto the default branch in the background.

        Conflicts are reported; the rebase is left in progress.
        """
        self._ensure_idle(path)
        worktree = self._find(path)
        if worktree.branch is None:
            raise InvalidBranch(None, f"{worktree.path} has a detached HEAD")
        onto = self.branch_queries.default_branch()
        if worktree.branch == onto:
            raise InvalidBranch(worktree.branch, "is the default branch")
        task = self._register(TaskKind.REBASE, (worktree.path,), request_id)
        return self._start(task, self._run_rebase, worktree, onto)

    # Completion channel

    def drain(self) -> List[TaskResult]:
        """Take every completion received so far, in arrival order (non-blocking)."""
        results = []
        while True:
            try:
                results.append(self._completions.get_nowait())
            except queue.Empty:
                return results

    def wait(self, task: BackgroundTask, timeout: Optional[float] = None) -> TaskResult:
        """Block until ``task`` finishes and return its result."""
        with self._lock:
            future = self._futures.get(task.id)
            if future is None:
                return task.result
        return future.result(timeout=timeout)

    def shutdown(self, wait: bool = False):
        """Stop accepting tasks; running git and hook processes are left to finish."""
        logger.debug("Shutting down task pool")
        self._executor.shutdown(wait=wait)

    # Task bookkeeping

    def _ensure_idle(self, path: str):
        with self._lock:
            task_id = self._inflight.get(_key(path))
        if task_id is not None:
            raise TaskRejected(path, task_id)

    def _register(self, kind: TaskKind, paths: Tuple[str, ...], request_id: Optional[int]) -> BackgroundTask:
        with self._lock:
            for path in paths:
                if _key(path) in self._inflight:
                    raise TaskRejected(path, self._inflight[_key(path)])
            task = BackgroundTask(id=next(self._ids), kind=kind, paths=paths, request_id=request_id)
            for path in paths:
                self._inflight[_key(path)] = task.id
        return task

    def _start(self, task: BackgroundTask, fn: Callable[..., TaskResult], *args) -> BackgroundTask:
        # The worker takes the lock before running, so the future is recorded first
        with self._lock:
            self._futures[task.id] = self._executor.submit(self._run_task, task, fn, *args)
        logger.info(f"Queued {task}")
        return task

    def _run_task(self, task: BackgroundTask, fn: Callable[..., TaskResult], *args) -> TaskResult:
        with self._lock:
            task.status = TaskStatus.RUNNING
        logger.debug(f"Running {task}")
        try:
            result = fn(task, *args)
        except Exception as e:
            logger.error(f"Unexpected error in {task}: {e}", exc_info=True)
            result = self._result(task, error=GitOperationFailed(task.kind.value, str(e)))

        with self._lock:
            task.status = result.status
            task.reason = None if result.ok else str(result.error or result.message)
            task.result = result
            self._futures.pop(task.id, None)
            for path in task.paths:
                if self._inflight.get(_key(path)) == task.id:
                    del self._inflight[_key(path)]
        logger.info(f"Finished {task}")
        self._completions.put(result)
        return result

    @staticmethod
    def _result(
        task: BackgroundTask,
        error: Optional[WorktreeOperationError] = None,
        partial: bool = False,
        **kwargs,
    ) -> TaskResult:
        return TaskResult(
            task_id=task.id,
            kind=task.kind,
            paths=task.paths,
            status=TaskStatus.FAILED if error is not None else TaskStatus.SUCCEEDED,
            request_id=task.request_id,
            error=error,
            partial=partial,
            **kwargs,
        )

    def _find(self, path: str) -> Worktree:
        key = _key(path)
        for worktree in self.worktree_service.list_worktrees():
            if _key(worktree.path) == key:
                return worktree
        raise GitOperationFailed("worktree lookup", "not a worktree of this repository", path)

    def _context(self, path: str, branch: Optional[str]) -> HookContext:
        return HookContext(
            name=os.path.basename(path.rstrip(os.sep)),
            path=path,
            branch=branch or "",
            repo_root=self.repo_root,
        )

    # Pipelines (worker threads)

    def _run_create(self, task: BackgroundTask, plan: CreatePlan) -> TaskResult:
        target = str(plan.target)
        context = self._context(target, plan.branch)
        try:
            self.hook_runner.run(HookEvent.PRE_CREATE, context)
            plan.target.parent.mkdir(parents=True, exist_ok=True)
            self.worktree_service.add_worktree(
                target, plan.branch, new_branch=plan.new_branch, base=plan.base, track=plan.track
            )
        except PermissionError as e:
            return self._result(task, error=PermissionDenied(target, e.strerror), branch=plan.branch)
        except WorktreeOperationError as e:
            return self._result(task, error=e, branch=plan.branch)

        # From here on the worktree exists and is kept whatever happens
        details = []
        try:
            copied = self.file_copy.copy_patterns(self.config.copy_files, self.repo_root, target)
            if copied:
                details.append(f"copied {len(copied)} file(s)")
            ran = self.hook_runner.run_setup_commands(self.config.setup_commands, context)
            if ran:
                details.append(f"ran {ran} setup command(s)")
            self.hook_runner.run(HookEvent.POST_CREATE, context)
        except WorktreeOperationError as e:
            logger.warning(f"Worktree {target} created, but setup failed: {e}")
            return self._result(
                task, error=e, partial=True, worktree_path=target, branch=plan.branch, details=tuple(details)
            )
        return self._result(task, worktree_path=target, branch=plan.branch, details=tuple(details))

    def _delete_pipeline(self, worktree: Worktree, delete_branch: bool) -> Tuple[Optional[WorktreeOperationError], bool]:
        """Run the delete steps; returns (error, partial)."""
        context = self._context(worktree.path, worktree.branch)
        try:
            self.hook_runner.run(HookEvent.PRE_DELETE, context)
            self.worktree_service.remove_worktree(worktree.path, force=True)
        except WorktreeOperationError as e:
            return e, False

        try:
            if delete_branch and worktree.branch:
                self.worktree_service.delete_branch(worktree.branch)
            self.hook_runner.run(HookEvent.POST_DELETE, context)
        except WorktreeOperationError as e:
            return e, True
        return None, False

    def _run_delete(self, task: BackgroundTask, worktree: Worktree, delete_branch: bool) -> TaskResult:
        error, partial = self._delete_pipeline(worktree, delete_branch)
        deleted_branch = worktree.branch if delete_branch and error is None else None
        return self._result(task, error=error, partial=partial, worktree_path=worktree.path, branch=deleted_branch)

    def _run_prune(self, task: BackgroundTask, candidates: List[Worktree], delete_branch: bool) -> TaskResult:
        succeeded = failed = 0
        details = []
        last_error = None
        for worktree in candidates:
            error, partial = self._delete_pipeline(worktree, delete_branch)
            if error is None:
                succeeded += 1
                details.append(f"deleted {worktree.path}")
            elif partial:
                # Removed, but the branch or post_delete step failed
                succeeded += 1
                last_error = error
                details.append(f"deleted {worktree.path}, but: {error}")
            else:
                failed += 1
                last_error = error
                details.append(f"failed {worktree.path}: {error}")
        logger.info(f"Prune finished: {succeeded} succeeded, {failed} failed")
        return self._result(
            task,
            error=last_error,
            partial=bool(last_error and succeeded),
            succeeded=succeeded,
            failed=failed,
            details=tuple(details),
        )

    def _run_rebase(self, task: BackgroundTask, worktree: Worktree, onto: str) -> TaskResult:
        try:
            self.worktree_service.rebase(worktree.path, onto)
        except WorktreeOperationError as e:
            return self._result(task, error=e, worktree_path=worktree.path, branch=worktree.branch)
        return self._result(task, worktree_path=worktree.path, branch=worktree.branch, message=onto)
