"""Application state and the reducer that drives it.

``apply(state, message)`` is pure: it returns the next state plus a list of
effects (start a task, show a notification, redraw...) that the main loop
executes. Background results arrive as :class:`TaskCompleted` messages and are
folded in on the tick.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List, Optional, Tuple, Union

from git_worktree_manager.constants import PAGE_SIZE
from git_worktree_manager.core.actions import Action, ActionKind
from git_worktree_manager.core.dispatcher import ModeName
from git_worktree_manager.core.notifications import NotificationCenter, Severity
from git_worktree_manager.formatters import format_result_message
from git_worktree_manager.models.task import (
    BackgroundTask,
    CreateRequest,
    DeleteRequest,
    PruneRequest,
    RebaseRequest,
    TaskKind,
    TaskResult,
)
from git_worktree_manager.models.worktree import Branch, Worktree, WorktreeDetails

# Modes


@dataclass(frozen=True)
class NormalMode:
    pass


@dataclass(frozen=True)
class SearchMode:
    previous_filter: str = ""


@dataclass(frozen=True)
class CreateDraft:
    """Create form: the typed name, the highlighted choice and submission state."""

    name: str = ""
    choice_index: int = 0
    error: Optional[str] = None
    pending_request: Optional[int] = None

    @property
    def is_pending(self) -> bool:
        return self.pending_request is not None


@dataclass(frozen=True)
class CreateMode:
    draft: CreateDraft = field(default_factory=CreateDraft)


class ConfirmKind(Enum):
    DELETE = "delete"
    PRUNE = "prune"


@dataclass(frozen=True)
class ConfirmMode:
    kind: ConfirmKind
    target: Optional[Worktree] = None
    candidates: Tuple[Worktree, ...] = ()
    delete_branch: bool = False


class OverlayKind(Enum):
    HELP = "help"
    DETAIL = "detail"


@dataclass(frozen=True)
class OverlayMode:
    kind: OverlayKind
    target: Optional[Worktree] = None
    details: Optional[WorktreeDetails] = None  # None while loading


Mode = Union[NormalMode, SearchMode, CreateMode, ConfirmMode, OverlayMode]

_MODE_NAMES = {
    NormalMode: ModeName.NORMAL,
    SearchMode: ModeName.SEARCH,
    CreateMode: ModeName.CREATE,
    ConfirmMode: ModeName.CONFIRM,
    OverlayMode: ModeName.OVERLAY,
}


def mode_name(mode: Mode) -> ModeName:
    return _MODE_NAMES[type(mode)]


# Effects


@dataclass(frozen=True)
class StartBackgroundTask:
    request: Union[CreateRequest, DeleteRequest, PruneRequest, RebaseRequest]


@dataclass(frozen=True)
class ShowNotification:
    message: str
    severity: Severity = Severity.INFO


@dataclass(frozen=True)
class RequestRedraw:
    pass


@dataclass(frozen=True)
class RequestRefresh:
    pass


@dataclass(frozen=True)
class LoadDetails:
    path: str


@dataclass(frozen=True)
class OpenWorktree:
    """Spawn a subshell in ``path`` (or print it, in print-path mode)."""
    path: str


@dataclass(frozen=True)
class RunCommand:
    command: str
    path: Optional[str] = None


@dataclass(frozen=True)
class Quit:
    pass


Effect = Union[
    StartBackgroundTask, ShowNotification, RequestRedraw, RequestRefresh, LoadDetails, OpenWorktree, RunCommand, Quit
]

# Messages


@dataclass(frozen=True)
class WorktreesLoaded:
    worktrees: Tuple[Worktree, ...]
    branches: Tuple[Branch, ...] = ()


@dataclass(frozen=True)
class DetailsLoaded:
    details: WorktreeDetails


@dataclass(frozen=True)
class TaskStarted:
    task_id: int
    kind: TaskKind
    paths: Tuple[str, ...]
    request_id: Optional[int] = None

    @classmethod
    def from_task(cls, task: BackgroundTask) -> "TaskStarted":
        return cls(task_id=task.id, kind=task.kind, paths=task.paths, request_id=task.request_id)


@dataclass(frozen=True)
class TaskRejected:
    """The lifecycle manager refused a request before creating a task."""
    request_id: int
    kind: TaskKind
    reason: str


@dataclass(frozen=True)
class TaskCompleted:
    result: TaskResult


@dataclass(frozen=True)
class Tick:
    pass


Message = Union[Action, WorktreesLoaded, DetailsLoaded, TaskStarted, TaskRejected, TaskCompleted, Tick]


@dataclass(frozen=True)
class RunningTask:
    task_id: int
    kind: TaskKind
    paths: Tuple[str, ...]
    request_id: Optional[int] = None


@dataclass(frozen=True)
class CreateChoice:
    label: str
    branch: str
    new_branch: bool
    is_remote: bool = False


@dataclass(frozen=True)
class AppState:
    """Everything the render layer needs, as one immutable value."""

    worktrees: Tuple[Worktree, ...] = ()
    branches: Tuple[Branch, ...] = ()
    filter_text: str = ""
    selected: Optional[int] = None
    mode: Mode = field(default_factory=NormalMode)
    running: Tuple[RunningTask, ...] = ()
    notifications: NotificationCenter = field(default_factory=NotificationCenter)
    next_request_id: int = 1
    select_path_on_load: Optional[str] = None
    loaded: bool = False
    quitting: bool = False
    tilde_home: bool = True

    @property
    def mode_name(self) -> ModeName:
        return mode_name(self.mode)

    @property
    def visible_worktrees(self) -> Tuple[Worktree, ...]:
        """Worktrees matching the filter (case-insensitive, on branch or path)."""
        needle = self.filter_text.strip().lower()
        if not needle:
            return self.worktrees
        return tuple(
            wt for wt in self.worktrees
            if needle in (wt.branch or "").lower() or needle in wt.path.lower()
        )

    @property
    def selected_worktree(self) -> Optional[Worktree]:
        visible = self.visible_worktrees
        if self.selected is None or not 0 <= self.selected < len(visible):
            return None
        return visible[self.selected]

    @property
    def busy_paths(self) -> Tuple[str, ...]:
        return tuple(path for task in self.running for path in task.paths)

    def is_busy(self, path: str) -> bool:
        return path in self.busy_paths

    def create_choices(self, name: str) -> List[CreateChoice]:
        """Choices of the Create form for the typed ``name``.

        The first entry always creates a new branch named after the input. The
        rest are local branches without a worktree and remote-only branches.
        """
        choices = [CreateChoice(label=f"+ new branch '{name}'", branch=name, new_branch=True)]
        needle = name.strip().lower()
        for branch in self.branches:
            if branch.has_worktree:
                continue
            if needle and needle not in branch.name.lower():
                continue
            choices.append(CreateChoice(
                label=branch.name,
                branch=branch.local_name,
                new_branch=False,
                is_remote=branch.is_remote,
            ))
        return choices


def apply(state: AppState, message: Message) -> Tuple[AppState, List[Effect]]:
    """Apply an action or internal message; returns (new_state, effects)."""
    if isinstance(message, Action):
        if state.quitting:
            return state, []
        new_state, effects = _apply_action(state, message)
    elif isinstance(message, WorktreesLoaded):
        new_state, effects = _on_worktrees_loaded(state, message)
    elif isinstance(message, DetailsLoaded):
        new_state, effects = _on_details_loaded(state, message.details), []
    elif isinstance(message, TaskStarted):
        running = RunningTask(message.task_id, message.kind, message.paths, message.request_id)
        new_state, effects = replace(state, running=state.running + (running,)), []
    elif isinstance(message, TaskRejected):
        new_state, effects = _on_task_rejected(state, message)
    elif isinstance(message, TaskCompleted):
        new_state, effects = _on_task_completed(state, message.result)
    elif isinstance(message, Tick):
        notifications = state.notifications.advance()
        new_state = replace(state, notifications=notifications)
        # Spinner frames and expiring notifications both need a repaint
        if state.running or notifications.entries != state.notifications.entries:
            return new_state, [RequestRedraw()]
        return new_state, []
    else:
        raise TypeError(f"unknown message: {message!r}")

    if new_state != state and not any(isinstance(e, RequestRedraw) for e in effects):
        effects.append(RequestRedraw())
    return new_state, effects


# Selection


def _clamp_selection(state: AppState, keep_path: Optional[str] = None) -> AppState:
    """Keep the selection inside the visible list, following ``keep_path`` when it is visible."""
    visible = state.visible_worktrees
    if not visible:
        return replace(state, selected=None)
    if keep_path is not None:
        for index, wt in enumerate(visible):
            if wt.path == keep_path:
                return replace(state, selected=index)
    selected = state.selected if state.selected is not None else 0
    return replace(state, selected=min(max(selected, 0), len(visible) - 1))


def _with_filter(state: AppState, filter_text: str) -> AppState:
    current = state.selected_worktree
    state = replace(state, filter_text=filter_text)
    return _clamp_selection(state, current.path if current else None)


def _move(state: AppState, delta: Optional[int] = None, to: Optional[str] = None) -> AppState:
    visible = state.visible_worktrees
    if not visible:
        return replace(state, selected=None)
    if to == "top":
        index = 0
    elif to == "bottom":
        index = len(visible) - 1
    else:
        index = (state.selected or 0) + (delta or 0)
    return replace(state, selected=min(max(index, 0), len(visible) - 1))


def _move_choice(state: AppState, mode: CreateMode, delta: int) -> AppState:
    choices = state.create_choices(mode.draft.name)
    index = min(max(mode.draft.choice_index + delta, 0), len(choices) - 1)
    return replace(state, mode=CreateMode(replace(mode.draft, choice_index=index)))


_MOVES = {
    ActionKind.MOVE_UP: -1,
    ActionKind.MOVE_DOWN: 1,
    ActionKind.PAGE_UP: -PAGE_SIZE,
    ActionKind.PAGE_DOWN: PAGE_SIZE,
}

_WORD_RE = re.compile(r"(\w+|[^\w\s]+)\s*$")


def _delete_word(text: str) -> str:
    trimmed = _WORD_RE.sub("", text)
    return trimmed if trimmed != text else text.rstrip()


def _edit_text(text: str, action: Action) -> str:
    if action.kind == ActionKind.INSERT_CHAR:
        return text + (action.argument or "")
    if action.kind == ActionKind.DELETE_CHAR:
        return text[:-1]
    if action.kind == ActionKind.DELETE_WORD:
        return _delete_word(text)
    return ""  # CLEAR_INPUT


_EDIT_ACTIONS = (ActionKind.INSERT_CHAR, ActionKind.DELETE_CHAR, ActionKind.DELETE_WORD, ActionKind.CLEAR_INPUT)


# Actions


def _apply_action(state: AppState, action: Action) -> Tuple[AppState, List[Effect]]:
    kind = action.kind
    mode = state.mode

    if kind == ActionKind.FORCE_QUIT:
        return replace(state, quitting=True), [Quit()]

    if kind == ActionKind.QUIT:
        if isinstance(mode, NormalMode):
            return replace(state, quitting=True), [Quit()]
        return _leave_mode(state), []

    if kind == ActionKind.ENTER_SEARCH:
        filter_text = action.argument if action.argument is not None else state.filter_text
        state = replace(state, mode=SearchMode(previous_filter=state.filter_text))
        return _with_filter(state, filter_text), []

    if isinstance(mode, CreateMode):
        return _apply_create_action(state, mode, action)
    if isinstance(mode, ConfirmMode):
        return _apply_confirm_action(state, mode, action)
    if isinstance(mode, OverlayMode):
        if kind == ActionKind.TOGGLE_HELP and mode.kind == OverlayKind.DETAIL:
            return replace(state, mode=OverlayMode(OverlayKind.HELP)), []
        if kind in (ActionKind.CANCEL, ActionKind.SELECT, ActionKind.TOGGLE_HELP, ActionKind.SHOW_DETAIL):
            return _leave_mode(state), []
        return state, []

    # Normal and Search share the list actions
    if isinstance(mode, SearchMode):
        if kind in _EDIT_ACTIONS:
            return _with_filter(state, _edit_text(state.filter_text, action)), []
        if kind == ActionKind.CANCEL:
            return _with_filter(replace(state, mode=NormalMode()), ""), []
        if kind == ActionKind.SELECT:
            # Enter keeps the filter
            return replace(state, mode=NormalMode()), []

    if kind in _MOVES:
        return _move(state, delta=_MOVES[kind]), []
    if kind == ActionKind.MOVE_TOP:
        return _move(state, to="top"), []
    if kind == ActionKind.MOVE_BOTTOM:
        return _move(state, to="bottom"), []

    if kind == ActionKind.CANCEL:
        if state.filter_text:
            return _with_filter(state, ""), []
        return state, []

    if kind == ActionKind.REFRESH:
        return state, [RequestRefresh()]

    if kind == ActionKind.TOGGLE_HELP:
        return replace(state, mode=OverlayMode(OverlayKind.HELP)), []

    if kind == ActionKind.CREATE_WORKTREE:
        return replace(state, mode=CreateMode()), []

    if kind == ActionKind.PRUNE:
        return _start_prune(state)

    selected = state.selected_worktree

    if kind == ActionKind.RUN_COMMAND and action.argument:
        return state, [RunCommand(action.argument, selected.path if selected else None)]

    if selected is None:
        return state, []

    if kind in (ActionKind.SELECT, ActionKind.OPEN_SHELL):
        return state, [OpenWorktree(selected.path)]

    if kind == ActionKind.SHOW_DETAIL:
        return replace(state, mode=OverlayMode(OverlayKind.DETAIL, target=selected)), [LoadDetails(selected.path)]

    if kind == ActionKind.DELETE_WORKTREE:
        if selected.is_main:
            return state, [ShowNotification("The main worktree cannot be deleted", Severity.WARNING)]
        if state.is_busy(selected.path):
            return state, [ShowNotification(f"An operation is already running for {selected.name}", Severity.WARNING)]
        return replace(state, mode=ConfirmMode(ConfirmKind.DELETE, target=selected)), []

    if kind == ActionKind.REBASE:
        if selected.branch is None:
            return state, [ShowNotification("Cannot rebase a detached HEAD", Severity.WARNING)]
        if state.is_busy(selected.path):
            return state, [ShowNotification(f"An operation is already running for {selected.name}", Severity.WARNING)]
        request = RebaseRequest(request_id=state.next_request_id, path=selected.path)
        return replace(state, next_request_id=state.next_request_id + 1), [StartBackgroundTask(request)]

    return state, []


def _leave_mode(state: AppState) -> AppState:
    """Return to Normal, discarding dialog state. Leaving Search clears the filter."""
    if isinstance(state.mode, SearchMode):
        return _with_filter(replace(state, mode=NormalMode()), "")
    return replace(state, mode=NormalMode())


def _start_prune(state: AppState) -> Tuple[AppState, List[Effect]]:
    merged = {branch.name for branch in state.branches if branch.is_merged and not branch.is_remote}
    candidates = tuple(
        wt for wt in state.worktrees
        if not wt.is_main and wt.branch in merged and not state.is_busy(wt.path)
    )
    if not candidates:
        return state, [ShowNotification("No merged worktrees to prune", Severity.INFO)]
    return replace(state, mode=ConfirmMode(ConfirmKind.PRUNE, candidates=candidates)), []


def _apply_create_action(state: AppState, mode: CreateMode, action: Action) -> Tuple[AppState, List[Effect]]:
    kind = action.kind
    draft = mode.draft

    if kind == ActionKind.CANCEL:
        return _leave_mode(state), []

    # Input is frozen while the submitted request is running
    if draft.is_pending:
        return state, []

    if kind in _EDIT_ACTIONS:
        name = _edit_text(draft.name, action)
        return replace(state, mode=CreateMode(CreateDraft(name=name))), []
    if kind in (ActionKind.MOVE_UP, ActionKind.MOVE_DOWN, ActionKind.PAGE_UP, ActionKind.PAGE_DOWN):
        return _move_choice(state, mode, _MOVES[kind]), []
    if kind == ActionKind.MOVE_TOP:
        return _move_choice(state, mode, -draft.choice_index), []
    if kind == ActionKind.MOVE_BOTTOM:
        return _move_choice(state, mode, len(state.create_choices(draft.name))), []

    if kind in (ActionKind.SELECT, ActionKind.CONFIRM):
        choices = state.create_choices(draft.name)
        choice = choices[min(draft.choice_index, len(choices) - 1)]
        if not choice.branch.strip():
            error = "Enter a branch name"
            return replace(state, mode=CreateMode(replace(draft, error=error))), []
        request = CreateRequest(
            request_id=state.next_request_id,
            branch=choice.branch.strip(),
            new_branch=choice.new_branch,
        )
        pending = replace(draft, error=None, pending_request=request.request_id)
        return (
            replace(state, mode=CreateMode(pending), next_request_id=state.next_request_id + 1),
            [StartBackgroundTask(request)],
        )
    return state, []


def _apply_confirm_action(state: AppState, mode: ConfirmMode, action: Action) -> Tuple[AppState, List[Effect]]:
    kind = action.kind
    if kind == ActionKind.CANCEL:
        return _leave_mode(state), []
    if kind not in (ActionKind.CONFIRM, ActionKind.CONFIRM_WITH_BRANCH, ActionKind.SELECT):
        return state, []

    delete_branch = mode.delete_branch or kind == ActionKind.CONFIRM_WITH_BRANCH
    request_id = state.next_request_id
    if mode.kind == ConfirmKind.DELETE:
        request = DeleteRequest(request_id=request_id, path=mode.target.path, delete_branch=delete_branch)
    else:
        request = PruneRequest(request_id=request_id, delete_branch=delete_branch)
    state = replace(state, mode=NormalMode(), next_request_id=request_id + 1)
    return state, [StartBackgroundTask(request)]


# Messages


def _on_worktrees_loaded(state: AppState, message: WorktreesLoaded) -> Tuple[AppState, List[Effect]]:
    current = state.selected_worktree
    keep_path = state.select_path_on_load or (current.path if current else None)
    state = replace(
        state,
        worktrees=tuple(message.worktrees),
        branches=tuple(message.branches),
        select_path_on_load=None,
        loaded=True,
    )
    paths = {wt.path for wt in state.worktrees}
    mode = state.mode
    # Dialogs about worktrees that disappeared are closed
    if isinstance(mode, ConfirmMode) and mode.kind == ConfirmKind.DELETE and mode.target.path not in paths:
        state = replace(state, mode=NormalMode())
    elif isinstance(mode, OverlayMode) and mode.target is not None and mode.target.path not in paths:
        state = replace(state, mode=NormalMode())
    return _clamp_selection(state, keep_path), []


def _on_details_loaded(state: AppState, details: WorktreeDetails) -> AppState:
    mode = state.mode
    # Late answers for an overlay that was closed or retargeted are dropped
    if not (isinstance(mode, OverlayMode) and mode.kind == OverlayKind.DETAIL):
        return state
    if mode.target is None or mode.target.path != details.path:
        return state
    return replace(state, mode=replace(mode, details=details))


def _on_task_rejected(state: AppState, message: TaskRejected) -> Tuple[AppState, List[Effect]]:
    mode = state.mode
    if isinstance(mode, CreateMode) and mode.draft.pending_request == message.request_id:
        draft = replace(mode.draft, pending_request=None, error=message.reason)
        return replace(state, mode=CreateMode(draft)), []
    return state, [ShowNotification(message.reason, Severity.ERROR)]


def _on_task_completed(state: AppState, result: TaskResult) -> Tuple[AppState, List[Effect]]:
    if state.quitting:
        return state, []

    state = replace(state, running=tuple(t for t in state.running if t.task_id != result.task_id))

    # Results for worktrees that are gone from the list are dropped
    if result.kind in (TaskKind.DELETE, TaskKind.REBASE):
        paths = {wt.path for wt in state.worktrees}
        if not any(path in paths for path in result.paths):
            return state, []

    text = format_result_message(result, state.tilde_home)
    if result.ok:
        severity = Severity.SUCCESS
    elif result.partial or (result.kind == TaskKind.PRUNE and result.succeeded):
        severity = Severity.WARNING
    else:
        severity = Severity.ERROR
    effects: List[Effect] = [ShowNotification(text, severity), RequestRefresh()]

    if result.kind == TaskKind.CREATE:
        mode = state.mode
        if isinstance(mode, CreateMode) and mode.draft.pending_request == result.request_id:
            if result.ok or result.partial:
                state = replace(state, mode=NormalMode(), select_path_on_load=result.worktree_path)
            else:
                draft = replace(mode.draft, pending_request=None, error=text)
                state = replace(state, mode=CreateMode(draft))
        elif result.ok or result.partial:
            state = replace(state, select_path_on_load=result.worktree_path)
    return state, effects


class AppStateMachine:
    """Owns the current :class:`AppState` on the main loop thread.

    Notifications emitted by :func:`apply` are folded into the state's queue
    here; every other effect is returned to the caller.
    """

    def __init__(self, state: Optional[AppState] = None):
        self.state = state or AppState()

    def dispatch(self, message: Message) -> List[Effect]:
        self.state, effects = apply(self.state, message)
        remaining = []
        for effect in effects:
            if isinstance(effect, ShowNotification):
                self.notify(effect.message, effect.severity)
            else:
                remaining.append(effect)
        return remaining

    def notify(self, message: str, severity: Severity = Severity.INFO):
        self.state = replace(self.state, notifications=self.state.notifications.post(message, severity))

    def tick(self, completions: Iterable[TaskResult] = ()) -> List[Effect]:
        """Apply completions in arrival order, then advance the clock."""
        effects: List[Effect] = []
        for result in completions:
            effects.extend(self.dispatch(TaskCompleted(result)))
        effects.extend(self.dispatch(Tick()))
        return _dedupe(effects)


def _dedupe(effects: List[Effect]) -> List[Effect]:
    """Collapse repeated redraw/refresh requests from one tick."""
    seen = set()
    unique = []
    for effect in effects:
        if isinstance(effect, (RequestRedraw, RequestRefresh)):
            if type(effect) in seen:
                continue
            seen.add(type(effect))
        unique.append(effect)
    return unique
