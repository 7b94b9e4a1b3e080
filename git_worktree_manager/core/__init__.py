"""Core of git-worktree-manager: dispatch, state machine, lifecycle and notifications."""

from .actions import Action, ActionKind
from .dispatcher import ActionDispatcher, ModeName, parse_chord
from .lifecycle import WorktreeLifecycleManager
from .notifications import NotificationCenter, Severity
from .state import AppState, AppStateMachine, apply

__all__ = [
    "Action",
    "ActionKind",
    "ActionDispatcher",
    "ModeName",
    "parse_chord",
    "WorktreeLifecycleManager",
    "NotificationCenter",
    "Severity",
    "AppState",
    "AppStateMachine",
    "apply",
]
