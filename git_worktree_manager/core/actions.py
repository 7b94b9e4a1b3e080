"""Logical actions produced by key dispatch."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ActionKind(Enum):
    MOVE_UP = "move_up"
    MOVE_DOWN = "move_down"
    MOVE_TOP = "move_top"
    MOVE_BOTTOM = "move_bottom"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    SELECT = "select"
    OPEN_SHELL = "open_shell"
    CREATE_WORKTREE = "create_worktree"
    DELETE_WORKTREE = "delete_worktree"
    PRUNE = "prune"
    REBASE = "rebase"
    REFRESH = "refresh"
    ENTER_SEARCH = "enter_search"
    CONFIRM = "confirm"
    CONFIRM_WITH_BRANCH = "confirm_with_branch"
    CANCEL = "cancel"
    INSERT_CHAR = "insert_char"
    DELETE_CHAR = "delete_char"
    DELETE_WORD = "delete_word"
    CLEAR_INPUT = "clear_input"
    TOGGLE_HELP = "toggle_help"
    SHOW_DETAIL = "show_detail"
    QUIT = "quit"
    FORCE_QUIT = "force_quit"
    RUN_COMMAND = "run_command"


# Names accepted in [[bindings]] besides the canonical ones
ACTION_ALIASES = {
    "back": ActionKind.CANCEL,
    "delete_merged_worktrees": ActionKind.PRUNE,
    "rebase_worktree": ActionKind.REBASE,
    "enter_search_mode": ActionKind.ENTER_SEARCH,
    "help": ActionKind.TOGGLE_HELP,
    "detail": ActionKind.SHOW_DETAIL,
}

DISABLED = "none"

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def normalize_action_name(name: str) -> str:
    """``MoveDown`` / ``move-down`` / ``move_down`` -> ``move_down``."""
    return _CAMEL_RE.sub("_", name.strip()).replace("-", "_").lower()


@dataclass(frozen=True)
class Action:
    """An action with its optional payload (the typed character, a shell command)."""

    kind: ActionKind
    argument: Optional[str] = None

    @classmethod
    def parse(cls, name: str) -> Optional["Action"]:
        """Parse an action name from a binding.

        Returns:
            The action, or None for ``"None"`` (binding disabled)

        Raises:
            ValueError: if the name is unknown
        """
        normalized = normalize_action_name(name)
        if normalized == DISABLED:
            return None
        if normalized in ACTION_ALIASES:
            return cls(ACTION_ALIASES[normalized])
        try:
            return cls(ActionKind(normalized))
        except ValueError:
            raise ValueError(f"unknown action '{name}'") from None

    def __str__(self) -> str:
        if self.argument is None:
            return self.kind.value
        return f"{self.kind.value}({self.argument!r})"
