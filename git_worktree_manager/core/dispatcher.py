"""Key chord to action dispatch.

The binding table maps ``(mode, chord)`` to an :class:`Action`. A ``None``
mode is a global binding; a mode-specific binding for the same chord always
wins over a global one.
"""

import re
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from git_worktree_manager.config import BindingSpec
from git_worktree_manager.core.actions import Action, ActionKind
from git_worktree_manager.logging_config import get_logger

logger = get_logger(__name__)


class ModeName(Enum):
    NORMAL = "normal"
    SEARCH = "search"
    CREATE = "create"
    CONFIRM = "confirm"
    OVERLAY = "overlay"


MODIFIER_ALIASES = {
    "c": "ctrl", "ctrl": "ctrl", "control": "ctrl",
    "m": "alt", "a": "alt", "alt": "alt", "meta": "alt", "option": "alt",
    "s": "shift", "shift": "shift",
    "super": "super", "cmd": "super", "command": "super",
}
MODIFIER_ORDER = ("ctrl", "alt", "shift", "super")

KEY_ALIASES = {
    "esc": "escape",
    "return": "enter",
    "ret": "enter",
    "cr": "enter",
    "del": "delete",
    "bs": "backspace",
    "pgup": "pageup",
    "page_up": "pageup",
    "pgdn": "pagedown",
    "pgdown": "pagedown",
    "page_down": "pagedown",
    " ": "space",
    "spc": "space",
    "slash": "/",
    "question_mark": "?",
}
NAMED_KEYS = {
    "escape", "enter", "tab", "backspace", "delete", "insert", "space",
    "up", "down", "left", "right", "home", "end", "pageup", "pagedown",
} | {f"f{n}" for n in range(1, 25)}

_EMACS_RE = re.compile(r"^([CMSAcmsa])-(.+)$")

Binding = Tuple[Optional[ModeName], str, Optional[Action]]


def parse_chord(key: str, mods: Optional[str] = None) -> str:
    """Normalise a key description to a canonical chord string.

    Accepts ``j``, ``G``, ``ctrl+n``, ``C-n``, ``alt+x``, ``esc``, ``pgdn``...
    and an optional ``mods`` list such as ``"Control|Shift"``. ``shift`` with a
    letter becomes the uppercase letter and ``ctrl`` letters are lowercased.

    Raises:
        ValueError: if the chord cannot be parsed
    """
    if not key:
        raise ValueError("empty key")

    modifiers = set()
    if mods:
        for mod in mods.split("|"):
            mod = mod.strip().lower()
            if mod in ("", "none"):
                continue
            if mod not in MODIFIER_ALIASES:
                raise ValueError(f"unknown modifier '{mod}'")
            modifiers.add(MODIFIER_ALIASES[mod])

    text = key if key == " " else key.strip()
    # C-n, M-x (but a bare "-" or "C-" style typo is left to the checks below)
    while True:
        match = _EMACS_RE.match(text)
        if not match:
            break
        modifiers.add(MODIFIER_ALIASES[match.group(1).lower()])
        text = match.group(2)

    if len(text) > 1 and "+" in text:
        parts = text.split("+")
        if parts[-1] == "":  # "ctrl++"
            parts = parts[:-2] + ["+"]
        for mod in parts[:-1]:
            mod = mod.strip().lower()
            if mod not in MODIFIER_ALIASES:
                raise ValueError(f"unknown modifier '{mod}' in '{key}'")
            modifiers.add(MODIFIER_ALIASES[mod])
        text = parts[-1]

    if len(text) == 1 and text != " ":
        base = text
    else:
        base = KEY_ALIASES.get(text.lower(), text.lower())
        if base not in NAMED_KEYS and len(base) != 1:
            raise ValueError(f"unknown key '{key}'")

    if len(base) == 1 and base.isalpha():
        if "shift" in modifiers:
            modifiers.discard("shift")
            base = base.upper()
        if "ctrl" in modifiers or "alt" in modifiers:
            base = base.lower()

    prefix = [mod for mod in MODIFIER_ORDER if mod in modifiers]
    return "+".join(prefix + [base])


def parse_mode_selector(selector: Optional[str]) -> Optional[FrozenSet[ModeName]]:
    """Parse a binding's ``mode``: ``normal``, ``search|create`` or ``~confirm``.

    Returns:
        The selected modes, or None for a global binding

    Raises:
        ValueError: on unknown mode names
    """
    if selector is None or not selector.strip():
        return None

    text = selector.strip().lower()
    negate = text.startswith("~")
    if negate:
        text = text[1:]

    modes = set()
    for name in text.split("|"):
        try:
            modes.add(ModeName(name.strip()))
        except ValueError:
            raise ValueError(f"unknown mode '{name.strip()}'") from None

    if negate:
        return frozenset(set(ModeName) - modes)
    return frozenset(modes)


def _bind(mode: Optional[ModeName], keys: str, kind: ActionKind) -> List[Binding]:
    return [(mode, key, Action(kind)) for key in keys.split()]


N, S, C, F, O = ModeName.NORMAL, ModeName.SEARCH, ModeName.CREATE, ModeName.CONFIRM, ModeName.OVERLAY

DEFAULT_BINDINGS: List[Binding] = [
    *_bind(None, "ctrl+c", ActionKind.FORCE_QUIT),

    *_bind(N, "j down ctrl+n", ActionKind.MOVE_DOWN),
    *_bind(N, "k up ctrl+p", ActionKind.MOVE_UP),
    *_bind(N, "g home", ActionKind.MOVE_TOP),
    *_bind(N, "G end", ActionKind.MOVE_BOTTOM),
    *_bind(N, "pageup ctrl+b", ActionKind.PAGE_UP),
    *_bind(N, "pagedown ctrl+f", ActionKind.PAGE_DOWN),
    *_bind(N, "enter", ActionKind.SELECT),
    *_bind(N, "c ctrl+o", ActionKind.CREATE_WORKTREE),
    *_bind(N, "d ctrl+d", ActionKind.DELETE_WORKTREE),
    *_bind(N, "D", ActionKind.PRUNE),
    *_bind(N, "r", ActionKind.REBASE),
    *_bind(N, "R ctrl+r", ActionKind.REFRESH),
    *_bind(N, "/", ActionKind.ENTER_SEARCH),
    *_bind(N, "i", ActionKind.SHOW_DETAIL),
    *_bind(N, "?", ActionKind.TOGGLE_HELP),
    *_bind(N, "escape", ActionKind.CANCEL),
    *_bind(N, "q", ActionKind.QUIT),

    *_bind(S, "escape ctrl+g", ActionKind.CANCEL),
    *_bind(S, "enter", ActionKind.SELECT),
    *_bind(S, "backspace ctrl+h", ActionKind.DELETE_CHAR),
    *_bind(S, "ctrl+w", ActionKind.DELETE_WORD),
    *_bind(S, "ctrl+u", ActionKind.CLEAR_INPUT),
    *_bind(S, "down ctrl+n", ActionKind.MOVE_DOWN),
    *_bind(S, "up ctrl+p", ActionKind.MOVE_UP),

    *_bind(C, "escape ctrl+g ctrl+c", ActionKind.CANCEL),
    *_bind(C, "enter", ActionKind.SELECT),
    *_bind(C, "backspace ctrl+h", ActionKind.DELETE_CHAR),
    *_bind(C, "ctrl+w", ActionKind.DELETE_WORD),
    *_bind(C, "ctrl+u", ActionKind.CLEAR_INPUT),
    *_bind(C, "down ctrl+n tab", ActionKind.MOVE_DOWN),
    *_bind(C, "up ctrl+p", ActionKind.MOVE_UP),

    *_bind(F, "y enter", ActionKind.CONFIRM),
    *_bind(F, "Y", ActionKind.CONFIRM_WITH_BRANCH),
    *_bind(F, "n N escape", ActionKind.CANCEL),
    *_bind(F, "q", ActionKind.QUIT),
    *_bind(F, "/", ActionKind.ENTER_SEARCH),

    *_bind(O, "escape enter", ActionKind.CANCEL),
    *_bind(O, "?", ActionKind.TOGGLE_HELP),
    *_bind(O, "q", ActionKind.QUIT),
    *_bind(O, "/", ActionKind.ENTER_SEARCH),
]


class ActionDispatcher:
    """Maps (mode, chord) to actions using defaults overlaid by user bindings."""

    def __init__(self, user_bindings: Iterable[BindingSpec] = (), defaults: Iterable[Binding] = DEFAULT_BINDINGS):
        self._table: Dict[Tuple[Optional[ModeName], str], Optional[Action]] = {}
        for mode, key, action in defaults:
            self._table[(mode, parse_chord(key))] = action
        for spec in user_bindings:
            self._apply_user_binding(spec)

    def _apply_user_binding(self, spec: BindingSpec):
        try:
            chord = parse_chord(spec.key, spec.mods)
            modes = parse_mode_selector(spec.mode)
            if spec.command is not None:
                action = Action(ActionKind.RUN_COMMAND, spec.command)
            else:
                action = Action.parse(spec.action or "")
        except ValueError as e:
            logger.warning(f"Skipping binding '{spec.key}' from {spec.origin or 'config'}: {e}")
            return

        targets = [None] if modes is None else sorted(modes, key=lambda m: m.value)
        for mode in targets:
            self._table[(mode, chord)] = action
        logger.debug(f"Bound {chord} in {spec.mode or 'all modes'} -> {action}")

    def dispatch(self, mode: ModeName, chord: str) -> Optional[Action]:
        """Return the action for ``chord`` in ``mode``, or None if the chord is inert."""
        for key in ((mode, chord), (None, chord)):
            if key in self._table:
                return self._table[key]

        if mode in (ModeName.SEARCH, ModeName.CREATE):
            if chord == "space":
                return Action(ActionKind.INSERT_CHAR, " ")
            if len(chord) == 1 and chord.isprintable():
                return Action(ActionKind.INSERT_CHAR, chord)
        elif mode == ModeName.NORMAL and len(chord) == 1 and "a" <= chord <= "z":
            # Typing in Normal mode starts a search with that character
            return Action(ActionKind.ENTER_SEARCH, chord)
        return None

    def bindings_for(self, mode: ModeName) -> List[Tuple[str, Action]]:
        """Effective (chord, action) pairs in ``mode``, for the help overlay."""
        effective: Dict[str, Action] = {}
        for (bound_mode, chord), action in self._table.items():
            if action is None:
                continue
            if bound_mode == mode or (bound_mode is None and (mode, chord) not in self._table):
                effective[chord] = action
        return sorted(effective.items())
