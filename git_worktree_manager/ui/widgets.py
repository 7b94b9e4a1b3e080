"""Custom widgets for the git-worktree-manager TUI."""

from typing import Optional

from rich.text import Text
from textual import events
from textual.app import ComposeResult, RenderResult
from textual.events import Click
from textual.message import Message
from textual.widgets import Header, Static
from textual.widgets._header import HeaderIcon, HeaderTitle, HeaderClockSpace

from git_worktree_manager.__version__ import __version__
from git_worktree_manager.core.dispatcher import parse_chord


def chord_from_key(key: str, character: Optional[str]) -> Optional[str]:
    """Canonical chord for a Textual key event.

    Printable characters are used as typed (so ``G`` and ``/`` match bindings
    directly); everything else goes through the key name.
    """
    modified = key.startswith(("ctrl+", "alt+", "super+"))
    if character and len(character) == 1 and character.isprintable() and not modified:
        return "space" if character == " " else character
    try:
        return parse_chord(key)
    except ValueError:
        return None


class VersionDisplay(HeaderClockSpace):
    """Custom widget to display version in place of clock."""

    DEFAULT_CSS = """
    VersionDisplay {
        width: auto;
        dock: right;
        padding: 0 1;
        background: $foreground 5%;
        color: $text;
        text-align: center;
        text-opacity: 85%;
    }
    """

    def render(self) -> RenderResult:
        return Text(f"gwm v{__version__}")


class NonExpandingHeader(Header):
    """Header that doesn't expand on click and shows the version instead of a clock."""

    def compose(self) -> ComposeResult:
        yield HeaderIcon().data_bind(Header.icon)
        yield HeaderTitle()
        yield VersionDisplay() if self._show_clock else HeaderClockSpace()

    def on_click(self, event: Click) -> None:
        """Override to disable click-to-expand behavior."""
        event.stop()


class WorktreeList(Static, can_focus=True):
    """The worktree table. Holds focus and turns every key press into a chord message."""

    class ChordPressed(Message):
        def __init__(self, chord: str) -> None:
            self.chord = chord
            super().__init__()

    def on_key(self, event: events.Key) -> None:
        chord = chord_from_key(event.key, event.character)
        # Keys are interpreted by the dispatcher, not by Textual bindings
        event.stop()
        event.prevent_default()
        if chord:
            self.post_message(self.ChordPressed(chord))
