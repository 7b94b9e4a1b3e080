"""Colour themes for the worktree list."""

from dataclasses import dataclass, replace
from typing import Dict, Optional, Union

from rich.color import Color, ColorParseError
from rich.style import Style

from git_worktree_manager.constants import COLOR_KEYS


@dataclass(frozen=True)
class ThemeColors:
    """Colour for each themable element, in any form rich accepts."""

    header: str
    selected: str
    branch: str
    remote: str
    main_worktree: str
    key: str
    description: str

    def style(self, element: str, bold: bool = False) -> Style:
        return Style(color=getattr(self, element), bold=bold)

    def selected_style(self) -> Style:
        return Style(bgcolor=self.selected, bold=True)


PRESETS: Dict[str, ThemeColors] = {
    # True-colour palette
    "default": ThemeColors(
        header="#7aa2f7",
        selected="#283457",
        branch="#9ece6a",
        remote="#e0af68",
        main_worktree="#bb9af7",
        key="#7dcfff",
        description="#a9b1d6",
    ),
    # 16-colour palette for terminals without true colour
    "classic": ThemeColors(
        header="blue",
        selected="bright_black",
        branch="green",
        remote="yellow",
        main_worktree="magenta",
        key="cyan",
        description="white",
    ),
}


def normalize_color(value: Union[str, int]) -> str:
    """Normalise a colour value from [ui.colors].

    Accepts hex (``#RRGGBB``), a rich/CSS colour name, and a 256-colour index
    given as an integer, a digit string or ``color(N)``.

    Raises:
        ValueError: if the value is not a colour
    """
    if isinstance(value, bool):
        raise ValueError(f"not a colour: {value!r}")
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        raise ValueError(f"not a colour: {value!r}")

    text = value.strip()
    if text.isdigit():
        text = f"color({text})"
    try:
        Color.parse(text)
    except ColorParseError as e:
        raise ValueError(str(e)) from e
    return text


def build_theme(name: str, overrides: Optional[Dict[str, str]] = None) -> ThemeColors:
    """Preset ``name`` with per-key colour overrides applied."""
    theme = PRESETS[name]
    if overrides:
        theme = replace(theme, **{k: v for k, v in overrides.items() if k in COLOR_KEYS})
    return theme
