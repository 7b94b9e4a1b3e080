"""Shared constants for git-worktree-manager."""

from typing import Dict, Tuple

APP_NAME = "gwm"

# Configuration files
GLOBAL_CONFIG_FILE = ".gwm.toml"  # in $HOME
XDG_CONFIG_SUBDIR = "gwm"
XDG_CONFIG_FILE = "config.toml"
LOCAL_CONFIG_FILE = ".gwm.toml"
LOCAL_CONFIG_DIR = ".gwm"  # .gwm/config.toml, older layout

# Logging
LOG_DIR_NAME = ".gwm"
LOG_FILE_NAME = "gwm.log"

# Environment variables mapped onto config options
ENV_PREFIX = "GWM_"
ENV_OPTIONS: Dict[str, str] = {
    "GWM_WORKTREE_BASEDIR": "worktree.basedir",
    "GWM_WORKTREE_AUTO_MKDIR": "worktree.auto_mkdir",
    "GWM_UI_ICONS": "ui.icons",
    "GWM_UI_TILDE_HOME": "ui.tilde_home",
    "GWM_UI_THEME": "ui.theme",
}
TRUE_LITERALS = ("true", "1", "yes")
FALSE_LITERALS = ("false", "0", "no")

# Defaults
DEFAULT_BASEDIR = "~/worktrees"
DEFAULT_TEMPLATE = "{branch}"
DEFAULT_SANITIZE_CHARS: Dict[str, str] = {"/": "-"}
DEFAULT_THEME = "default"
THEME_NAMES = ("default", "classic")
COLOR_KEYS = ("header", "selected", "branch", "remote", "main_worktree", "key", "description")

# Hook variables exported to hooks and setup commands
HOOK_VARIABLES = ("WORKTREE_NAME", "WORKTREE_PATH", "WORKTREE_BRANCH")

# Main loop timing
TICK_SECONDS = 0.1
NOTIFICATION_TTL_TICKS = 40  # 4 seconds
ERROR_NOTIFICATION_TTL_TICKS = 80
PAGE_SIZE = 10

SPINNER_FRAMES: Tuple[str, ...] = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")

# Symbols
SYMBOL_MAIN = "●"
SYMBOL_DIRTY = "M"
SYMBOL_CLEAN = " "
SYMBOL_DETACHED = "(detached)"
ICON_WORKTREE = ""  # nf-fa-folder
ICON_MAIN = ""  # nf-fa-home
ICON_BRANCH = ""  # nf-dev-git_branch

HELP_TEXT = """
Normal mode:
  j / k / ↑ / ↓ / C-n / C-p   Move
  g / G                       Top / bottom
  Enter                       Open shell in worktree
  c / C-o                     Create worktree
  d / C-d                     Delete worktree
  D                           Prune merged worktrees
  r                           Rebase onto default branch
  R / C-r                     Refresh
  / (or any letter)           Filter
  i                           Worktree details
  ? / q                       Help / quit

Confirm dialog:
  y / Enter   Delete worktree      Y   Delete worktree and branch
  n / Esc     Cancel
"""
