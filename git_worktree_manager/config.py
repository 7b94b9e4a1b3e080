"""Resolved configuration for git-worktree-manager"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from git_worktree_manager.constants import (
    COLOR_KEYS,
    DEFAULT_BASEDIR,
    DEFAULT_SANITIZE_CHARS,
    DEFAULT_TEMPLATE,
    DEFAULT_THEME,
    THEME_NAMES,
)
from git_worktree_manager.exceptions import ConfigError


class ConfigSource(Enum):
    """Where an effective option value came from."""
    ENV = "env"
    LOCAL = "local"
    REPOSITORY_SETTING = "repository-setting"
    GLOBAL = "global"
    DEFAULT = "default"


class HookEvent(Enum):
    PRE_CREATE = "pre_create"
    POST_CREATE = "post_create"
    PRE_DELETE = "pre_delete"
    POST_DELETE = "post_delete"


@dataclass(frozen=True)
class WorktreeSettings:
    """[worktree] section."""

    basedir: str = DEFAULT_BASEDIR
    auto_mkdir: bool = True

    def __post_init__(self):
        self._validate_basedir()

    def _validate_basedir(self):
        """Validate basedir is not empty."""
        if not self.basedir or not self.basedir.strip():
            raise ConfigError("worktree.basedir cannot be empty")


@dataclass(frozen=True)
class NamingSettings:
    """[naming] section."""

    template: str = DEFAULT_TEMPLATE
    sanitize_chars: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SANITIZE_CHARS))

    def __post_init__(self):
        self._validate_template()
        self._validate_sanitize_chars()

    def _validate_template(self):
        if not self.template or not self.template.strip():
            raise ConfigError("naming.template cannot be empty")

    def _validate_sanitize_chars(self):
        """Replacement keys must be non-empty strings."""
        for key, value in self.sanitize_chars.items():
            if not isinstance(key, str) or not key:
                raise ConfigError("naming.sanitize_chars keys must be non-empty strings")
            if not isinstance(value, str):
                raise ConfigError(f"naming.sanitize_chars value for '{key}' must be a string")


@dataclass(frozen=True)
class UiSettings:
    """[ui] section. ``colors`` holds only the user overrides from [ui.colors]."""

    icons: bool = True
    tilde_home: bool = True
    theme: str = DEFAULT_THEME
    colors: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self._validate_theme()
        self._validate_colors()

    def _validate_theme(self):
        """Validate theme is one of the built-in presets."""
        if self.theme not in THEME_NAMES:
            raise ConfigError(f"ui.theme must be one of {list(THEME_NAMES)}, got '{self.theme}'")

    def _validate_colors(self):
        unknown = set(self.colors) - set(COLOR_KEYS)
        if unknown:
            raise ConfigError(f"unknown ui.colors keys: {', '.join(sorted(unknown))}")


@dataclass(frozen=True)
class HookSpec:
    """A [[hooks]] entry."""

    event: HookEvent
    command: str
    cwd: Optional[str] = None


@dataclass(frozen=True)
class BindingSpec:
    """A [[bindings]] entry as written in the config file.

    Exactly one of ``action`` and ``command`` is set. ``mode`` keeps the raw
    selector (``normal``, ``search|create``, ``~confirm``) and is interpreted by
    the dispatcher.
    """

    key: str
    action: Optional[str] = None
    command: Optional[str] = None
    mode: Optional[str] = None
    mods: Optional[str] = None
    origin: Optional[str] = None  # file that declared the binding


@dataclass(frozen=True)
class ResolvedConfig:
    """Immutable snapshot of the merged configuration."""

    worktree: WorktreeSettings = field(default_factory=WorktreeSettings)
    naming: NamingSettings = field(default_factory=NamingSettings)
    ui: UiSettings = field(default_factory=UiSettings)
    copy_files: Tuple[str, ...] = ()
    setup_commands: Tuple[str, ...] = ()
    hooks: Tuple[HookSpec, ...] = ()
    bindings: Tuple[BindingSpec, ...] = ()
    provenance: Dict[str, ConfigSource] = field(default_factory=dict)
    repo_root: Optional[str] = None
    origin_url: Optional[str] = None
    loaded_files: Tuple[str, ...] = ()

    def source_of(self, option: str) -> ConfigSource:
        """Return the source that supplied ``option`` (dotted name, e.g. ``worktree.basedir``)."""
        return self.provenance.get(option, ConfigSource.DEFAULT)

    def hooks_for(self, event: HookEvent) -> List[HookSpec]:
        return [hook for hook in self.hooks if hook.event == event]

    def basedir_path(self, repo_root: Optional[str] = None) -> Path:
        """Absolute worktree base directory.

        ``~`` is expanded; a relative basedir is resolved against the main
        repository root.
        """
        basedir = Path(os.path.expanduser(self.worktree.basedir))
        if not basedir.is_absolute():
            root = repo_root or self.repo_root or os.getcwd()
            basedir = Path(root) / basedir
        return basedir

    def describe(self) -> List[Tuple[str, str, str]]:
        """(option, value, source) rows for every option with recorded provenance."""
        rows = []
        for option in sorted(self.provenance):
            value = self._value_of(option)
            rows.append((option, value, self.provenance[option].value))
        return rows

    def _value_of(self, option: str) -> str:
        section, _, name = option.partition(".")
        if section == "ui" and name.startswith("colors."):
            return self.ui.colors.get(name.split(".", 1)[1], "")
        target = {"worktree": self.worktree, "naming": self.naming, "ui": self.ui}.get(section)
        if target is not None and name:
            return str(getattr(target, name, ""))
        if option == "hooks":
            return f"{len(self.hooks)} hook(s)"
        if option == "bindings":
            return f"{len(self.bindings)} binding(s)"
        return str(list(getattr(self, option, ())))
