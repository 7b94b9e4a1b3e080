"""Layered configuration loading for git-worktree-manager.

Sources, highest priority first: ``GWM_*`` environment variables, the local
file of the repository (``.gwm.toml`` or ``.gwm/config.toml``), the global file
(``~/.gwm.toml`` or ``$XDG_CONFIG_HOME/gwm/config.toml``), built-in defaults.

Scalars are merged per option. List options (``copy_files``,
``setup_commands``, ``hooks``) are replaced as a whole by the highest-priority
source that sets them, so an explicit empty list suppresses lower sources.
"""

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from git_worktree_manager.config import (
    BindingSpec,
    ConfigSource,
    HookEvent,
    HookSpec,
    NamingSettings,
    ResolvedConfig,
    UiSettings,
    WorktreeSettings,
)
from git_worktree_manager.constants import (
    COLOR_KEYS,
    DEFAULT_BASEDIR,
    DEFAULT_SANITIZE_CHARS,
    DEFAULT_TEMPLATE,
    DEFAULT_THEME,
    ENV_OPTIONS,
    FALSE_LITERALS,
    GLOBAL_CONFIG_FILE,
    LOCAL_CONFIG_DIR,
    LOCAL_CONFIG_FILE,
    TRUE_LITERALS,
    XDG_CONFIG_FILE,
    XDG_CONFIG_SUBDIR,
)
from git_worktree_manager.exceptions import ConfigError, TemplateError
from git_worktree_manager.logging_config import get_logger
from git_worktree_manager.services.git.repository import RepositoryLocation, find_repository
from git_worktree_manager.services.template_engine import TemplateEngine, parse_remote_url
from git_worktree_manager.theme import normalize_color

logger = get_logger(__name__)

# Scalar options: dotted name -> (expected type, default)
SCALAR_OPTIONS: Dict[str, Tuple[type, Any]] = {
    "worktree.basedir": (str, DEFAULT_BASEDIR),
    "worktree.auto_mkdir": (bool, True),
    "naming.template": (str, DEFAULT_TEMPLATE),
    "naming.sanitize_chars": (dict, DEFAULT_SANITIZE_CHARS),
    "ui.icons": (bool, True),
    "ui.tilde_home": (bool, True),
    "ui.theme": (str, DEFAULT_THEME),
}
LIST_OPTIONS = ("copy_files", "setup_commands")
KNOWN_TOP_LEVEL = {
    "worktree", "naming", "ui", "copy_files", "setup_commands",
    "repository_settings", "bindings", "hooks",
}


def parse_bool(value: str, name: str) -> bool:
    """Parse an environment boolean (true/1/yes, false/0/no; case-insensitive)."""
    lowered = value.strip().lower()
    if lowered in TRUE_LITERALS:
        return True
    if lowered in FALSE_LITERALS:
        return False
    raise ConfigError(
        f"invalid boolean '{value}' for {name} "
        f"(expected one of {', '.join(TRUE_LITERALS + FALSE_LITERALS)})"
    )


@dataclass
class ConfigLayer:
    """Raw values of one config file."""

    source: ConfigSource
    path: Path
    data: Dict[str, Any]

    def lookup(self, option: str) -> Tuple[bool, Any]:
        """Return (found, value) for a dotted option name."""
        node: Any = self.data
        for part in option.split("."):
            if not isinstance(node, dict) or part not in node:
                return False, None
            node = node[part]
        return True, node


class ConfigResolver:
    """Loads, merges and validates configuration."""

    def __init__(
        self,
        home: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        config_path: Optional[str] = None,
    ):
        """Initialize the resolver.

        Args:
            home: Home directory for the global file (defaults to ``Path.home()``)
            environ: Environment mapping (defaults to ``os.environ``)
            config_path: Explicit local config file, replacing local discovery
        """
        self.home = Path(home) if home else Path.home()
        self.environ = os.environ if environ is None else environ
        self.config_path = config_path

    def resolve(self, cwd: str) -> ResolvedConfig:
        """Resolve the effective configuration for the repository containing ``cwd``.

        Raises:
            RepositoryNotFound: if ``cwd`` is not inside a repository
            ConfigError: on malformed TOML, wrong value types, bad booleans or an
                unusable naming template
        """
        location = find_repository(cwd)

        global_layer = self._load_global()
        local_layer = self._load_local(Path(cwd), location)
        env_values = self._load_env()
        file_layers = [layer for layer in (local_layer, global_layer) if layer is not None]

        provenance: Dict[str, ConfigSource] = {}
        values: Dict[str, Any] = {}
        for option, (expected, default) in SCALAR_OPTIONS.items():
            values[option], provenance[option] = self._resolve_scalar(
                option, expected, default, env_values, file_layers
            )

        colors: Dict[str, str] = {}
        for key in COLOR_KEYS:
            option = f"ui.colors.{key}"
            for layer in file_layers:
                found, raw = layer.lookup(option)
                if found:
                    try:
                        colors[key] = normalize_color(raw)
                    except ValueError as e:
                        raise ConfigError(f"invalid colour for {option}: {e}", path=str(layer.path)) from e
                    provenance[option] = layer.source
                    break
        for layer in file_layers:
            found, table = layer.lookup("ui.colors")
            if found and not isinstance(table, dict):
                raise ConfigError("ui.colors must be a table", path=str(layer.path))

        repository_entries = self._matching_repository_settings(file_layers, location.main_root)
        lists: Dict[str, Tuple[str, ...]] = {}
        for option in LIST_OPTIONS:
            lists[option], provenance[option] = self._resolve_list(
                option, local_layer, global_layer, repository_entries
            )

        hooks, provenance["hooks"] = self._resolve_hooks(local_layer, global_layer)
        bindings = self._collect_bindings(global_layer, local_layer)
        if bindings:
            provenance["bindings"] = ConfigSource.LOCAL if any(
                local_layer and b.origin == str(local_layer.path) for b in bindings
            ) else ConfigSource.GLOBAL

        worktree = WorktreeSettings(
            basedir=values["worktree.basedir"],
            auto_mkdir=values["worktree.auto_mkdir"],
        )
        naming = NamingSettings(
            template=values["naming.template"],
            sanitize_chars=dict(values["naming.sanitize_chars"]),
        )
        ui = UiSettings(
            icons=values["ui.icons"],
            tilde_home=values["ui.tilde_home"],
            theme=values["ui.theme"],
            colors=colors,
        )
        self._validate_template(naming, location, provenance, file_layers)

        config = ResolvedConfig(
            worktree=worktree,
            naming=naming,
            ui=ui,
            copy_files=lists["copy_files"],
            setup_commands=lists["setup_commands"],
            hooks=hooks,
            bindings=bindings,
            provenance=provenance,
            repo_root=location.main_root,
            origin_url=location.origin_url,
            loaded_files=tuple(str(layer.path) for layer in (global_layer, local_layer) if layer),
        )

        for option, source in sorted(provenance.items()):
            logger.debug(f"  {option} <- {source.value}")
        return config

    # Loading

    def global_candidates(self) -> List[Path]:
        xdg_home = self.environ.get("XDG_CONFIG_HOME") or str(self.home / ".config")
        return [
            self.home / GLOBAL_CONFIG_FILE,
            Path(xdg_home) / XDG_CONFIG_SUBDIR / XDG_CONFIG_FILE,
        ]

    def _load_global(self) -> Optional[ConfigLayer]:
        for candidate in self.global_candidates():
            if candidate.is_file():
                logger.info(f"Loading global config from {candidate}")
                return ConfigLayer(ConfigSource.GLOBAL, candidate, self._read_toml(candidate))
        logger.debug("No global config file found")
        return None

    def _load_local(self, cwd: Path, location: RepositoryLocation) -> Optional[ConfigLayer]:
        if self.config_path:
            path = Path(os.path.expanduser(self.config_path))
            if not path.is_file():
                raise ConfigError("config file not found", path=str(path))
            logger.info(f"Loading config from {path} (--config)")
            return ConfigLayer(ConfigSource.LOCAL, path.resolve(), self._read_toml(path))

        path = self.find_local_config(cwd, location)
        if path is None:
            logger.debug("No local config file found")
            return None
        logger.info(f"Loading local config from {path}")
        return ConfigLayer(ConfigSource.LOCAL, path, self._read_toml(path))

    @staticmethod
    def find_local_config(cwd: Path, location: RepositoryLocation) -> Optional[Path]:
        """Find the local config file.

        Searches ``cwd`` and its parents up to the current worktree's top level,
        then the main repository root.
        """
        worktree_root = Path(location.worktree_root)
        directories: List[Path] = []
        current = Path(os.path.realpath(cwd))
        if current == worktree_root or worktree_root in current.parents:
            while True:
                directories.append(current)
                if current == worktree_root:
                    break
                current = current.parent
        else:
            directories.append(worktree_root)
        directories.append(Path(location.main_root))

        for directory in directories:
            for candidate in (directory / LOCAL_CONFIG_FILE, directory / LOCAL_CONFIG_DIR / "config.toml"):
                if candidate.is_file():
                    return candidate
        return None

    def _load_env(self) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for var, option in ENV_OPTIONS.items():
            raw = self.environ.get(var)
            if raw is None:
                continue
            expected = SCALAR_OPTIONS[option][0]
            values[option] = parse_bool(raw, var) if expected is bool else raw
            logger.debug(f"Environment override {var} -> {option}")
        return values

    @staticmethod
    def _read_toml(path: Path) -> Dict[str, Any]:
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"invalid TOML: {e}", path=str(path)) from e
        except OSError as e:
            raise ConfigError(f"cannot read config file: {e}", path=str(path)) from e

        for key in sorted(set(data) - KNOWN_TOP_LEVEL):
            logger.warning(f"{path}: ignoring unknown option '{key}'")
        return data

    # Merging

    def _resolve_scalar(
        self,
        option: str,
        expected: type,
        default: Any,
        env_values: Dict[str, Any],
        file_layers: List[ConfigLayer],
    ) -> Tuple[Any, ConfigSource]:
        if option in env_values:
            return env_values[option], ConfigSource.ENV
        for layer in file_layers:
            found, value = layer.lookup(option)
            if found:
                self._check_type(option, value, expected, layer.path)
                return value, layer.source
        return default, ConfigSource.DEFAULT

    @staticmethod
    def _check_type(option: str, value: Any, expected: type, path: Path):
        # bool is a subclass of int, so compare exactly for booleans
        if expected is bool:
            ok = isinstance(value, bool)
        elif expected is dict:
            ok = isinstance(value, dict) and all(
                isinstance(k, str) and isinstance(v, str) for k, v in value.items()
            )
        else:
            ok = isinstance(value, expected)
        if not ok:
            kind = {bool: "a boolean", str: "a string", dict: "a table of strings"}[expected]
            raise ConfigError(f"{option} must be {kind}, got {value!r}", path=str(path))

    @staticmethod
    def _string_list(option: str, value: Any, path: Path) -> Tuple[str, ...]:
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ConfigError(f"{option} must be a list of strings", path=str(path))
        return tuple(value)

    def _matching_repository_settings(
        self, file_layers: List[ConfigLayer], repo_root: str
    ) -> List[Tuple[ConfigLayer, Dict[str, Any]]]:
        """[[repository_settings]] entries for this repository, local entries first."""
        canonical_root = Path(os.path.realpath(repo_root))
        matches = []
        for layer in file_layers:
            entries = layer.data.get("repository_settings", [])
            if not isinstance(entries, list):
                raise ConfigError("repository_settings must be an array of tables", path=str(layer.path))
            for entry in entries:
                if not isinstance(entry, dict) or not isinstance(entry.get("repository"), str):
                    raise ConfigError(
                        "each [[repository_settings]] entry needs a 'repository' string", path=str(layer.path)
                    )
                repository = Path(os.path.expanduser(entry["repository"]))
                if not repository.is_absolute():
                    repository = layer.path.parent / repository
                if Path(os.path.realpath(repository)) == canonical_root:
                    logger.debug(f"Repository settings for {canonical_root} found in {layer.path}")
                    matches.append((layer, entry))
        return matches

    def _resolve_list(
        self,
        option: str,
        local_layer: Optional[ConfigLayer],
        global_layer: Optional[ConfigLayer],
        repository_entries: List[Tuple[ConfigLayer, Dict[str, Any]]],
    ) -> Tuple[Tuple[str, ...], ConfigSource]:
        if local_layer is not None and option in local_layer.data:
            return self._string_list(option, local_layer.data[option], local_layer.path), ConfigSource.LOCAL
        for layer, entry in repository_entries:
            if option in entry:
                return self._string_list(option, entry[option], layer.path), ConfigSource.REPOSITORY_SETTING
        if global_layer is not None and option in global_layer.data:
            return self._string_list(option, global_layer.data[option], global_layer.path), ConfigSource.GLOBAL
        return (), ConfigSource.DEFAULT

    def _resolve_hooks(
        self, local_layer: Optional[ConfigLayer], global_layer: Optional[ConfigLayer]
    ) -> Tuple[Tuple[HookSpec, ...], ConfigSource]:
        for layer in (local_layer, global_layer):
            if layer is None or "hooks" not in layer.data:
                continue
            entries = layer.data["hooks"]
            if not isinstance(entries, list):
                raise ConfigError("hooks must be an array of tables", path=str(layer.path))
            hooks = []
            for entry in entries:
                if not isinstance(entry, dict) or not isinstance(entry.get("command"), str):
                    raise ConfigError("each [[hooks]] entry needs a 'command' string", path=str(layer.path))
                try:
                    event = HookEvent(entry.get("event"))
                except ValueError:
                    allowed = [e.value for e in HookEvent]
                    raise ConfigError(
                        f"hook event must be one of {allowed}, got {entry.get('event')!r}", path=str(layer.path)
                    ) from None
                cwd = entry.get("cwd")
                if cwd is not None and not isinstance(cwd, str):
                    raise ConfigError("hook cwd must be a string", path=str(layer.path))
                hooks.append(HookSpec(event=event, command=entry["command"], cwd=cwd))
            return tuple(hooks), layer.source
        return (), ConfigSource.DEFAULT

    @staticmethod
    def _collect_bindings(
        global_layer: Optional[ConfigLayer], local_layer: Optional[ConfigLayer]
    ) -> Tuple[BindingSpec, ...]:
        """Global bindings followed by local ones; later entries win in the dispatcher."""
        bindings = []
        for layer in (global_layer, local_layer):
            if layer is None:
                continue
            entries = layer.data.get("bindings", [])
            if not isinstance(entries, list):
                raise ConfigError("bindings must be an array of tables", path=str(layer.path))
            for entry in entries:
                if not isinstance(entry, dict) or not isinstance(entry.get("key"), str):
                    raise ConfigError("each [[bindings]] entry needs a 'key' string", path=str(layer.path))
                action = entry.get("action")
                command = entry.get("command")
                if (action is None) == (command is None):
                    raise ConfigError(
                        f"binding '{entry['key']}' needs exactly one of 'action' or 'command'", path=str(layer.path)
                    )
                for name in ("action", "command", "mode", "mods"):
                    if entry.get(name) is not None and not isinstance(entry[name], str):
                        raise ConfigError(f"binding {name} must be a string", path=str(layer.path))
                bindings.append(BindingSpec(
                    key=entry["key"],
                    action=action,
                    command=command,
                    mode=entry.get("mode"),
                    mods=entry.get("mods"),
                    origin=str(layer.path),
                ))
        return tuple(bindings)

    @staticmethod
    def _validate_template(
        naming: NamingSettings,
        location: RepositoryLocation,
        provenance: Dict[str, ConfigSource],
        file_layers: List[ConfigLayer],
    ):
        """Render the template once for the current repository."""
        engine = TemplateEngine(naming.sanitize_chars)
        try:
            engine.render(naming.template, "gwm-check", parse_remote_url(location.origin_url))
        except TemplateError as e:
            source = provenance.get("naming.template")
            path = next((str(layer.path) for layer in file_layers if layer.source == source), None)
            raise ConfigError(f"naming.template: {e}", path=path) from e
