"""Tests for layered configuration resolution"""
from pathlib import Path

import pytest

from git_worktree_manager.config import ConfigSource, HookEvent
from git_worktree_manager.exceptions import ConfigError, RepositoryNotFound
from git_worktree_manager.services.config_resolver import ConfigResolver, parse_bool


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


@pytest.fixture
def home(temp_dir):
    home = temp_dir / "home"
    home.mkdir()
    return home


@pytest.fixture
def resolve(home, repo_path):
    """Resolve config for the test repository with an isolated home and environment."""

    def _resolve(env=None, cwd=None, config_path=None):
        resolver = ConfigResolver(home=str(home), environ=env or {}, config_path=config_path)
        return resolver.resolve(cwd or repo_path)

    return _resolve


class TestParseBool:
    """Test environment boolean literals."""

    @pytest.mark.parametrize("value", ["true", "1", "yes", "YES", "True"])
    def test_true(self, value):
        assert parse_bool(value, "GWM_UI_ICONS") is True

    @pytest.mark.parametrize("value", ["false", "0", "no", "No"])
    def test_false(self, value):
        assert parse_bool(value, "GWM_UI_ICONS") is False

    def test_malformed(self):
        with pytest.raises(ConfigError, match="GWM_UI_ICONS"):
            parse_bool("maybe", "GWM_UI_ICONS")


class TestSources:
    """Test discovery of the global, local and environment sources."""

    def test_defaults(self, resolve, repo_path):
        """Test built-in defaults when nothing is configured."""
        config = resolve()
        assert config.worktree.basedir == "~/worktrees"
        assert config.worktree.auto_mkdir is True
        assert config.naming.template == "{branch}"
        assert config.naming.sanitize_chars == {"/": "-"}
        assert config.ui.theme == "default"
        assert config.copy_files == ()
        assert config.source_of("worktree.basedir") == ConfigSource.DEFAULT
        assert config.repo_root == repo_path
        assert config.loaded_files == ()

    def test_global_home_file(self, resolve, home):
        write(home / ".gwm.toml", '[worktree]\nbasedir = "/srv/wt"\n')
        config = resolve()
        assert config.worktree.basedir == "/srv/wt"
        assert config.source_of("worktree.basedir") == ConfigSource.GLOBAL

    def test_global_xdg_file(self, resolve, temp_dir):
        xdg = temp_dir / "xdg"
        write(xdg / "gwm" / "config.toml", '[ui]\nicons = false\n')
        config = resolve(env={"XDG_CONFIG_HOME": str(xdg)})
        assert config.ui.icons is False
        assert config.source_of("ui.icons") == ConfigSource.GLOBAL

    def test_local_overrides_global_per_option(self, resolve, home, repo_path):
        """Test that each scalar falls through independently."""
        write(home / ".gwm.toml", '[worktree]\nbasedir = "/srv/wt"\n[ui]\nicons = false\n')
        write(Path(repo_path) / ".gwm.toml", '[ui]\nicons = true\n')
        config = resolve()
        assert config.worktree.basedir == "/srv/wt"
        assert config.source_of("worktree.basedir") == ConfigSource.GLOBAL
        assert config.ui.icons is True
        assert config.source_of("ui.icons") == ConfigSource.LOCAL

    def test_local_config_directory_form(self, resolve, repo_path):
        write(Path(repo_path) / ".gwm" / "config.toml", '[naming]\ntemplate = "wt-{branch}"\n')
        assert resolve().naming.template == "wt-{branch}"

    def test_env_overrides_files(self, resolve, repo_path):
        write(Path(repo_path) / ".gwm.toml", '[ui]\nicons = true\ntheme = "default"\n')
        config = resolve(env={"GWM_UI_ICONS": "No", "GWM_UI_THEME": "classic"})
        assert config.ui.icons is False
        assert config.ui.theme == "classic"
        assert config.source_of("ui.icons") == ConfigSource.ENV

    def test_env_malformed_boolean(self, resolve):
        with pytest.raises(ConfigError, match="GWM_WORKTREE_AUTO_MKDIR"):
            resolve(env={"GWM_WORKTREE_AUTO_MKDIR": "sometimes"})

    def test_env_empty_basedir(self, resolve):
        with pytest.raises(ConfigError, match="basedir"):
            resolve(env={"GWM_WORKTREE_BASEDIR": "  "})

    def test_local_found_from_linked_worktree(self, resolve, git_repo, repo_path, temp_dir):
        """Test that the main root's local config applies inside other worktrees."""
        linked = temp_dir / "linked"
        git_repo.git.worktree("add", "-b", "linked", str(linked))
        write(Path(repo_path) / ".gwm.toml", 'copy_files = [".env"]\n')

        config = resolve(cwd=str(linked))
        assert config.copy_files == (".env",)
        assert config.repo_root == repo_path

    def test_local_found_from_subdirectory(self, resolve, repo_path):
        sub = Path(repo_path) / "src" / "pkg"
        sub.mkdir(parents=True)
        write(Path(repo_path) / "src" / ".gwm.toml", 'setup_commands = ["make"]\n')
        assert resolve(cwd=str(sub)).setup_commands == ("make",)

    def test_explicit_config_path(self, resolve, repo_path, temp_dir):
        write(Path(repo_path) / ".gwm.toml", 'copy_files = ["local"]\n')
        explicit = write(temp_dir / "other.toml", 'copy_files = ["explicit"]\n')
        config = resolve(config_path=str(explicit))
        assert config.copy_files == ("explicit",)
        assert config.source_of("copy_files") == ConfigSource.LOCAL

    def test_explicit_config_path_missing(self, resolve, temp_dir):
        with pytest.raises(ConfigError, match="not found"):
            resolve(config_path=str(temp_dir / "missing.toml"))

    def test_not_a_repository(self, home, temp_dir):
        outside = temp_dir / "plain"
        outside.mkdir()
        with pytest.raises(RepositoryNotFound):
            ConfigResolver(home=str(home), environ={}).resolve(str(outside))


class TestValidation:
    """Test rejection of malformed configuration."""

    def test_malformed_toml(self, resolve, home):
        path = write(home / ".gwm.toml", "[worktree\nbasedir = 1\n")
        with pytest.raises(ConfigError) as exc_info:
            resolve()
        assert exc_info.value.path == str(path)

    def test_wrong_type(self, resolve, repo_path):
        write(Path(repo_path) / ".gwm.toml", '[worktree]\nauto_mkdir = "yes"\n')
        with pytest.raises(ConfigError, match="worktree.auto_mkdir must be a boolean"):
            resolve()

    def test_unresolvable_template(self, resolve, repo_path):
        write(Path(repo_path) / ".gwm.toml", '[naming]\ntemplate = "wt-{brnach}"\n')
        with pytest.raises(ConfigError, match="unresolved template variable"):
            resolve()

    def test_template_with_remote_variables(self, resolve, repo_path, worktrees_dir):
        write(Path(repo_path) / ".gwm.toml", '[naming]\ntemplate = "{host}/{owner}/{repository}/{branch}"\n')
        assert resolve().naming.template == "{host}/{owner}/{repository}/{branch}"

    def test_unknown_theme(self, resolve):
        with pytest.raises(ConfigError, match="ui.theme"):
            resolve(env={"GWM_UI_THEME": "neon"})

    def test_colors(self, resolve, home, repo_path):
        """Test colour values and per-key provenance."""
        write(home / ".gwm.toml", '[ui.colors]\nheader = "#ff0000"\nkey = 123\n')
        write(Path(repo_path) / ".gwm.toml", '[ui.colors]\nheader = "blue"\n')
        config = resolve()
        assert config.ui.colors == {"header": "blue", "key": "color(123)"}
        assert config.source_of("ui.colors.header") == ConfigSource.LOCAL
        assert config.source_of("ui.colors.key") == ConfigSource.GLOBAL

    def test_invalid_color(self, resolve, repo_path):
        write(Path(repo_path) / ".gwm.toml", '[ui.colors]\nbranch = "not-a-colour"\n')
        with pytest.raises(ConfigError, match="ui.colors.branch"):
            resolve()

    def test_invalid_hook_event(self, resolve, repo_path):
        write(Path(repo_path) / ".gwm.toml", '[[hooks]]\nevent = "on_create"\ncommand = "true"\n')
        with pytest.raises(ConfigError, match="hook event"):
            resolve()


class TestListReplacement:
    """Test whole-list replacement for list options."""

    def test_global_used_when_local_unset(self, resolve, home):
        write(home / ".gwm.toml", 'copy_files = [".env"]\n')
        config = resolve()
        assert config.copy_files == (".env",)
        assert config.source_of("copy_files") == ConfigSource.GLOBAL

    def test_empty_local_list_suppresses_global(self, resolve, home, repo_path):
        write(home / ".gwm.toml", 'copy_files = [".env"]\n')
        write(Path(repo_path) / ".gwm.toml", 'copy_files = []\n')
        config = resolve()
        assert config.copy_files == ()
        assert config.source_of("copy_files") == ConfigSource.LOCAL

    def test_local_list_is_not_concatenated(self, resolve, home, repo_path):
        write(home / ".gwm.toml", 'setup_commands = ["a", "b"]\n')
        write(Path(repo_path) / ".gwm.toml", 'setup_commands = ["c"]\n')
        assert resolve().setup_commands == ("c",)

    def test_repository_settings_between_local_and_global(self, resolve, home, repo_path):
        write(home / ".gwm.toml", f'''
copy_files = [".env"]
setup_commands = ["global-setup"]

[[repository_settings]]
repository = "/somewhere/else"
copy_files = ["wrong"]

[[repository_settings]]
repository = "{repo_path}"
copy_files = [".env.local"]
''')
        config = resolve()
        assert config.copy_files == (".env.local",)
        assert config.source_of("copy_files") == ConfigSource.REPOSITORY_SETTING
        # The matching entry does not set setup_commands, so the global value applies
        assert config.setup_commands == ("global-setup",)

        write(Path(repo_path) / ".gwm.toml", 'copy_files = ["local"]\n')
        assert resolve().copy_files == ("local",)

    def test_repository_setting_relative_to_file(self, resolve, home, repo_path):
        relative = Path("..") / Path(repo_path).name
        write(Path(repo_path).parent / "conf" / "gwm.toml", f'''
[[repository_settings]]
repository = "{relative}"
setup_commands = ["npm ci"]
''')
        config = resolve(config_path=str(Path(repo_path).parent / "conf" / "gwm.toml"))
        assert config.setup_commands == ("npm ci",)

    def test_hooks_replace_whole_list(self, resolve, home, repo_path):
        write(home / ".gwm.toml", '[[hooks]]\nevent = "post_create"\ncommand = "global"\n')
        write(Path(repo_path) / ".gwm.toml", '[[hooks]]\nevent = "pre_delete"\ncommand = "local"\n')
        config = resolve()
        assert [h.command for h in config.hooks] == ["local"]
        assert config.hooks_for(HookEvent.PRE_DELETE)[0].command == "local"
        assert config.hooks_for(HookEvent.POST_CREATE) == []

    def test_bindings_global_then_local(self, resolve, home, repo_path):
        write(home / ".gwm.toml", '[[bindings]]\nkey = "x"\naction = "Quit"\n')
        write(Path(repo_path) / ".gwm.toml", '[[bindings]]\nkey = "x"\nmode = "normal"\ncommand = "make"\n')
        config = resolve()
        assert [(b.key, b.action, b.command) for b in config.bindings] == [("x", "Quit", None), ("x", None, "make")]

    def test_binding_needs_action_or_command(self, resolve, repo_path):
        write(Path(repo_path) / ".gwm.toml", '[[bindings]]\nkey = "x"\n')
        with pytest.raises(ConfigError, match="exactly one"):
            resolve()


class TestResolvedConfig:
    def test_relative_basedir_resolves_against_repo(self, resolve, repo_path):
        write(Path(repo_path) / ".gwm.toml", '[worktree]\nbasedir = "../wt"\n')
        config = resolve()
        assert config.basedir_path() == Path(repo_path) / ".." / "wt"

    def test_describe_lists_provenance(self, resolve, home):
        write(home / ".gwm.toml", '[worktree]\nbasedir = "/srv/wt"\n')
        rows = {option: (value, source) for option, value, source in resolve().describe()}
        assert rows["worktree.basedir"] == ("/srv/wt", "global")
        assert rows["ui.icons"] == ("True", "default")
