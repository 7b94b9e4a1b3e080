"""Tests for the gwm command-line entry point"""
import logging
import os
from pathlib import Path

import pytest

from git_worktree_manager.cli.args import parse_args
from git_worktree_manager.cli.main import EXIT_CONFIG_ERROR, EXIT_ERROR, EXIT_INTERRUPTED, EXIT_OK, main


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, temp_dir):
    """Point HOME at an empty directory and drop GWM_* overrides."""
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    for name in list(os.environ):
        if name.startswith("GWM_"):
            monkeypatch.delenv(name)

    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield home
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class FakeApp:
    """Stands in for the Textual app; returns a preset selection."""

    result = None
    error = None
    instances = []

    def __init__(self, config, lifecycle, print_path=False):
        self.config = config
        self.lifecycle = lifecycle
        self.print_path = print_path
        FakeApp.instances.append(self)

    def run(self):
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def fake_app(monkeypatch):
    FakeApp.result = None
    FakeApp.error = None
    FakeApp.instances = []
    monkeypatch.setattr("git_worktree_manager.tui.WorktreeManagerApp", FakeApp)
    return FakeApp


class TestArgs:
    def test_defaults(self):
        args = parse_args([])
        assert args.print_path is False
        assert args.config is None
        assert args.workers is None
        assert args.show_config is False

    def test_flags(self):
        args = parse_args(["-p", "--config", "x.toml", "--workers", "3", "--debug"])
        assert args.print_path is True
        assert args.config == "x.toml"
        assert args.workers == 3
        assert args.debug is True

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "gwm" in capsys.readouterr().out


class TestMain:
    """Test exit codes and output of main()."""

    def test_show_config(self, monkeypatch, repo_path, capsys):
        Path(repo_path, ".gwm.toml").write_text('[worktree]\nbasedir = "../wt"\n')
        monkeypatch.chdir(repo_path)
        assert main(["--show-config"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "worktree.basedir" in out
        assert "local" in out
        assert ".gwm.toml" in out

    def test_config_error(self, monkeypatch, repo_path):
        Path(repo_path, ".gwm.toml").write_text("[worktree\n")
        monkeypatch.chdir(repo_path)
        assert main(["--show-config"]) == EXIT_CONFIG_ERROR

    def test_missing_config_file(self, monkeypatch, repo_path):
        monkeypatch.chdir(repo_path)
        assert main(["--show-config", "--config", "nope.toml"]) == EXIT_CONFIG_ERROR

    def test_outside_repository(self, monkeypatch, temp_dir):
        outside = temp_dir / "plain"
        outside.mkdir()
        monkeypatch.chdir(outside)
        assert main(["--show-config"]) == EXIT_ERROR

    def test_print_path(self, monkeypatch, repo_path, fake_app, capsys):
        fake_app.result = "/selected/worktree"
        monkeypatch.chdir(repo_path)
        assert main(["-p", "--workers", "1"]) == EXIT_OK
        assert capsys.readouterr().out == "/selected/worktree\n"
        assert fake_app.instances[0].print_path is True

    def test_no_selection_prints_nothing(self, monkeypatch, repo_path, fake_app, capsys):
        monkeypatch.chdir(repo_path)
        assert main(["-p"]) == EXIT_OK
        assert capsys.readouterr().out == ""

    def test_interrupted(self, monkeypatch, repo_path, fake_app):
        fake_app.error = KeyboardInterrupt()
        monkeypatch.chdir(repo_path)
        assert main([]) == EXIT_INTERRUPTED

    def test_unexpected_error(self, monkeypatch, repo_path, fake_app):
        fake_app.error = RuntimeError("boom")
        monkeypatch.chdir(repo_path)
        assert main([]) == EXIT_ERROR
