"""Hook and setup-command execution."""

import os
import re
import subprocess
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence

from git_worktree_manager.config import HookEvent, HookSpec
from git_worktree_manager.constants import HOOK_VARIABLES
from git_worktree_manager.exceptions import HookFailed, PermissionDenied
from git_worktree_manager.logging_config import get_logger

logger = get_logger(__name__)

_NAMES = "|".join(HOOK_VARIABLES)
_VARIABLE_RE = re.compile(rf"\$\{{({_NAMES})\}}|\$({_NAMES})\b")

SETUP_EVENT = "setup"


@dataclass(frozen=True)
class HookContext:
    """Values exposed to hooks for one worktree."""

    name: str
    path: str
    branch: str
    repo_root: str

    def variables(self) -> Dict[str, str]:
        return {
            "WORKTREE_NAME": self.name,
            "WORKTREE_PATH": self.path,
            "WORKTREE_BRANCH": self.branch,
            "REPOSITORY_ROOT": self.repo_root,
        }


def substitute_variables(command: str, context: HookContext) -> str:
    """Replace ``$WORKTREE_*`` and ``${WORKTREE_*}`` references in ``command``."""
    values = context.variables()
    return _VARIABLE_RE.sub(lambda m: values[m.group(1) or m.group(2)], command)


class HookRunner:
    """Runs configured hooks and setup commands through ``sh -c``."""

    def __init__(self, hooks: Iterable[HookSpec] = (), shell: str = "sh"):
        self.hooks = tuple(hooks)
        self.shell = shell

    def run(self, event: HookEvent, context: HookContext) -> int:
        """Run every hook registered for ``event``, stopping at the first failure.

        Returns:
            Number of hooks executed

        Raises:
            HookFailed: if a hook exits non-zero
        """
        hooks = [hook for hook in self.hooks if hook.event == event]
        for hook in hooks:
            cwd = self._hook_cwd(hook, context)
            self._execute(event.value, hook.command, context, cwd)
        return len(hooks)

    def run_setup_commands(self, commands: Sequence[str], context: HookContext) -> int:
        """Run setup commands sequentially inside the new worktree.

        A failing command aborts the remaining ones.

        Raises:
            HookFailed: with event ``setup`` for the failing command
        """
        for command in commands:
            self._execute(SETUP_EVENT, command, context, context.path)
        return len(commands)

    @staticmethod
    def _hook_cwd(hook: HookSpec, context: HookContext) -> str:
        if hook.cwd:
            cwd = substitute_variables(os.path.expanduser(hook.cwd), context)
            if not os.path.isabs(cwd):
                cwd = os.path.join(context.repo_root, cwd)
            return cwd
        # pre_create and post_delete run before/after the worktree exists
        return context.path if os.path.isdir(context.path) else context.repo_root

    def _execute(self, event: str, command: str, context: HookContext, cwd: str):
        expanded = substitute_variables(command, context)
        env = dict(os.environ)
        env.update(context.variables())

        logger.info(f"Running {event} command in {cwd}: {expanded}")
        try:
            result = subprocess.run(
                [self.shell, "-c", expanded],
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
            )
        except PermissionError as e:
            raise PermissionDenied(cwd, str(e)) from e
        except OSError as e:
            raise HookFailed(event, command, output=str(e)) from e

        if result.stdout:
            logger.debug(f"{event} stdout: {result.stdout.strip()}")
        if result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            logger.warning(f"{event} command failed (exit {result.returncode}): {expanded}")
            raise HookFailed(event, command, returncode=result.returncode, output=_last_line(output))


def _last_line(output: str) -> str:
    lines = [line for line in output.splitlines() if line.strip()]
    return lines[-1] if lines else ""


def run_shell_command(command: str, cwd: str, context: Optional[HookContext] = None) -> int:
    """Run an interactive command (bound via ``command = ...``) attached to the terminal."""
    env = dict(os.environ)
    if context is not None:
        command = substitute_variables(command, context)
        env.update(context.variables())
    logger.info(f"Running bound command in {cwd}: {command}")
    return subprocess.call(["sh", "-c", command], cwd=cwd, env=env)
