"""Interactive TUI for git-worktree-manager using Textual."""

import asyncio
import os
import subprocess
from dataclasses import replace
from typing import Iterable, List, Optional

from rich.console import Group
from rich.table import Table
from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.widgets import Static

from .config import ResolvedConfig
from .constants import (
    HELP_TEXT,
    ICON_BRANCH,
    ICON_MAIN,
    ICON_WORKTREE,
    SYMBOL_CLEAN,
    SYMBOL_DIRTY,
    SYMBOL_MAIN,
    TICK_SECONDS,
)
from .core.dispatcher import ActionDispatcher
from .core.lifecycle import WorktreeLifecycleManager
from .core.notifications import Severity
from .core.state import (
    AppStateMachine,
    ConfirmKind,
    ConfirmMode,
    CreateMode,
    DetailsLoaded,
    Effect,
    LoadDetails,
    OpenWorktree,
    OverlayKind,
    OverlayMode,
    Quit,
    RequestRedraw,
    RequestRefresh,
    RunCommand,
    SearchMode,
    StartBackgroundTask,
    TaskRejected,
    TaskStarted,
    WorktreesLoaded,
    AppState,
)
from .exceptions import GwmError
from .formatters import (
    format_branch,
    format_delete_confirmation,
    format_path,
    format_prune_confirmation,
)
from .logging_config import get_logger
from .models.worktree import Worktree, WorktreeDetails
from .services.hook_service import HookContext, run_shell_command
from .theme import build_theme
from .ui.widgets import NonExpandingHeader, WorktreeList

logger = get_logger(__name__)

SEVERITY_STYLES = {
    Severity.INFO: "bold",
    Severity.SUCCESS: "bold green",
    Severity.WARNING: "bold yellow",
    Severity.ERROR: "bold red",
}


class WorktreeManagerApp(App):
    """Interactive worktree browser.

    The app is the main loop: key chords go through the dispatcher into the
    state machine, a fixed-interval tick drains task completions, and effects
    returned by the state machine are executed here.
    """

    TITLE = "Git Worktree Manager"

    CSS = """
    Screen {
        background: $surface;
    }

    WorktreeList {
        height: 1fr;
        padding: 0 1;
    }

    #panel {
        height: auto;
        max-height: 50%;
        background: $panel;
        padding: 0 1;
    }

    #status-bar {
        dock: bottom;
        height: 1;
        background: $panel;
        padding: 0 1;
    }
    """

    def __init__(
        self,
        config: ResolvedConfig,
        lifecycle: WorktreeLifecycleManager,
        dispatcher: Optional[ActionDispatcher] = None,
        print_path: bool = False,
    ):
        super().__init__()
        self.config = config
        self.lifecycle = lifecycle
        self.dispatcher = dispatcher or ActionDispatcher(config.bindings)
        self.machine = AppStateMachine(AppState(tilde_home=config.ui.tilde_home))
        self.print_path = print_path
        self.theme_colors = build_theme(config.ui.theme, config.ui.colors)
        self.sub_title = format_path(lifecycle.repo_root, config.ui.tilde_home)

    def compose(self) -> ComposeResult:
        yield NonExpandingHeader(show_clock=True, icon="")
        yield WorktreeList(id="worktree-list")
        yield Static(id="panel")
        yield Static(id="status-bar")

    def on_mount(self) -> None:
        self.query_one(WorktreeList).focus()
        self.set_interval(TICK_SECONDS, self._on_tick)
        self._redraw()
        self.refresh_worktrees()  # @work decorator handles Worker creation

    # Main loop

    def on_worktree_list_chord_pressed(self, message: WorktreeList.ChordPressed) -> None:
        action = self.dispatcher.dispatch(self.machine.state.mode_name, message.chord)
        logger.debug(f"{message.chord} in {self.machine.state.mode_name.value} -> {action}")
        if action is None:
            return
        self._run_effects(self.machine.dispatch(action))

    def _on_tick(self) -> None:
        self._run_effects(self.machine.tick(self.lifecycle.drain()))

    def _run_effects(self, effects: Iterable[Effect]) -> None:
        redraw = False
        for effect in effects:
            if isinstance(effect, RequestRedraw):
                redraw = True
            elif isinstance(effect, StartBackgroundTask):
                redraw = True
                self._start_task(effect)
            elif isinstance(effect, RequestRefresh):
                self.refresh_worktrees()
            elif isinstance(effect, LoadDetails):
                self.load_details(effect.path)
            elif isinstance(effect, OpenWorktree):
                self._open_worktree(effect.path)
            elif isinstance(effect, RunCommand):
                self._run_command(effect)
            elif isinstance(effect, Quit):
                self._quit()
                return
        if redraw:
            self._redraw()

    def _start_task(self, effect: StartBackgroundTask) -> None:
        request = effect.request
        try:
            task = self.lifecycle.submit(request)
        except GwmError as e:
            logger.info(f"Request {request.request_id} refused: {e}")
            followups = self.machine.dispatch(TaskRejected(request.request_id, request.kind, str(e)))
        else:
            followups = self.machine.dispatch(TaskStarted.from_task(task))
        self._run_effects(followups)

    @work(exclusive=True, thread=False)
    async def refresh_worktrees(self) -> None:
        """Re-list worktrees and branches off the main thread."""
        try:
            # Use asyncio.to_thread since git queries are sync but we're in async worker
            worktrees = await asyncio.to_thread(self.lifecycle.list)
            branches = await asyncio.to_thread(self.lifecycle.list_branches, worktrees)
        except Exception as e:
            logger.error(f"Error refreshing worktrees: {e}", exc_info=True)
            self.machine.notify(f"Error refreshing worktrees: {e}", Severity.ERROR)
            self._redraw()
            return
        self._run_effects(self.machine.dispatch(WorktreesLoaded(tuple(worktrees), tuple(branches))))

    @work(exclusive=True, group="details", thread=False)
    async def load_details(self, path: str) -> None:
        """Read changed files and recent commits for the detail overlay."""
        try:
            details = await asyncio.to_thread(self.lifecycle.details, path)
        except Exception as e:
            logger.error(f"Error loading details of {path}: {e}", exc_info=True)
            self.machine.notify(f"Error loading details: {e}", Severity.ERROR)
            self._redraw()
            return
        self._run_effects(self.machine.dispatch(DetailsLoaded(details)))

    def _open_worktree(self, path: str) -> None:
        if self.print_path:
            self._quit(result=path)
            return

        shell = os.environ.get("SHELL", "/bin/sh")
        logger.info(f"Opening {shell} in {path}")
        with self.suspend():
            print(f"Entering {format_path(path, self.config.ui.tilde_home)} (exit the shell to return)")
            subprocess.call([shell], cwd=path)
        self.refresh_worktrees()

    def _run_command(self, effect: RunCommand) -> None:
        worktree = self.machine.state.selected_worktree
        cwd = effect.path or self.lifecycle.repo_root
        context = HookContext(
            name=worktree.name if worktree else "",
            path=cwd,
            branch=(worktree.branch or "") if worktree else "",
            repo_root=self.lifecycle.repo_root,
        )
        with self.suspend():
            returncode = run_shell_command(effect.command, cwd, context)
        if returncode != 0:
            self.machine.notify(f"'{effect.command}' exited with {returncode}", Severity.WARNING)
        self.refresh_worktrees()

    def _quit(self, result: Optional[str] = None) -> None:
        # Running git processes are not interrupted; their results are ignored
        self.workers.cancel_all()
        self.lifecycle.shutdown()
        self.exit(result)

    async def action_quit(self) -> None:
        """Quit through the state machine so late completions are ignored."""
        self.machine.state = replace(self.machine.state, quitting=True)
        self._quit()

    # Rendering

    def _redraw(self) -> None:
        state = self.machine.state
        self.query_one(WorktreeList).update(self._render_table(state))
        panel = self.query_one("#panel", Static)
        panel_content = self._render_panel(state)
        panel.display = panel_content is not None
        panel.update(panel_content or "")
        self.query_one("#status-bar", Static).update(self._render_status(state))

    def _render_table(self, state: AppState):
        if not state.loaded:
            return Text("Loading worktrees...", style="dim")
        visible = state.visible_worktrees
        if not visible:
            message = "No worktrees match the filter" if state.filter_text else "No worktrees"
            return Text(message, style="dim")

        colors = self.theme_colors
        table = Table(box=None, expand=True, show_edge=False, pad_edge=False)
        table.add_column("", width=2, no_wrap=True)
        table.add_column("Branch", style=colors.style("branch"), header_style=colors.style("header", bold=True),
                         no_wrap=True)
        table.add_column("Path", header_style=colors.style("header", bold=True), no_wrap=True)
        table.add_column("HEAD", header_style=colors.style("header", bold=True), no_wrap=True)
        table.add_column("", width=1, no_wrap=True)

        busy = set(state.busy_paths)
        spinner = state.notifications.spinner_frame()
        for index, worktree in enumerate(visible):
            marker = spinner if worktree.path in busy else (SYMBOL_MAIN if worktree.is_main else " ")
            branch = Text(self._branch_label(worktree))
            if worktree.is_main:
                branch.stylize(colors.style("main_worktree", bold=True))
            head = Text(worktree.short_head, style="dim")
            if worktree.summary:
                head.append(f" {worktree.summary}")
            table.add_row(
                Text(marker, style=colors.style("key")),
                branch,
                Text(format_path(worktree.path, self.config.ui.tilde_home), style=colors.style("description")),
                head,
                Text(SYMBOL_DIRTY if worktree.is_dirty else SYMBOL_CLEAN, style="bold yellow"),
                style=colors.selected_style() if index == state.selected else None,
            )
        return table

    def _branch_label(self, worktree: Worktree) -> str:
        label = format_branch(worktree)
        if not self.config.ui.icons:
            return label
        icon = ICON_MAIN if worktree.is_main else (ICON_BRANCH if worktree.branch else ICON_WORKTREE)
        return f"{icon} {label}"

    def _render_panel(self, state: AppState):
        mode = state.mode
        colors = self.theme_colors
        tilde = self.config.ui.tilde_home

        if isinstance(mode, CreateMode):
            return self._render_create(state, mode)

        if isinstance(mode, ConfirmMode):
            if mode.kind == ConfirmKind.DELETE:
                return Text(format_delete_confirmation(mode.target, tilde), style="bold")
            return Text(format_prune_confirmation(list(mode.candidates), tilde), style="bold")

        if isinstance(mode, OverlayMode):
            if mode.kind == OverlayKind.HELP:
                return Text(HELP_TEXT.strip("\n"), style=colors.style("description"))
            return self._render_detail(mode.target, mode.details)

        if isinstance(mode, SearchMode) or state.filter_text:
            line = Text("/", style=colors.style("key", bold=True))
            line.append(state.filter_text)
            if isinstance(mode, SearchMode):
                line.append("█", style="blink")
            return line
        return None

    def _render_create(self, state: AppState, mode: CreateMode):
        colors = self.theme_colors
        draft = mode.draft
        prompt = Text("New worktree: ", style=colors.style("header", bold=True))
        prompt.append(draft.name)
        if draft.is_pending:
            prompt.append(f"  {state.notifications.spinner_frame()} creating...", style=colors.style("key"))
        else:
            prompt.append("█", style="blink")

        lines: List[Text] = [prompt]
        if draft.error:
            lines.append(Text(draft.error, style="bold red"))
        for index, choice in enumerate(state.create_choices(draft.name)[:10]):
            style = colors.style("remote") if choice.is_remote else colors.style("branch")
            line = Text(f"{'>' if index == draft.choice_index else ' '} {choice.label}", style=style)
            if index == draft.choice_index:
                line.stylize(colors.selected_style())
            lines.append(line)
        return Group(*lines)

    def _render_detail(self, worktree: Optional[Worktree], details: Optional[WorktreeDetails] = None):
        if worktree is None:
            return None
        rows = [
            ("Path", worktree.path),
            ("Branch", format_branch(worktree)),
            ("HEAD", f"{worktree.head} {worktree.summary}".strip()),
            ("Status", "dirty" if worktree.is_dirty else "clean"),
        ]
        if worktree.is_main:
            rows.append(("", "main worktree"))
        if worktree.is_locked:
            rows.append(("", "locked"))
        if worktree.is_orphaned:
            rows.append(("", "directory missing"))
        if details is None:
            rows.append(("Changes", "loading..."))
        else:
            rows.append(("Changes", str(details.changes)))
            for index, commit in enumerate(details.commits):
                merge = " (merge)" if commit.is_merge else ""
                rows.append(("Commits" if index == 0 else "", f"{commit.short_sha} {commit.subject[:50]}{merge}"))
        table = Table(box=None, show_header=False)
        table.add_column(style=self.theme_colors.style("key", bold=True))
        table.add_column()
        for label, value in rows:
            table.add_row(label, value)
        return table

    def _render_status(self, state: AppState) -> Text:
        latest = state.notifications.latest
        if latest is not None:
            return Text(latest.message, style=SEVERITY_STYLES[latest.severity])
        visible = len(state.visible_worktrees)
        text = Text(f"{visible} worktree(s)", style=self.theme_colors.style("description"))
        if state.running:
            text.append(f"  {state.notifications.spinner_frame()} {len(state.running)} task(s) running")
        text.append("  ? help  q quit", style="dim")
        return text
