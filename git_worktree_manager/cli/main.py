"""Entry point for the gwm command."""

import os
import sys
from typing import Optional, Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from git_worktree_manager.cli.args import parse_args
from git_worktree_manager.config import ResolvedConfig
from git_worktree_manager.exceptions import ConfigError, GwmError, RepositoryNotFound
from git_worktree_manager.logging_config import get_logger, log_file_path, setup_logging
from git_worktree_manager.services.config_resolver import ConfigResolver

console = Console(stderr=True)
logger = get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def print_config(config: ResolvedConfig) -> None:
    """Print effective options and where each one came from."""
    out = Console()
    table = Table(title="Effective configuration")
    table.add_column("Option", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_column("Source", style="magenta")
    for option, value, source in config.describe():
        table.add_row(option, Text(value), source)
    out.print(table)
    for path in config.loaded_files:
        out.print(f"[dim]loaded {path}[/dim]")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the application."""
    parsed_args = parse_args(argv)
    interactive = not parsed_args.show_config
    setup_logging(verbose=parsed_args.verbose, debug=parsed_args.debug, tui_mode=interactive)

    try:
        resolver = ConfigResolver(config_path=parsed_args.config)
        config = resolver.resolve(os.getcwd())
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        return EXIT_CONFIG_ERROR
    except RepositoryNotFound as e:
        console.print(f"[red]Error: {e}[/red]")
        return EXIT_ERROR
    except GwmError as e:
        console.print(f"[red]Error: {e}[/red]")
        return EXIT_ERROR

    if parsed_args.show_config:
        print_config(config)
        return EXIT_OK

    # Imported late so --show-config does not pay for Textual
    from git_worktree_manager.core.lifecycle import WorktreeLifecycleManager
    from git_worktree_manager.tui import WorktreeManagerApp

    lifecycle = WorktreeLifecycleManager(config, max_workers=parsed_args.workers)
    try:
        app = WorktreeManagerApp(config, lifecycle, print_path=parsed_args.print_path)
        selected = app.run()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        console.print(f"[red]Error: {e}[/red]")
        console.print(f"[dim]See {log_file_path()} for details[/dim]")
        return EXIT_ERROR
    finally:
        lifecycle.shutdown()

    if parsed_args.print_path and selected:
        # stdout carries only the path; the TUI draws on stderr
        print(selected)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
