"""Command-line argument parsing for git-worktree-manager."""

import argparse
from typing import Optional, Sequence

from git_worktree_manager.__version__ import __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gwm",
        description="Browse, create, delete and prune git worktrees from the terminal",
        epilog="Configuration: ~/.gwm.toml or ~/.config/gwm/config.toml (global), "
        ".gwm.toml or .gwm/config.toml in the repository (local), GWM_* environment variables.",
    )
    parser.add_argument(
        "-p",
        "--print-path",
        action="store_true",
        help="Print the selected worktree path and exit instead of opening a shell (e.g. cd \"$(gwm -p)\")",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Use this config file instead of discovering the repository's local config",
    )
    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Print the effective configuration with the source of each option and exit",
    )
    parser.add_argument(
        "--workers",
        type=int,
        metavar="N",
        help="Number of background workers (default: auto-detect)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")
    parser.add_argument(
        "--debug", action="store_true", help="Show debug information for troubleshooting"
    )
    parser.add_argument("--version", action="version", version=f"gwm {__version__}")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)
