"""sprout - minimal git worktree manager.

Usage:
    sprout create <name> [--shell]    Create a worktree and branch from the current repo
    sprout cd <name> [--shell]        Print (or open a shell in) a worktree's path
    sprout base [--shell]             Print the source repo of the current worktree
    sprout list | ls                  Show worktrees, most recently committed first
    sprout delete <name>              Remove a worktree and forget it
    sprout prune                      Forget worktrees whose directories are gone
    sprout config get <key>           Print a config value
    sprout config set <key> <value>   Update a config value
"""

import argparse
import logging
import os
import subprocess
import sys
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.measure import Measurement
from rich.table import Table

from .config import SproutPaths, get_config_value, set_config_value
from .errors import SproutError
from .manager import WorktreeManager

console = Console()
logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
UNBOUNDED_WIDTH = 100_000


def get_version() -> str:
    """Return the installed sprout version."""
    try:
        return version("sprout")
    except PackageNotFoundError:
        return "unknown"


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """Configure logging on stderr so stdout stays usable from scripts."""
    if debug:
        level = logging.DEBUG
        fmt = "%(asctime)s %(name)s %(levelname)s: %(message)s"
    elif verbose:
        level = logging.INFO
        fmt = "%(levelname)s: %(message)s"
    else:
        level = logging.WARNING
        fmt = "%(levelname)s: %(message)s"
    logging.basicConfig(level=level, format=fmt, stream=sys.stderr, force=True)


def format_timestamp(timestamp: int) -> str:
    """Format an epoch timestamp in local time, '-' when unknown."""
    if timestamp <= 0:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime(TIMESTAMP_FORMAT)


def launch_shell(path: Path) -> int:
    """Run an interactive shell in ``path`` and return its exit status."""
    shell = os.environ.get("SHELL") or "/bin/sh"
    logger.debug(f"Launching {shell} in {path}")
    return subprocess.run([shell, "-i"], cwd=path, check=False).returncode


def print_worktrees(manager: WorktreeManager) -> None:
    """Print the worktree table, newest commit first.

    Cells never wrap. When stdout is not a terminal the table is printed at
    its natural width, so every row stays on one physical line.
    """
    table = Table(box=box.MARKDOWN)
    table.add_column("Name", no_wrap=True)
    table.add_column("Branch", no_wrap=True)
    table.add_column("Path", no_wrap=True, overflow="ignore")
    table.add_column("Repo", no_wrap=True, overflow="ignore")
    table.add_column("Last Commit", no_wrap=True)

    for entry, timestamp, exists in manager.list_entries():
        table.add_row(
            entry.name,
            entry.branch,
            str(entry.path),
            str(entry.source_repo),
            format_timestamp(timestamp) if exists else "missing",
        )

    if console.is_terminal:
        console.print(table)
        return
    natural = Measurement.get(console, console.options.update_width(UNBOUNDED_WIDTH), table)
    Console(file=console.file, width=max(console.width, natural.maximum)).print(table)


def cmd_create(args: argparse.Namespace, paths: SproutPaths) -> int:
    manager = WorktreeManager(paths)
    entry = manager.create(args.name, Path.cwd())
    if args.shell:
        return launch_shell(entry.path)
    return 0


def cmd_cd(args: argparse.Namespace, paths: SproutPaths) -> int:
    manager = WorktreeManager(paths)
    path = manager.get_path(args.name)
    if args.shell:
        return launch_shell(path)
    print(path)
    return 0


def cmd_base(args: argparse.Namespace, paths: SproutPaths) -> int:
    manager = WorktreeManager(paths)
    path = manager.base(Path.cwd())
    if args.shell:
        return launch_shell(path)
    print(path)
    return 0


def cmd_list(args: argparse.Namespace, paths: SproutPaths) -> int:
    print_worktrees(WorktreeManager(paths))
    return 0


def cmd_delete(args: argparse.Namespace, paths: SproutPaths) -> int:
    manager = WorktreeManager(paths)
    manager.delete(args.name, force=args.force, delete_branch=args.delete_branch)
    return 0


def cmd_prune(args: argparse.Namespace, paths: SproutPaths) -> int:
    manager = WorktreeManager(paths)
    for entry in manager.prune():
        print(entry.name)
    return 0


def cmd_config(args: argparse.Namespace, paths: SproutPaths) -> int:
    if args.config_command == "get":
        print(get_config_value(args.key, paths.config_path))
    else:
        set_config_value(args.key, args.value, paths.config_path)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(prog="sprout", description="Minimal git worktree manager")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show progress messages")
    parser.add_argument("--debug", action="store_true", help="Show git commands and output")

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    create_cmd = subparsers.add_parser("create", help="Create a new worktree")
    create_cmd.add_argument("name", help="Worktree name")
    create_cmd.add_argument("--shell", action="store_true", help="Open a shell in it")
    create_cmd.set_defaults(handler=cmd_create)

    cd_parser = subparsers.add_parser("cd", help="Print a worktree's path")
    cd_parser.add_argument("name", help="Worktree name")
    cd_parser.add_argument("--shell", action="store_true", help="Open a shell in it")
    cd_parser.set_defaults(handler=cmd_cd)

    base_parser = subparsers.add_parser("base", help="Print the current worktree's source repo")
    base_parser.add_argument("--shell", action="store_true", help="Open a shell in it")
    base_parser.set_defaults(handler=cmd_base)

    list_parser = subparsers.add_parser("list", aliases=["ls"], help="List worktrees")
    list_parser.set_defaults(handler=cmd_list)

    delete_parser = subparsers.add_parser("delete", help="Remove a worktree")
    delete_parser.add_argument("name", help="Worktree name")
    delete_parser.add_argument(
        "--force", action="store_true", help="Remove even with local changes"
    )
    delete_parser.add_argument(
        "--delete-branch", action="store_true", help="Also delete the worktree's branch"
    )
    delete_parser.set_defaults(handler=cmd_delete)

    prune_parser = subparsers.add_parser("prune", help="Forget worktrees that no longer exist")
    prune_parser.set_defaults(handler=cmd_prune)

    config_parser = subparsers.add_parser("config", help="Read or change settings")
    config_subparsers = config_parser.add_subparsers(dest="config_command", metavar="action")
    config_subparsers.required = True
    get_parser = config_subparsers.add_parser("get", help="Print a config value")
    get_parser.add_argument("key")
    set_parser = config_subparsers.add_parser("set", help="Update a config value")
    set_parser.add_argument("key")
    set_parser.add_argument("value")
    config_parser.set_defaults(handler=cmd_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose, debug=args.debug)

    paths = SproutPaths.from_env()
    try:
        return args.handler(args, paths)
    except SproutError as e:
        print(f"sprout: error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
