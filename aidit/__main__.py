"""CLI entry point for aidit.

Maintenance commands for the local artifact cache and saved edits.

Usage:
    python -m aidit stats
    python -m aidit cleanup
    python -m aidit clear
    python -m aidit edits
    python -m aidit env [--category cache]
"""

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

from aidit.cache import ArtifactStore, CacheConfig, CacheError
from aidit.config import (
    EnvVar,
    get_cache_dir,
    get_edits_dir,
    get_environment,
    get_environment_info,
    list_environment_variables,
)
from aidit.core import get_logger, setup_logging

logger = get_logger("cli")


def _open_store(args: argparse.Namespace) -> ArtifactStore:
    store = ArtifactStore(
        get_cache_dir(home=args.home),
        get_edits_dir(home=args.home),
        CacheConfig.from_environment(),
    )
    store.initialize()
    return store


# =============================================================================
# Commands
# =============================================================================


def cmd_stats(args: argparse.Namespace) -> int:
    """Handle the stats command."""
    store = _open_store(args)
    stats = store.get_stats()
    print(f"Cache directory: {store.cache_dir}")
    print(f"Entries:         {stats.entry_count}")
    print(
        f"Total size:      {stats.total_size_mb:.2f} MB "
        f"of {store.config.max_size_mb} MB"
    )
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    """Handle the cleanup command."""
    store = _open_store(args)
    result = store.cleanup()
    print(f"Entries removed: {result.entries_removed}")
    print(f"Orphans removed: {result.orphans_removed}")
    print(f"Freed:           {result.mb_freed:.2f} MB")
    for error in result.errors:
        logger.warning(f"Cleanup error: {error}")
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    """Handle the clear command."""
    store = _open_store(args)
    store.clear_cache()
    print(f"Cleared {store.cache_dir}")
    return 0


def cmd_edits(args: argparse.Namespace) -> int:
    """Handle the edits command."""
    store = _open_store(args)
    edits = store.list_saved_edits()
    if not edits:
        print(f"No saved edits in {store.edits_dir}")
        return 0
    for path in edits:
        print(path)
    return 0


def cmd_env(args: argparse.Namespace) -> int:
    """Handle the env command."""
    for var in list_environment_variables(args.category):
        info = get_environment_info(var)
        value = get_environment(var)
        print(f"{info.name} [{info.category}] = {value}")
        print(f"    {info.description}")
    return 0


# =============================================================================
# Argument Parsing
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="python -m aidit",
        description="Maintain the aidit artifact cache and saved edits",
    )
    parser.add_argument(
        "--home",
        type=Path,
        default=None,
        help="Data root (default: AIDIT_HOME or ~/.aidit)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (default: AIDIT_LOG_LEVEL)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("stats", help="Show cache entry count and size")
    subparsers.add_parser("cleanup", help="Expire, reconcile and evict entries")
    subparsers.add_parser("clear", help="Delete every cached file")
    subparsers.add_parser("edits", help="List saved edits")

    env_parser = subparsers.add_parser("env", help="Show configuration variables")
    env_parser.add_argument(
        "--category",
        "-c",
        type=str,
        default=None,
        choices=["paths", "cache", "history", "general"],
        help="Only show one category",
    )

    return parser


COMMANDS = {
    "stats": cmd_stats,
    "cleanup": cmd_cleanup,
    "clear": cmd_clear,
    "edits": cmd_edits,
    "env": cmd_env,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    load_dotenv()

    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or get_environment(EnvVar.AIDIT_LOG_LEVEL))

    try:
        return COMMANDS[args.command](args)
    except CacheError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
