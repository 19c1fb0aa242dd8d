"""Command-line interface for rsyncsnap.

This module provides the CLI for rsyncsnap, supporting commands for:
- run: Run a backup now
- list: List snapshots
- status: Show backup status
- init: Create default config
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from rsyncsnap import __version__
from rsyncsnap.backup import EXIT_FAILURE, EXIT_SUCCESS, run_backup
from rsyncsnap.config import (
    Configuration,
    ConfigurationError,
    ValidationError,
    parse_config,
    create_default_config,
    DEFAULT_CONFIG_PATH,
)
from rsyncsnap.destination import is_remote_path
from rsyncsnap.lock import LockManager
from rsyncsnap.snapshot import list_incomplete_snapshots, list_snapshots


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog='rsyncsnap',
        description='Hard-linked rsync snapshot backups'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        help='Path to config file (default: ~/.config/rsyncsnap/config.toml)',
        metavar='PATH'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Verbose output'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser(
        'run',
        help='Run backup now'
    )
    run_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Perform a dry run (no changes)'
    )

    list_parser = subparsers.add_parser(
        'list',
        help='List snapshots'
    )
    list_parser.add_argument(
        '--json',
        action='store_true',
        help='Output as JSON'
    )

    subparsers.add_parser(
        'status',
        help='Show backup status'
    )

    init_parser = subparsers.add_parser(
        'init',
        help='Create default config file'
    )
    init_parser.add_argument(
        '--force',
        action='store_true',
        help='Overwrite existing config file'
    )

    return parser


def load_config(config_path: Optional[Path], verbose: bool = False) -> Optional[Configuration]:
    """
    Load configuration from file.

    Returns None and prints error on failure.
    """
    try:
        config = parse_config(config_path)
        if verbose:
            print(f"Loaded config from: {config_path or DEFAULT_CONFIG_PATH}")
        return config
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return None
    except ValidationError as e:
        print(f"Validation error: {e}", file=sys.stderr)
        return None


def cmd_run(args: argparse.Namespace) -> int:
    """Execute the 'run' command - run a backup now."""
    config = load_config(args.config, args.verbose)
    if config is None:
        return EXIT_FAILURE

    result = run_backup(
        config=config,
        dry_run=args.dry_run,
        log_level="DEBUG" if args.verbose else None,
    )

    if not result.success:
        print(f"Backup failed: {result.error_message}", file=sys.stderr)
        return result.exit_code

    if result.dry_run:
        print("Dry run completed")
    else:
        print(f"Backup completed: {result.snapshot_name}")
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    if args.verbose:
        print(f"  Data transferred: {result.transferred_gb:.2f} GB")
        if result.deleted_snapshots:
            print(f"  Removed snapshots: {len(result.deleted_snapshots)}")
    return EXIT_SUCCESS


def cmd_list(args: argparse.Namespace) -> int:
    """Execute the 'list' command - list snapshots."""
    config = load_config(args.config, args.verbose)
    if config is None:
        return EXIT_FAILURE

    if is_remote_path(config.destination):
        print(f"Cannot list snapshots on remote destination: {config.destination}",
              file=sys.stderr)
        return EXIT_FAILURE

    snapshots = list_snapshots(Path(config.destination))

    if args.json:
        output = [
            {
                "name": snap.name,
                "path": str(snap.path),
                "latest": snap.is_latest,
            }
            for snap in snapshots
        ]
        print(json.dumps(output, indent=2))
        return EXIT_SUCCESS

    if not snapshots:
        print("No snapshots found.")
        return EXIT_SUCCESS

    for snap in snapshots:
        marker = "  (latest)" if snap.is_latest else ""
        print(f"{snap.name}{marker}")
    print("-" * 40)
    print(f"Total: {len(snapshots)} snapshot(s)")

    return EXIT_SUCCESS


def cmd_status(args: argparse.Namespace) -> int:
    """Execute the 'status' command - show backup status."""
    config = load_config(args.config, args.verbose)
    if config is None:
        return EXIT_FAILURE

    lock_manager = LockManager(config.lock_path)
    remote = is_remote_path(config.destination)

    print("rsyncsnap Status")
    print("=" * 40)
    print(f"Source: {config.source}")
    print(f"Destination: {config.destination}")
    print(f"Keep: {config.keep}")
    print()

    if remote:
        print("Snapshots: unavailable (remote destination)")
    else:
        destination = Path(config.destination)
        snapshots = list_snapshots(destination)
        latest = next((snap for snap in snapshots if snap.is_latest), None)
        if latest is not None:
            print(f"Last backup: {latest.name}")
        elif snapshots:
            print(f"Last backup: {snapshots[0].name} (latest link missing)")
        else:
            print("Last backup: Never")
        print(f"Total snapshots: {len(snapshots)}")

        incomplete = list_incomplete_snapshots(destination)
        if incomplete:
            print(f"Incomplete snapshots: {len(incomplete)}")
            for path in incomplete:
                print(f"  {path.name}")
    print()

    if lock_manager.is_locked():
        print(f"Status: Backup in progress (lock: {lock_manager.lock_path})")
    else:
        print("Status: Idle")

    return EXIT_SUCCESS


def cmd_init(args: argparse.Namespace) -> int:
    """Execute the 'init' command - create default config."""
    config_path = args.config or DEFAULT_CONFIG_PATH

    if config_path.exists() and not args.force:
        print(f"Config file already exists: {config_path}", file=sys.stderr)
        print("Use --force to overwrite.", file=sys.stderr)
        return EXIT_FAILURE

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(create_default_config())

    print(f"Created default config: {config_path}")
    print("Edit this file to configure your backup settings.")

    return EXIT_SUCCESS


def main(argv: list = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_SUCCESS

    try:
        if args.command == 'run':
            return cmd_run(args)
        elif args.command == 'list':
            return cmd_list(args)
        elif args.command == 'status':
            return cmd_status(args)
        elif args.command == 'init':
            return cmd_init(args)
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            return EXIT_FAILURE
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
