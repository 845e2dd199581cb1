#!/usr/bin/env python3
"""Command-line interface for dirindex.

This module provides the CLI for inspecting and maintaining a served
directory:
- Argument parsing and validation
- Configuration loading for the served directory
- Rule diagnostics and visibility checks
- Folder listings as JSON
- Cache cleanup and clearing

Example:
    >>> from dirindex.cli import parse_arguments
    >>> args = parse_arguments(["--root", "/srv/files", "check", "logs/app.log"])
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from dirindex.core.constants import DIRINDEX_VERSION
from dirindex.core.paths import file_extension, normalize_relative_path
from dirindex.infrastructure.config_manager import ConfigError, IndexerConfig, load_config
from dirindex.infrastructure.logger import Logger, configure_logging
from dirindex.listing import ListingError, SortDirection, SortField, SortParams
from dirindex.main import IndexerRequest

DESCRIPTION = "dirindex - Visibility policy and listing cache for served directories"

# Exit codes
EXIT_OK = 0
EXIT_HIDDEN = 1
EXIT_ERROR = 2


class CLIError(Exception):
    """Exception raised for CLI-related errors."""

    pass


def parse_arguments(args: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        args: Argument list to parse (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace

    Raises:
        SystemExit: On invalid arguments or --help/--version
        CLIError: If the served directory or config file is invalid
    """
    parser = argparse.ArgumentParser(
        prog="dirindex",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show compiled deny/allow rules and conflicts
  dirindex --root /srv/files rules

  # Check whether a file would be served
  dirindex --root /srv/files check logs/app.log

  # List a folder, largest first
  dirindex --root /srv/files list docs --sort size --dir desc

  # Drop expired cache entries
  dirindex --root /srv/files cache cleanup
        """,
    )

    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {DIRINDEX_VERSION}",
    )

    parser.add_argument(
        "-r",
        "--root",
        metavar="DIR",
        type=str,
        default=".",
        help="Served directory (default: current directory)",
    )

    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        type=str,
        help="Configuration file (default: <root>/.indexer_files/config.json)",
    )

    log_group = parser.add_argument_group("logging options")

    log_group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    log_group.add_argument(
        "--log-file",
        metavar="FILE",
        type=str,
        help="Also write log records to this file",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    commands.add_parser("rules", help="Print compiled rules and conflicts")

    check = commands.add_parser("check", help="Decide visibility of a path")
    check.add_argument("path", metavar="PATH", help="Path relative to the served directory")
    check.add_argument("--folder", action="store_true", help="Treat PATH as a folder")

    listing = commands.add_parser("list", help="List a folder as JSON")
    listing.add_argument("path", metavar="PATH", nargs="?", default="", help="Folder to list")
    listing.add_argument(
        "--sort",
        choices=[f.value for f in SortField],
        default=SortField.NAME.value,
        help="Sort column (default: name)",
    )
    listing.add_argument(
        "--dir",
        dest="direction",
        choices=[d.value for d in SortDirection],
        default=SortDirection.ASC.value,
        help="Sort direction (default: asc)",
    )

    cache = commands.add_parser("cache", help="Maintain the cache")
    cache_commands = cache.add_subparsers(dest="cache_command", metavar="ACTION")
    cache_commands.required = True
    cache_commands.add_parser("cleanup", help="Remove expired entries")
    clear = cache_commands.add_parser("clear", help="Remove entries")
    clear.add_argument("--category", metavar="NAME", help="Only this category")

    parsed = parser.parse_args(args)

    _validate_arguments(parsed)

    return parsed


def _validate_arguments(args: argparse.Namespace) -> None:
    """
    Validate parsed arguments.

    Args:
        args: Parsed arguments namespace

    Raises:
        CLIError: If validation fails
    """
    root_path = Path(args.root)

    if not root_path.exists():
        raise CLIError(f"Served directory does not exist: {args.root}")

    if not root_path.is_dir():
        raise CLIError(f"Served path is not a directory: {args.root}")

    if args.config:
        config_path = Path(args.config)

        if not config_path.exists():
            raise CLIError(f"Configuration file does not exist: {args.config}")

        if not config_path.is_file():
            raise CLIError(f"Configuration path is not a file: {args.config}")


def load_request_config(args: argparse.Namespace) -> IndexerConfig:
    """
    Load the configuration named by the arguments.

    Args:
        args: Parsed arguments namespace

    Returns:
        Configuration for this invocation

    Raises:
        CLIError: If the configuration cannot be loaded
    """
    try:
        return load_config(args.root, args.config)
    except ConfigError as e:
        raise CLIError(e.message)


def setup_logging(args: argparse.Namespace, config: IndexerConfig) -> Logger:
    """
    Setup logging based on arguments and configuration.

    Args:
        args: Parsed arguments namespace
        config: Loaded configuration

    Returns:
        Configured logger instance
    """
    log_level = "DEBUG" if args.debug else config.log_level
    log_file = args.log_file or config.log_file

    try:
        return configure_logging(log_level, log_file)
    except KeyError:
        raise CLIError(f"Unknown log level: {log_level}")
    except OSError as e:
        raise CLIError(f"Cannot open log file {log_file}: {e}")


def command_rules(request: IndexerRequest) -> int:
    """Print the compiled rules as YAML."""
    report = request.policy.rules_report()
    print(yaml.safe_dump(report, sort_keys=False, default_flow_style=False), end="")
    return EXIT_OK


def command_check(request: IndexerRequest, args: argparse.Namespace) -> int:
    """
    Print the visibility decision for one path.

    Returns:
        EXIT_OK if visible, EXIT_HIDDEN if hidden
    """
    path = normalize_relative_path(args.path)

    if args.folder:
        visible = request.policy.is_folder_visible(path)
    else:
        visible = request.policy.is_file_visible(path, file_extension(path))

    print(f"{'visible' if visible else 'hidden'}: {path or '/'}")
    return EXIT_OK if visible else EXIT_HIDDEN


def command_list(request: IndexerRequest, args: argparse.Namespace) -> int:
    """Print a folder listing as JSON."""
    params = SortParams.from_query(args.sort, args.direction)

    try:
        listing = request.lister.list(args.path, params)
    except ListingError as e:
        raise CLIError(e.message)

    print(json.dumps(listing, indent=2))
    return EXIT_OK


def command_cache(request: IndexerRequest, args: argparse.Namespace) -> int:
    """Run a cache maintenance action."""
    if args.cache_command == "cleanup":
        removed = request.cache.cleanup()
        print(f"Removed {removed} expired entries")
    else:
        removed = request.cache.clear(args.category)
        scope = f"'{args.category}' " if args.category else ""
        print(f"Removed {removed} {scope}entries")
    return EXIT_OK


def run_command(args: argparse.Namespace, config: IndexerConfig, logger: Logger) -> int:
    """
    Execute the selected command within one request.

    Args:
        args: Parsed arguments namespace
        config: Loaded configuration
        logger: Logger instance

    Returns:
        Exit code
    """
    logger.debug("Running command", command=args.command, root=config.root_dir)

    with IndexerRequest(config) as request:
        if args.command == "rules":
            return command_rules(request)
        if args.command == "check":
            return command_check(request, args)
        if args.command == "list":
            return command_list(request, args)
        return command_cache(request, args)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Argument list (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    try:
        args = parse_arguments(argv)
        config = load_request_config(args)
        logger = setup_logging(args, config)
        return run_command(args, config, logger)

    except CLIError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
