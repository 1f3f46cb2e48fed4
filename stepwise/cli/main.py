"""Main CLI entry point for stepwise."""

import argparse
import sys
from typing import Optional

from .commands import execute_workflow


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the stepwise CLI."""
    parser = argparse.ArgumentParser(
        prog='stepwise',
        description='Step-based workflow runner for shell commands and model prompts'
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    execute_parser = subparsers.add_parser('execute', help='Execute a workflow')
    execute_parser.add_argument(
        'workflow',
        type=str,
        help='Path to workflow YAML file'
    )
    execute_parser.add_argument(
        'files',
        nargs='*',
        help='Target files to run the workflow against'
    )
    execute_parser.add_argument(
        '-r', '--replay',
        type=str,
        metavar='[TIMESTAMP:]STEP',
        help='Resume from STEP using the snapshot taken before it'
    )
    execute_parser.add_argument(
        '-o', '--output',
        type=str,
        help='Write the final output to this file instead of stdout'
    )
    execute_parser.add_argument(
        '-s', '--subject',
        type=str,
        help='Subject file added to the transcript'
    )
    execute_parser.add_argument(
        '-t', '--target',
        type=str,
        help='Override the workflow target'
    )
    execute_parser.add_argument(
        '--session-name',
        type=str,
        help='Session name for state snapshots (default: workflow name)'
    )
    execute_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Validate without execution'
    )
    execute_parser.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress non-error output'
    )
    execute_parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )
    execute_parser.add_argument(
        '--log-level',
        choices=['debug', 'info', 'warn', 'error'],
        default='info',
        help='Set log level'
    )

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if parsed_args.command == 'execute':
        return execute_workflow(parsed_args)

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
