#!/usr/bin/env python3
"""
Grading Engine CLI

Usage:
    python -m grading_engine.cli <command> [options]

Commands:
    db          Database operations (init)
    rubric      Rubric store operations (seed-default, list)
    stats       Grading aggregates for an organization or instructor
    serve       Run the HTTP API

Environment:
    DATABASE_URL    SQLAlchemy async URL (default: sqlite+aiosqlite:///./grading.db)
    LOG_LEVEL       DEBUG|INFO|WARNING|ERROR
"""
import os
import sys
import argparse
import logging
from typing import Optional

from grading_engine import __version__
from grading_engine.cli.db_commands import DbCommand
from grading_engine.cli.rubric_commands import RubricCommand
from grading_engine.cli.server_commands import ServeCommand
from grading_engine.cli.stats_commands import StatsCommand


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="grading-engine",
        description="Rubric-based grading engine CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s db init
  %(prog)s rubric seed-default --org 1 --actor 7
  %(prog)s rubric list --org 1
  %(prog)s stats --org 1
  %(prog)s serve --port 8000
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO").upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without executing"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Database commands
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_subparsers = db_parser.add_subparsers(dest="db_action")

    # db init
    db_subparsers.add_parser("init", help="Create missing tables")

    # Rubric commands
    rubric_parser = subparsers.add_parser("rubric", help="Rubric store operations")
    rubric_subparsers = rubric_parser.add_subparsers(dest="rubric_action")

    # rubric seed-default
    seed_parser = rubric_subparsers.add_parser("seed-default", help="Seed the starter rubric as default")
    seed_parser.add_argument("--org", type=int, required=True, help="Organization ID")
    seed_parser.add_argument("--actor", type=int, required=True, help="Acting admin user ID")
    seed_parser.add_argument(
        "--if-empty", action="store_true", help="Only seed when the organization has no rubric"
    )

    # rubric list
    list_parser = rubric_subparsers.add_parser("list", help="List an organization's rubrics")
    list_parser.add_argument("--org", type=int, required=True, help="Organization ID")
    list_parser.add_argument("--json", action="store_true", help="Print full rubrics as JSON")

    # stats
    stats_parser = subparsers.add_parser("stats", help="Grading aggregates")
    scope = stats_parser.add_mutually_exclusive_group(required=True)
    scope.add_argument("--org", type=int, help="Organization ID")
    scope.add_argument("--instructor", type=int, help="Instructor user ID")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 1

    # Setup logging
    setup_logging(parsed.log_level)

    # Route to appropriate command handler
    command_map = {
        "db": DbCommand,
        "rubric": RubricCommand,
        "stats": StatsCommand,
        "serve": ServeCommand,
    }

    if parsed.command in command_map:
        handler = command_map[parsed.command](dry_run=parsed.dry_run)
        return handler.execute(parsed)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
