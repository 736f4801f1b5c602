"""CLI commands for the MCP context server."""

import argparse
import asyncio
import logging
import sys

from context_server.cli.search_command import SearchCommand
from context_server.cli.stats_command import StatsCommand
from context_server.config import ServerConfig, get_config
from context_server.core.exceptions import ConfigurationError
from context_server.log_utils import configure_logging


def setup_logging(level: str = "INFO", use_json: bool = False, log_file: str = None):
    """Configure logging for CLI. Logs go to stderr."""
    configure_logging(use_json=use_json, level=getattr(logging, level.upper()), log_file=log_file)


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="mcp-context",
        description="MCP context server - project analysis and code pattern retrieval",
        epilog="""
Commands:
    serve      Serve the JSON-RPC protocol on stdin/stdout (default)
    stats      Show pattern store statistics
    search     Search stored patterns

For detailed help on any command: mcp-context <command> --help
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging level (default: from configuration)",
    )
    parser.add_argument(
        "--patterns-path",
        help="Pattern storage directory (default: from configuration)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("serve", help="Serve the protocol on stdio")
    subparsers.add_parser("stats", help="Show pattern store statistics")

    search_parser = subparsers.add_parser("search", help="Search stored patterns")
    search_parser.add_argument("query", nargs="?", help="Text to look for in title, description and code")
    search_parser.add_argument("-f", "--framework", help="Filter by framework")
    search_parser.add_argument("-c", "--category", help="Filter by category")
    search_parser.add_argument(
        "-t", "--tag", dest="tags", action="append", default=[],
        help="Tag to boost by (repeatable)",
    )
    search_parser.add_argument(
        "--min-score", type=float, default=0.0,
        help="Minimum score between 0.0 and 1.0 (default: 0.0)",
    )
    search_parser.add_argument(
        "-n", "--limit", type=int, default=20,
        help="Maximum rows to show (default: 20)",
    )

    return parser


def resolve_config(args) -> ServerConfig:
    """Apply command-line overrides on top of the loaded configuration."""
    config = get_config()
    updates = {}
    if args.patterns_path:
        updates["patterns_path"] = args.patterns_path
    if args.log_level:
        updates["log_level"] = args.log_level
    return config.model_copy(update=updates) if updates else config


async def main_async(args, config: ServerConfig):
    """Async main function to handle commands."""
    if args.command in (None, "serve"):
        from context_server.mcp_server import serve
        await serve(config)
    elif args.command == "stats":
        cmd = StatsCommand(config)
        await cmd.run(args)
    elif args.command == "search":
        cmd = SearchCommand(config)
        exit_code = await cmd.run(args)
        sys.exit(exit_code)
    else:
        print("Unknown command. Use --help for usage information.", file=sys.stderr)
        sys.exit(1)


def main():
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args()

    try:
        config = resolve_config(args)
    except ConfigurationError as e:
        print(str(e), file=sys.stderr)
        sys.exit(2)

    setup_logging(config.log_level, use_json=config.log_format == "json", log_file=config.log_file)

    try:
        asyncio.run(main_async(args, config))
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(0)
    except Exception as e:
        logging.error(f"Command failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
