"""
kiln.cli - Command-line interface.

Main entry point for the kiln CLI tool.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from kiln import __version__
from kiln.commands import build, config_cmd, graph, serve


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="kiln",
        description="Bundle JavaScript modules and serve them with live reload",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kiln build                    # Write the bundle once
  kiln build --mode production  # Build without module labels
  kiln serve                    # Build, watch and serve with live reload
  kiln serve --port 3000        # Serve on another port
  kiln graph                    # Show modules in bundle order

Configuration:
  kiln config path              # Show config file location
  kiln config show              # View all settings

For detailed command help: kiln <command> --help
        """,
    )

    # Global options
    parser.add_argument(
        "--version",
        action="version",
        version=f"kiln {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file",
        metavar="PATH",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-error output",
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # build command
    build_parser = subparsers.add_parser(
        "build",
        help="Build the bundle once",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kiln build                        # Build using .kiln.toml
  kiln build --mode production      # Omit per-module labels
  kiln --config web/.kiln.toml build
""",
    )
    build_parser.add_argument(
        "--mode",
        choices=["development", "production"],
        help="Override the configured mode",
    )

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Build, watch and serve with live reload",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kiln serve                        # http://127.0.0.1:8080/
  kiln serve --host 0.0.0.0         # Listen on all interfaces
  kiln serve --no-hot               # Serve without the live-reload client

Stop with Ctrl+C.
""",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (default: dev_server.port)",
    )
    serve_parser.add_argument(
        "--host",
        help="Interface to bind (default: dev_server.host)",
    )
    serve_parser.add_argument(
        "--no-hot",
        action="store_true",
        help="Disable live reload",
    )

    # graph command
    graph_parser = subparsers.add_parser(
        "graph",
        help="Show the module graph in bundle order",
    )
    graph_parser.add_argument(
        "--json",
        action="store_true",
        help="Output JSON for tooling",
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show the resolved configuration",
    )
    config_subparsers = config_parser.add_subparsers(dest="config_action")
    config_show = config_subparsers.add_parser("show", help="Print the effective settings")
    config_show.add_argument(
        "--json",
        action="store_true",
        help="Output JSON instead of TOML",
    )
    config_subparsers.add_parser("path", help="Print the config file location")

    return parser


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Route library logging to stderr at the level the flags select."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    # werkzeug logs every request at INFO
    logging.getLogger("werkzeug").setLevel(logging.DEBUG if verbose else logging.WARNING)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Handle no command
    if not args.command:
        parser.print_help()
        return 0

    configure_logging(verbose=args.verbose, quiet=args.quiet)

    try:
        # Dispatch to command handlers
        if args.command == "build":
            return build.run(args)
        elif args.command == "serve":
            return serve.run(args)
        elif args.command == "graph":
            return graph.run(args)
        elif args.command == "config":
            return config_cmd.run(args)
        else:
            parser.print_help()
            return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled.", file=sys.stderr)
        return 130
    except Exception as e:
        if args.verbose:
            raise
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
