"""Command-line interface for dirscope.

Provides the main entry point for running the server, plus one-shot
client commands that log in, run a single TRAVERSE/SEARCH/INSPECT, and
print the result.
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import signal
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="dirscope",
        description="Remote directory traversal, content search and file inspection",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/dirscope.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the dirscope server")
    serve_parser.add_argument("--host", type=str, default=None, help="Override server.host")
    serve_parser.add_argument("--port", type=int, default=None, help="Override server.port")

    def add_client_options(p: argparse.ArgumentParser) -> None:
        p.add_argument("--host", type=str, default=None, help="Override client.host")
        p.add_argument("--port", type=int, default=None, help="Override client.port")
        p.add_argument("-u", "--user", type=str, required=True, help="Username to log in as")
        p.add_argument(
            "-p", "--password", type=str, default=None,
            help="Password (prompted for if omitted)",
        )

    traverse_parser = subparsers.add_parser("traverse", help="List every file under a directory")
    add_client_options(traverse_parser)
    traverse_parser.add_argument("path", type=str)

    search_parser = subparsers.add_parser("search", help="Find files whose content contains a pattern")
    add_client_options(search_parser)
    search_parser.add_argument("path", type=str)
    search_parser.add_argument("pattern", type=str)

    inspect_parser = subparsers.add_parser("inspect", help="Print the raw contents of a file")
    add_client_options(inspect_parser)
    inspect_parser.add_argument("path", type=str)

    return parser.parse_args(argv)


async def _serve(settings) -> None:
    """Run the listener until SIGINT/SIGTERM."""
    from dirscope.server.listener import Listener

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    listener = Listener(settings)
    await listener.start()
    print(f"Server listening on port {listener.port}")
    await listener.serve_until(shutdown)


async def _run_client_command(settings, args) -> int:
    """Log in, run one command, print its payload. Returns an exit status."""
    from dirscope.client.remote import AuthenticationError, RemoteClient

    host = args.host or settings.client.host
    port = args.port or settings.client.port
    password = args.password if args.password is not None else getpass.getpass("Password: ")

    async with RemoteClient(host, port, timeout=settings.client.timeout) as client:
        try:
            outcome = await client.login(args.user, password)
        except AuthenticationError as e:
            print(f"Authentication failed: {e}", file=sys.stderr)
            return 1
        logger.info("Login %s", outcome.value)

        if args.command == "traverse":
            report = await client.traverse(args.path)
            for error in report.errors:
                print(f"ERROR: {error}", file=sys.stderr)
            for path in report.files:
                print(path)
            print(f"\nTotal Files: {report.total}")

        elif args.command == "search":
            result = await client.search(args.path, args.pattern)
            for error in result.listing.errors:
                print(f"ERROR: {error}", file=sys.stderr)
            if not result.found:
                print("No matches found")
            for path in result.matches:
                print(path)

        elif args.command == "inspect":
            payload = await client.inspect(args.path)
            sys.stdout.buffer.write(payload)
            sys.stdout.buffer.flush()

    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the dirscope CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from dirscope.config.settings import load_settings
    from dirscope.server.listener import ListenerError
    from dirscope.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    if args.command == "serve":
        if args.host is not None:
            settings.server.host = args.host
        if args.port is not None:
            settings.server.port = args.port
        setup_logging(settings.logging)
        logger.info("Starting dirscope server")
        try:
            asyncio.run(_serve(settings))
        except ListenerError as e:
            logger.error("%s", e)
            sys.exit(1)
        return

    # Client commands log to stderr only
    settings.logging.file = None
    setup_logging(settings.logging)
    from dirscope.protocol.framing import ProtocolError

    try:
        status = asyncio.run(_run_client_command(settings, args))
    except (ConnectionError, ProtocolError) as e:
        logger.error("%s", e)
        status = 1
    except asyncio.TimeoutError:
        logger.error("No response from %s within %.1fs", settings.client.host, settings.client.timeout)
        status = 1
    sys.exit(status)


if __name__ == "__main__":
    main()
