"""Command-line interface for rokurelay.

Provides the entry point for running the relay server and a console
controller that drives a relay session from stdin.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="rokurelay",
        description="WebSocket relay for Roku External Control Protocol",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/rokurelay.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the relay server")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Listen port")
    serve_parser.add_argument("--roku-ip", type=str, default=None, help="Initial Roku IP")

    control_parser = subparsers.add_parser(
        "control",
        help="Send key events read from stdin through a relay",
    )
    control_parser.add_argument("--server", type=str, default=None, help="Relay WebSocket URL")
    control_parser.add_argument("--roku-ip", type=str, default=None, help="Roku IP to target")

    return parser.parse_args(argv)


def parse_control_line(line: str) -> tuple[str, str] | None:
    """Turn a console line into ``(key, action)``.

    Accepts ``<action> <key>`` or a bare ``<key>``, which is sent as a
    ``keypress``. Blank lines and comments yield None.
    """
    parts = line.split()
    if not parts or parts[0].startswith("#"):
        return None
    if len(parts) == 1:
        return parts[0], "keypress"
    return parts[1], parts[0]


async def _control(settings) -> None:
    """Run a session manager fed by stdin until EOF."""
    from rokurelay.client.backoff import ReconnectBackoff
    from rokurelay.client.session import SessionManager

    cfg = settings.session
    session = SessionManager(
        server_url=cfg.server_url,
        roku_ip=cfg.roku_ip,
        backoff=ReconnectBackoff(
            floor=cfg.reconnect_floor,
            ceiling=cfg.reconnect_ceiling,
            factor=cfg.reconnect_factor,
        ),
        on_status_change=lambda status: print(f"[{status.value}]", file=sys.stderr),
        on_error=lambda message: print(f"error: {message}", file=sys.stderr),
    )

    loop = asyncio.get_running_loop()
    async with session:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            parsed = parse_control_line(line)
            if parsed is None:
                continue
            key, action = parsed
            session.send_command(key, action)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the rokurelay CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from rokurelay.config.settings import load_settings
    from rokurelay.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        from rokurelay.relay.server import main as serve

        srv = settings.server
        serve(
            host=args.host or srv.host,
            port=args.port or srv.port,
            roku_ip=args.roku_ip if args.roku_ip is not None else srv.roku_ip,
            downstream_port=settings.downstream.port,
            downstream_timeout=settings.downstream.timeout,
        )

    elif args.command == "control":
        if args.server:
            settings.session.server_url = args.server
        if args.roku_ip is not None:
            settings.session.roku_ip = args.roku_ip
        logger.info("Starting console controller for %s", settings.session.server_url)
        try:
            asyncio.run(_control(settings))
        except KeyboardInterrupt:
            logger.info("Interrupted")


if __name__ == "__main__":
    main()
