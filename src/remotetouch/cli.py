"""Command-line interface for remotetouch.

Runs the HTTP API, performs one-shot gestures against a device (connect,
run one command, disconnect), or runs the engine locally on stdin/stdout
for debugging on the device itself.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from remotetouch.domain.models import (
    Command,
    DeviceMode,
    DoubleTapCommand,
    KeyPressCommand,
    KeyTypeCommand,
    LongPressCommand,
    RemoteCommandError,
    SwipeCommand,
    TapCommand,
)
from remotetouch.session.base import SessionError

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="remotetouch",
        description="Drive a remote Linux touchscreen and keyboard over SSH",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/remotetouch.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    conn = parser.add_argument_group("connection (defaults from REMOTETOUCH_* env vars)")
    conn.add_argument("--host", default=None, help="SSH host")
    conn.add_argument("--user", default=None, help="SSH user")
    conn.add_argument("--port", type=int, default=None, help="SSH port")
    conn.add_argument("--key", dest="ssh_key", default=None, help="SSH private key file")
    conn.add_argument("--screen-width", type=int, default=None)
    conn.add_argument("--screen-height", type=int, default=None)
    conn.add_argument(
        "--sudo", dest="use_sudo", action="store_true", default=None,
        help="Run the remote engine with sudo",
    )
    conn.add_argument(
        "--device", dest="device_mode", default=None,
        choices=[mode.value for mode in DeviceMode],
        help="Touch device strategy on the remote host",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API server")
    serve_parser.add_argument("--listen", default=None, help="Bind address")
    serve_parser.add_argument("--listen-port", type=int, default=None, help="Bind port")

    tap_parser = subparsers.add_parser("tap", help="Tap at X Y")
    tap_parser.add_argument("x", type=int)
    tap_parser.add_argument("y", type=int)
    tap_parser.add_argument("--duration", type=int, default=None, help="Hold time in ms")

    swipe_parser = subparsers.add_parser("swipe", help="Swipe from X1 Y1 to X2 Y2")
    for name in ("x1", "y1", "x2", "y2"):
        swipe_parser.add_argument(name, type=int)
    swipe_parser.add_argument("--duration", type=int, default=None, help="Total time in ms")
    swipe_parser.add_argument("--steps", type=int, default=None, help="Intermediate moves")

    long_parser = subparsers.add_parser("long-press", help="Long-press at X Y")
    long_parser.add_argument("x", type=int)
    long_parser.add_argument("y", type=int)
    long_parser.add_argument("--duration", type=int, default=None, help="Hold time in ms")

    double_parser = subparsers.add_parser("double-tap", help="Double-tap at X Y")
    double_parser.add_argument("x", type=int)
    double_parser.add_argument("y", type=int)

    key_parser = subparsers.add_parser("key", help="Press a key, optionally with modifiers")
    key_parser.add_argument("key")
    key_parser.add_argument(
        "-m", "--modifier", dest="modifiers", action="append", default=[],
        help="Modifier held during the press (repeatable)",
    )

    type_parser = subparsers.add_parser("type", help="Type a string of text")
    type_parser.add_argument("text")

    subparsers.add_parser("engine", help="Run the engine locally on stdin/stdout")

    return parser.parse_args(argv)


def build_command(args: argparse.Namespace) -> Command:
    """Translate a one-shot subcommand into a protocol command."""
    if args.command == "tap":
        return TapCommand(x=args.x, y=args.y, duration_ms=args.duration)
    if args.command == "swipe":
        return SwipeCommand(
            x=args.x1, y=args.y1, x2=args.x2, y2=args.y2,
            duration_ms=args.duration, steps=args.steps,
        )
    if args.command == "long-press":
        return LongPressCommand(x=args.x, y=args.y, duration_ms=args.duration)
    if args.command == "double-tap":
        return DoubleTapCommand(x=args.x, y=args.y)
    if args.command == "key":
        return KeyPressCommand(key=args.key, modifiers=args.modifiers)
    if args.command == "type":
        return KeyTypeCommand(text=args.text)
    raise ValueError(f"not a one-shot command: {args.command}")


async def _run_once(settings, args: argparse.Namespace) -> int:
    """Connect, send one command, and disconnect."""
    from remotetouch.session.manager import create_manager

    config = settings.session_config(
        host=args.host,
        user=args.user,
        port=args.port,
        ssh_key=args.ssh_key,
        screen_width=args.screen_width,
        screen_height=args.screen_height,
        use_sudo=args.use_sudo,
        device_mode=args.device_mode,
    )
    command = build_command(args)
    manager = create_manager(settings)

    session_id = await manager.connect(config)
    try:
        info = manager.get_session(session_id)
        logger.info("Connected to %s: %s", config.target, info.message if info else "")
        response = await manager.send_command(session_id, command)
    finally:
        await manager.disconnect(session_id)

    response.raise_for_status()
    line = f"{command.type}: {response.status.value}"
    if response.message:
        line += f" ({response.message})"
    print(line)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the remotetouch CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    if args.command == "engine":
        from remotetouch.engine.daemon import main as engine_main

        engine_main(["--verbose"] if args.verbose else [])
        return

    from remotetouch.config.settings import load_settings
    from remotetouch.utils.logging import setup_logging

    settings = load_settings(args.config)

    setup_logging(settings.logging, verbose=args.verbose)

    if args.command == "serve":
        from remotetouch.api.server import serve

        logger.info("Starting API server")
        serve(settings, host=args.listen, port=args.listen_port)
        return

    try:
        code = asyncio.run(_run_once(settings, args))
    except ValueError as e:
        logger.error("%s", e)
        code = 2
    except (SessionError, RemoteCommandError) as e:
        logger.error("%s failed: %s", args.command, e)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
