"""Command-line interface for running a Score server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from pathlib import Path

from aioscore.server import ScoreServer, ServerConfig
from aioscore.server.files import DEFAULT_MAX_UPLOAD_BYTES
from aioscore.server.mp3 import DEFAULT_SLOT_COUNT
from aioscore.server.server import ScoreEvent
from aioscore.server.wire import DEFAULT_WIRE_PORT

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the score server."""
    parser = argparse.ArgumentParser(description="Run an aioscore server")
    parser.add_argument("--host", default="0.0.0.0", help="Address to bind HTTP and WebSocket")  # noqa: S104
    parser.add_argument("--port", type=int, default=3000, help="HTTP and WebSocket port")
    parser.add_argument("--ws-path", default="/ws", help="Path of the WebSocket endpoint")
    parser.add_argument(
        "--wire-port",
        type=int,
        default=DEFAULT_WIRE_PORT,
        help="UDP port for datagram control commands",
    )
    parser.add_argument(
        "--no-wire",
        action="store_true",
        help="Do not listen for datagram control commands",
    )
    parser.add_argument(
        "--slots",
        type=int,
        default=DEFAULT_SLOT_COUNT,
        help="Number of MP3 playback slots",
    )
    parser.add_argument(
        "--upload-dir",
        type=Path,
        default=None,
        help="Directory for uploaded files. If omitted, a temporary directory is used.",
    )
    parser.add_argument(
        "--max-upload-mb",
        type=int,
        default=DEFAULT_MAX_UPLOAD_BYTES // (1024 * 1024),
        help="Largest accepted upload in MiB",
    )
    parser.add_argument("--name", default="aioscore", help="Name advertised via mDNS")
    parser.add_argument(
        "--no-mdns",
        action="store_true",
        help="Do not advertise the server via mDNS",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level to use",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Translate parsed arguments into a server configuration."""
    return ServerConfig(
        host=args.host,
        port=args.port,
        ws_path=args.ws_path if args.ws_path.startswith("/") else f"/{args.ws_path}",
        wire_port=None if args.no_wire else args.wire_port,
        slot_count=args.slots,
        upload_dir=args.upload_dir,
        max_upload_bytes=args.max_upload_mb * 1024 * 1024,
        advertise=not args.no_mdns,
        server_name=args.name,
    )


async def _log_event(event: ScoreEvent) -> None:
    logger.debug("Event: %s", event)


async def main_async(argv: Sequence[str] | None = None) -> int:
    """Entry point running the server until interrupted."""
    args = parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level))

    loop = asyncio.get_running_loop()
    server = ScoreServer(loop, build_config(args))
    _ = server.add_event_listener(_log_event)

    stop_event = asyncio.Event()
    loop.add_signal_handler(signal.SIGINT, stop_event.set)
    loop.add_signal_handler(signal.SIGTERM, stop_event.set)
    try:
        await server.start_server()
        await stop_event.wait()
        logger.debug("Received interrupt signal, shutting down...")
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        loop.remove_signal_handler(signal.SIGTERM)
        await server.close()
    return 0


def main() -> int:
    """Run the score server."""
    return asyncio.run(main_async(sys.argv[1:]))


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
