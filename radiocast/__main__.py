"""
Radiocast - Entry Point

Run with: python -m radiocast
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from radiocast.config import load_station_config
from radiocast.server import RadioServer


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="radiocast",
        description="Radiocast - a single-station live audio broadcaster",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to station.toml (default: bundled configuration)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (default: from config)",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="HTTP port (default: from config)",
    )

    parser.add_argument(
        "--source",
        type=str,
        default=None,
        help="Source file to broadcast, relative to the audio directory",
    )

    parser.add_argument(
        "--autostart",
        action="store_true",
        help="Start streaming immediately instead of waiting for a start command",
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    return parser.parse_args(argv)


async def run_server(server: RadioServer) -> None:
    """Start and run the Radiocast server."""
    await server.run()


def main() -> int:
    """Main entry point for the application."""
    args = parse_args()
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    config = load_station_config(args.config)
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.source is not None:
        config.default_source = args.source

    logger.info("Starting Radiocast...")

    try:
        asyncio.run(run_server(RadioServer(config, autostart=args.autostart)))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
