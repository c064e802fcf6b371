"""Directory server entry point."""

import argparse
import asyncio
import logging

from ..common.constants import DEFAULT_DIRECTORY_HOST, DEFAULT_DIRECTORY_PORT
from .directory import DirectoryServer


def setup_logging(log_file: str | None, verbose: bool) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
    logging.getLogger("websockets").setLevel(logging.WARNING)


def main() -> None:
    parser = argparse.ArgumentParser(description="Peer Lobby rendezvous directory")
    parser.add_argument("--host", default=DEFAULT_DIRECTORY_HOST, help="Host to bind to")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_DIRECTORY_PORT, help="Port to bind to"
    )
    parser.add_argument("--log", help="Also write logs to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    setup_logging(args.log, args.verbose)

    server = DirectoryServer(args.host, args.port)
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        print("\nDirectory stopped")


if __name__ == "__main__":
    main()
