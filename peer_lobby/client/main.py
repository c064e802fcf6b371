"""Client entry point."""

import argparse
import asyncio
import logging
import os

from blessed import Terminal

from ..common.constants import (
    DEFAULT_DIRECTORY_HOST,
    DEFAULT_DIRECTORY_PORT,
    DIRECTORY_URL_ENV,
)
from ..common.errors import IdentityRegistrationFailed
from ..session.config import SessionConfig
from ..session.controller import RoleController
from ..transport.webrtc import WebRTCSignaling
from .chat_client import ChatClient
from .terminal_ui import TerminalUI


def setup_logging(log_file: str) -> None:
    """Configure logging to file only (console would interfere with TUI)."""
    logging.basicConfig(
        level=logging.DEBUG,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file),
        ],
    )
    # Suppress noisy aiortc debug logs
    logging.getLogger("aiortc").setLevel(logging.WARNING)
    logging.getLogger("aioice").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


def main() -> None:
    default_directory = os.environ.get(
        DIRECTORY_URL_ENV, f"ws://{DEFAULT_DIRECTORY_HOST}:{DEFAULT_DIRECTORY_PORT}"
    )
    parser = argparse.ArgumentParser(description="Peer Lobby chat client")
    parser.add_argument(
        "--directory",
        default=default_directory,
        help=f"Rendezvous directory URL (default: ${DIRECTORY_URL_ENV} or {default_directory})",
    )
    parser.add_argument(
        "--name", default=os.environ.get("USER", "guest"), help="Display name"
    )
    role = parser.add_mutually_exclusive_group()
    role.add_argument("--host", action="store_true", help="Start hosting immediately")
    role.add_argument("--join", metavar="SESSION_ID", help="Join a host immediately")
    parser.add_argument(
        "--ice-server",
        action="append",
        default=[],
        help="STUN/TURN server URL (may be repeated)",
    )
    parser.add_argument(
        "--log", help="Log file path (logging disabled if not specified)"
    )
    args = parser.parse_args()

    if args.log:
        setup_logging(args.log)
    else:
        # Suppress all logging output (no stderr spam during TUI)
        logging.getLogger().addHandler(logging.NullHandler())

    config = SessionConfig(ice_servers=tuple(args.ice_server))
    signaling = WebRTCSignaling(
        args.directory,
        ice_servers=list(config.ice_servers),
        open_timeout=config.channel_open_timeout,
    )
    client = ChatClient(RoleController(signaling, config), args.name)

    async def run_client() -> None:
        try:
            await client.start(host=args.host, join=args.join)
        except IdentityRegistrationFailed as e:
            print(f"Failed to register with directory: {e}")
            return
        await client.run(TerminalUI(Terminal()))

    try:
        asyncio.run(run_client())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
