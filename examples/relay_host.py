#!/usr/bin/env python3
"""Example headless host that relays every guest message to all other guests.

The host:
- Registers with the directory and starts hosting
- Forwards each guest payload to the other guests, tagged with its sender
- Logs joins, leaves and leave notices

Usage:
    python examples/relay_host.py [--directory URL] [--id SESSION_ID]
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from peer_lobby.common.constants import DEFAULT_DIRECTORY_HOST, DEFAULT_DIRECTORY_PORT
from peer_lobby.common.protocol import Envelope, parse_reset_signal
from peer_lobby.session.controller import RoleController
from peer_lobby.transport.webrtc import WebRTCSignaling

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("relay_host")
# Silence noisy loggers
logging.getLogger("aiortc").setLevel(logging.WARNING)
logging.getLogger("aioice").setLevel(logging.WARNING)


async def main() -> None:
    parser = argparse.ArgumentParser(description="Relay host for peer-lobby")
    parser.add_argument(
        "--directory",
        default=f"ws://{DEFAULT_DIRECTORY_HOST}:{DEFAULT_DIRECTORY_PORT}",
        help="Rendezvous directory URL",
    )
    parser.add_argument("--id", help="Session id to register (random if omitted)")
    args = parser.parse_args()

    controller = RoleController(WebRTCSignaling(args.directory))

    @controller.on_guest_connected
    def on_guest_connected(remote_id: str) -> None:
        logger.info(f"{remote_id} joined ({len(controller.guests)} guests)")

    @controller.on_guest_disconnected
    def on_guest_disconnected(remote_id: str) -> None:
        logger.info(f"{remote_id} left ({len(controller.guests)} guests)")

    @controller.on_message
    def on_message(envelope: Envelope) -> None:
        signal = parse_reset_signal(envelope.payload)
        if signal is not None:
            logger.info(f"{signal.participant or envelope.sender} is leaving")
            return
        results = controller.relay(envelope)
        failed = [r.remote_id for r in results if not r.ok]
        if failed:
            logger.warning(f"Relay from {envelope.sender} failed for {failed}")

    @controller.on_connection_error
    def on_connection_error(exc: Exception) -> None:
        logger.error(f"Connection error: {exc}")

    identifier = await controller.initialize(args.id)
    controller.start_hosting()
    logger.info(f"Relay hosting as {identifier}")

    try:
        await asyncio.Event().wait()
    finally:
        await controller.leave()
        await controller.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Relay stopped by user")
