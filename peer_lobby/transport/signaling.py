"""Signaling collaborator interface.

A Signaling object registers this participant's identifier with a
directory and brokers channels to other identifiers.

Events:
    connection (ChannelEndpoint): a remote participant opened a channel to us.
        Offers are refused while nothing listens for this event.
    error (Exception): a non-fatal signaling failure.
"""

from __future__ import annotations

import logging

from pyee.asyncio import AsyncIOEventEmitter

from .channel import ChannelEndpoint

logger = logging.getLogger(__name__)


class Signaling(AsyncIOEventEmitter):
    def __init__(self) -> None:
        super().__init__()
        self.identifier: str | None = None

    @property
    def is_registered(self) -> bool:
        return self.identifier is not None

    @property
    def is_accepting(self) -> bool:
        """Inbound channels are refused unless someone listens for them."""
        return bool(self.listeners("connection"))

    async def register(self, identifier: str) -> None:
        """Claim identifier with the directory. Raises IdentityRegistrationFailed."""
        raise NotImplementedError

    async def unregister(self) -> None:
        """Release the current identifier. A no-op when none is registered."""
        raise NotImplementedError

    def open_channel(self, remote_id: str) -> ChannelEndpoint:
        """Start opening a channel to remote_id.

        Returns immediately; the endpoint emits "open" or "error" later.
        """
        raise NotImplementedError

    def _report_error(self, exc: Exception) -> None:
        if self.listeners("error"):
            self.emit("error", exc)
        else:
            logger.warning(f"Unhandled signaling error: {exc}")
