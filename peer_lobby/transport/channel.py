"""Channel endpoint: one negotiated transport link to a remote participant."""

from __future__ import annotations

import logging
from typing import Any

from pyee.asyncio import AsyncIOEventEmitter

from ..common.errors import ChannelSendFailed
from ..common.protocol import decode_payload, encode_payload

logger = logging.getLogger(__name__)


class ChannelEndpoint(AsyncIOEventEmitter):
    """Bidirectional channel to one remote identifier.

    Events:
        open: emitted once when the channel becomes usable.
        data (payload): decoded payload, any number of times, in order.
        close: emitted once when the channel is closed from either side.
        error (exc): any number of times.

    Subclasses implement _transmit() and _shutdown(); they call
    _mark_open(), _deliver(), _mark_closed() and _fail() as the underlying
    transport reports events.
    """

    def __init__(self, remote_id: str) -> None:
        super().__init__()
        self.remote_id = remote_id
        self._opened = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    def send(self, payload: Any) -> None:
        """Encode and send a payload. Raises ChannelSendFailed."""
        if not self.is_open:
            raise ChannelSendFailed(self.remote_id, "channel is not open")
        try:
            raw = encode_payload(payload)
        except (TypeError, ValueError) as e:
            raise ChannelSendFailed(self.remote_id, f"unserializable payload: {e}")
        try:
            self._transmit(raw)
        except ChannelSendFailed:
            raise
        except Exception as e:
            raise ChannelSendFailed(self.remote_id, f"{type(e).__name__}: {e}")

    def close(self) -> None:
        """Close the channel. Closing twice is a no-op."""
        if self._closed:
            return
        self._shutdown()
        self._mark_closed()

    def _transmit(self, raw: str) -> None:
        raise NotImplementedError

    def _shutdown(self) -> None:
        raise NotImplementedError

    def _mark_open(self) -> None:
        if self._opened or self._closed:
            return
        self._opened = True
        logger.debug(f"Channel to {self.remote_id} open")
        self.emit("open")

    def _deliver(self, raw: str | bytes) -> None:
        if self._closed:
            return
        try:
            payload = decode_payload(raw)
        except ValueError as e:
            self._fail(ValueError(f"Undecodable payload from {self.remote_id}: {e}"))
            return
        self.emit("data", payload)

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Channel to {self.remote_id} closed")
        self.emit("close")

    def _fail(self, exc: Exception) -> None:
        # pyee raises unhandled "error" events, so only emit with a listener
        if self.listeners("error"):
            self.emit("error", exc)
        else:
            logger.warning(f"Unhandled channel error from {self.remote_id}: {exc}")

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed" if self._closed else "pending"
        return f"<{type(self).__name__} {self.remote_id} {state}>"
