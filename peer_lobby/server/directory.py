"""Rendezvous directory: maps session identifiers to websocket connections.

Peers register an identifier, then exchange SDP offers/answers through the
directory. The directory never sees application data; once a data channel
is open the peers talk directly.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from ..common.identity import is_valid_session_id
from ..common.protocol import (
    DirectoryError,
    DirectoryMessageType,
    deserialize_directory_message,
    serialize_directory_message,
)

logger = logging.getLogger(__name__)

# Peer-to-peer messages the directory forwards; only reject carries no sdp
RELAYED_TYPES = (
    DirectoryMessageType.OFFER,
    DirectoryMessageType.ANSWER,
    DirectoryMessageType.REJECT,
)


class DirectoryServer:
    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.peers: dict[str, Any] = {}  # identifier -> websocket
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        async with websockets.serve(self.handle_peer, self.host, self.port) as server:
            for sock in server.sockets:
                addr = sock.getsockname()
                print(f"Directory listening on ws://{addr[0]}:{addr[1]}")
            await server.serve_forever()

    async def handle_peer(self, ws: Any) -> None:
        identifier: str | None = None
        try:
            async for raw in ws:
                try:
                    msg_type, data = deserialize_directory_message(raw)
                except ValueError:
                    await self._send_error(ws, DirectoryError.BAD_REQUEST)
                    continue

                if msg_type == DirectoryMessageType.REGISTER:
                    if identifier is not None:
                        await self._send_error(ws, DirectoryError.BAD_REQUEST)
                        continue
                    identifier = await self.register(ws, data.get("id"))

                elif msg_type in RELAYED_TYPES:
                    if identifier is None:
                        await self._send_error(ws, DirectoryError.NOT_REGISTERED)
                        continue
                    await self.relay(ws, identifier, msg_type, data)

                else:
                    await self._send_error(ws, DirectoryError.BAD_REQUEST)
        except ConnectionClosed:
            pass
        except Exception as e:
            logger.error(
                f"Unexpected error for {identifier or 'unregistered peer'}: "
                f"{type(e).__name__}: {e}",
                exc_info=True,
            )
        finally:
            if identifier is not None:
                async with self._lock:
                    if self.peers.get(identifier) is ws:
                        del self.peers[identifier]
                logger.info(f"Released {identifier}")

    async def register(self, ws: Any, identifier: object) -> str | None:
        """Claim identifier for ws. Returns it on success, None on rejection."""
        if not is_valid_session_id(identifier):
            await self._send_error(ws, DirectoryError.INVALID_ID, id=identifier)
            return None
        assert isinstance(identifier, str)

        async with self._lock:
            if identifier in self.peers:
                taken = True
            else:
                taken = False
                self.peers[identifier] = ws

        if taken:
            logger.info(f"Rejected duplicate registration of {identifier}")
            await self._send_error(ws, DirectoryError.ID_TAKEN, id=identifier)
            return None

        await ws.send(
            serialize_directory_message(DirectoryMessageType.REGISTERED, id=identifier)
        )
        logger.info(f"Registered {identifier} ({len(self.peers)} peers)")
        return identifier

    async def relay(
        self,
        ws: Any,
        source: str,
        msg_type: DirectoryMessageType,
        data: dict[str, Any],
    ) -> None:
        """Forward an offer, answer or reject to its target, stamped with the source."""
        target = data.get("target")
        sdp = data.get("sdp")
        needs_sdp = msg_type != DirectoryMessageType.REJECT
        if not isinstance(target, str) or (needs_sdp and not isinstance(sdp, str)):
            await self._send_error(ws, DirectoryError.BAD_REQUEST)
            return

        target_ws = self.peers.get(target)
        if target_ws is None:
            await self._send_error(ws, DirectoryError.UNKNOWN_TARGET, target=target)
            return

        fields = {"sdp": sdp} if needs_sdp else {}
        try:
            await target_ws.send(
                serialize_directory_message(msg_type, source=source, **fields)
            )
        except ConnectionClosed:
            await self._send_error(ws, DirectoryError.UNKNOWN_TARGET, target=target)
            return
        logger.debug(f"Relayed {msg_type.value} {source} -> {target}")

    async def _send_error(self, ws: Any, reason: DirectoryError, **fields: Any) -> None:
        try:
            await ws.send(
                serialize_directory_message(
                    DirectoryMessageType.ERROR, reason=reason.value, **fields
                )
            )
        except ConnectionClosed:
            pass
