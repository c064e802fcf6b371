"""WebRTC data channel signaling over a websocket rendezvous directory.

Each channel is its own RTCPeerConnection carrying one ordered data
channel. aiortc gathers ICE candidates during setLocalDescription, so a
single offer/answer exchange through the directory is enough.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import websockets
from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..common.constants import CHANNEL_OPEN_TIMEOUT, DATA_CHANNEL_LABEL
from ..common.errors import (
    ChannelOpenFailed,
    ChannelSendFailed,
    IdentityRegistrationFailed,
    SessionError,
)
from ..common.protocol import (
    DirectoryError,
    DirectoryMessageType,
    deserialize_directory_message,
    serialize_directory_message,
)
from .channel import ChannelEndpoint
from .signaling import Signaling

if TYPE_CHECKING:
    from aiortc import RTCDataChannel

logger = logging.getLogger(__name__)


class DataChannelEndpoint(ChannelEndpoint):
    """ChannelEndpoint backed by an aiortc RTCDataChannel."""

    def __init__(self, remote_id: str) -> None:
        super().__init__(remote_id)
        self.peer_connection: RTCPeerConnection | None = None
        self.data_channel: RTCDataChannel | None = None
        self._close_task: asyncio.Task[None] | None = None

    def bind_peer_connection(self, pc: RTCPeerConnection) -> None:
        self.peer_connection = pc

        @pc.on("connectionstatechange")
        async def on_connectionstatechange() -> None:
            state = pc.connectionState
            logger.debug(f"Peer connection to {self.remote_id}: {state}")
            if state in ("failed", "closed", "disconnected"):
                if state == "failed" and not self.is_open:
                    self._fail(ChannelOpenFailed(self.remote_id, "ICE failed"))
                self._mark_closed()

    def bind_data_channel(self, channel: RTCDataChannel) -> None:
        self.data_channel = channel

        @channel.on("open")
        def on_open() -> None:
            self._mark_open()

        @channel.on("message")
        def on_message(message: bytes | str) -> None:
            self._deliver(message)

        @channel.on("close")
        def on_close() -> None:
            self._mark_closed()

        # Check if channel is already open (in case we missed the event)
        if channel.readyState == "open":
            self._mark_open()

    def _transmit(self, raw: str) -> None:
        if self.data_channel is None:
            raise ChannelSendFailed(self.remote_id, "no data channel")
        self.data_channel.send(raw)

    def _shutdown(self) -> None:
        if self.data_channel is not None:
            self.data_channel.close()
        if self.peer_connection is not None and self._close_task is None:
            self._close_task = asyncio.ensure_future(self.peer_connection.close())


class WebRTCSignaling(Signaling):
    def __init__(
        self,
        directory_url: str,
        ice_servers: list[str] | None = None,
        open_timeout: float = CHANNEL_OPEN_TIMEOUT,
    ) -> None:
        super().__init__()
        self.directory_url = directory_url
        self.ice_servers = ice_servers or []
        self.open_timeout = open_timeout
        self._ws: Any = None
        self._reader_task: asyncio.Task[None] | None = None
        # Outbound channels waiting for an answer, keyed by remote identifier
        self._pending: dict[str, DataChannelEndpoint] = {}
        self._channels: set[DataChannelEndpoint] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    async def register(self, identifier: str) -> None:
        if self.identifier is not None:
            await self.unregister()

        try:
            ws = await websockets.connect(self.directory_url)
        except (OSError, WebSocketException) as e:
            raise IdentityRegistrationFailed(
                identifier, f"directory unreachable: {e}"
            ) from e

        try:
            await ws.send(
                serialize_directory_message(DirectoryMessageType.REGISTER, id=identifier)
            )
            raw = await asyncio.wait_for(ws.recv(), timeout=self.open_timeout)
            msg_type, data = deserialize_directory_message(raw)
        except (asyncio.TimeoutError, ConnectionClosed, ValueError) as e:
            await ws.close()
            raise IdentityRegistrationFailed(identifier, f"no reply: {e}") from e

        if msg_type != DirectoryMessageType.REGISTERED:
            await ws.close()
            raise IdentityRegistrationFailed(
                identifier, str(data.get("reason", "rejected"))
            )

        self._ws = ws
        self.identifier = identifier
        self._reader_task = asyncio.create_task(self._read_directory(ws))
        logger.info(f"Registered {identifier} with {self.directory_url}")

    async def unregister(self) -> None:
        if self.identifier is None:
            return
        identifier = self.identifier
        self.identifier = None
        ws, self._ws = self._ws, None

        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        for task in list(self._tasks):
            task.cancel()

        for channel in list(self._channels):
            channel.close()
        self._channels.clear()
        self._pending.clear()

        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException):
                pass
        logger.info(f"Unregistered {identifier}")

    def open_channel(self, remote_id: str) -> ChannelEndpoint:
        endpoint = self._track(DataChannelEndpoint(remote_id))
        self._spawn(self._negotiate_outbound(endpoint))
        return endpoint

    def _track(self, endpoint: DataChannelEndpoint) -> DataChannelEndpoint:
        self._channels.add(endpoint)
        endpoint.once("close", lambda: self._channels.discard(endpoint))
        return endpoint

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _create_peer_connection(self) -> RTCPeerConnection:
        if not self.ice_servers:
            return RTCPeerConnection()
        configuration = RTCConfiguration(
            iceServers=[RTCIceServer(urls=url) for url in self.ice_servers]
        )
        return RTCPeerConnection(configuration=configuration)

    async def _negotiate_outbound(self, endpoint: DataChannelEndpoint) -> None:
        remote_id = endpoint.remote_id
        opened = asyncio.Event()
        endpoint.once("open", opened.set)
        endpoint.once("close", opened.set)
        try:
            if self._ws is None:
                raise ChannelOpenFailed(remote_id, "not registered")

            pc = self._create_peer_connection()
            endpoint.bind_peer_connection(pc)
            endpoint.bind_data_channel(
                pc.createDataChannel(DATA_CHANNEL_LABEL, ordered=True)
            )

            offer = await pc.createOffer()
            await pc.setLocalDescription(offer)
            self._pending[remote_id] = endpoint
            await self._ws.send(
                serialize_directory_message(
                    DirectoryMessageType.OFFER,
                    target=remote_id,
                    sdp=pc.localDescription.sdp,
                )
            )

            await asyncio.wait_for(opened.wait(), timeout=self.open_timeout)
        except asyncio.TimeoutError:
            endpoint._fail(ChannelOpenFailed(remote_id, "timed out"))
            endpoint.close()
        except ChannelOpenFailed as e:
            endpoint._fail(e)
            endpoint.close()
        except (ConnectionClosed, OSError, ValueError) as e:
            endpoint._fail(ChannelOpenFailed(remote_id, str(e)))
            endpoint.close()
        finally:
            if self._pending.get(remote_id) is endpoint:
                del self._pending[remote_id]

    async def _read_directory(self, ws: Any) -> None:
        try:
            async for raw in ws:
                try:
                    msg_type, data = deserialize_directory_message(raw)
                except ValueError as e:
                    logger.warning(f"Ignoring malformed directory message: {e}")
                    continue
                await self._handle_directory_message(msg_type, data)
        except ConnectionClosed:
            pass

        if self._ws is ws:
            self._report_error(SessionError("Lost connection to directory"))

    async def _handle_directory_message(
        self, msg_type: DirectoryMessageType, data: dict[str, Any]
    ) -> None:
        if msg_type == DirectoryMessageType.OFFER:
            # Answering gathers ICE candidates; keep reading meanwhile
            self._spawn(self._accept_inbound(str(data["source"]), str(data["sdp"])))

        elif msg_type == DirectoryMessageType.ANSWER:
            source = str(data["source"])
            endpoint = self._pending.get(source)
            if endpoint is None or endpoint.peer_connection is None:
                logger.debug(f"Ignoring answer from {source} with no pending offer")
                return
            try:
                await endpoint.peer_connection.setRemoteDescription(
                    RTCSessionDescription(sdp=str(data["sdp"]), type="answer")
                )
            except ValueError as e:
                endpoint._fail(ChannelOpenFailed(source, f"bad answer: {e}"))
                endpoint.close()

        elif msg_type == DirectoryMessageType.REJECT:
            source = str(data["source"])
            endpoint = self._pending.pop(source, None)
            if endpoint is not None:
                endpoint._fail(ChannelOpenFailed(source, "not accepting guests"))
                endpoint.close()

        elif msg_type == DirectoryMessageType.ERROR:
            reason = data.get("reason")
            target = data.get("target")
            if reason == DirectoryError.UNKNOWN_TARGET.value and target:
                endpoint = self._pending.pop(str(target), None)
                if endpoint is not None:
                    endpoint._fail(ChannelOpenFailed(str(target), "unknown identifier"))
                    endpoint.close()
                    return
            self._report_error(SessionError(f"Directory error: {reason}"))

        else:
            logger.debug(f"Ignoring directory message {msg_type.value}")

    async def _accept_inbound(self, source: str, sdp: str) -> None:
        ws = self._ws
        if ws is None:
            return
        if not self.is_accepting:
            logger.info(f"Refusing channel from {source}: not accepting guests")
            try:
                await ws.send(
                    serialize_directory_message(
                        DirectoryMessageType.REJECT, target=source
                    )
                )
            except ConnectionClosed:
                pass
            return

        endpoint = self._track(DataChannelEndpoint(source))
        pc = self._create_peer_connection()
        endpoint.bind_peer_connection(pc)

        @pc.on("datachannel")
        def on_datachannel(channel: RTCDataChannel) -> None:
            endpoint.bind_data_channel(channel)

        try:
            await pc.setRemoteDescription(RTCSessionDescription(sdp=sdp, type="offer"))
            answer = await pc.createAnswer()
            await pc.setLocalDescription(answer)
            await ws.send(
                serialize_directory_message(
                    DirectoryMessageType.ANSWER,
                    target=source,
                    sdp=pc.localDescription.sdp,
                )
            )
        except (ConnectionClosed, OSError, ValueError) as e:
            logger.error(f"Failed to answer offer from {source}: {e}")
            endpoint.close()
            self._report_error(ChannelOpenFailed(source, str(e)))
            return

        if not self.is_accepting:
            # Hosting stopped while we were answering
            endpoint.close()
            return
        self.emit("connection", endpoint)
