"""In-process signaling for tests, examples and single-process sessions.

Channels are paired in memory and every event is delivered with
loop.call_soon, so events arrive one at a time, after the call that caused
them returns, and in FIFO order per channel.
"""

from __future__ import annotations

import asyncio
import logging

from ..common.errors import (
    ChannelOpenFailed,
    ChannelSendFailed,
    IdentityRegistrationFailed,
)
from .channel import ChannelEndpoint
from .signaling import Signaling

logger = logging.getLogger(__name__)


class LocalChannel(ChannelEndpoint):
    def __init__(self, remote_id: str, loop: asyncio.AbstractEventLoop) -> None:
        super().__init__(remote_id)
        self._loop = loop
        self.peer: LocalChannel | None = None

    def _transmit(self, raw: str) -> None:
        if self.peer is None:
            raise ChannelSendFailed(self.remote_id, "channel is not paired")
        self._loop.call_soon(self.peer._deliver, raw)

    def _shutdown(self) -> None:
        if self.peer is not None:
            self._loop.call_soon(self.peer._mark_closed)


class LocalDirectory:
    """Maps registered identifiers to their LocalSignaling."""

    def __init__(self) -> None:
        self._peers: dict[str, LocalSignaling] = {}

    def create_signaling(self) -> LocalSignaling:
        return LocalSignaling(self)

    def lookup(self, identifier: str) -> LocalSignaling | None:
        return self._peers.get(identifier)

    def registered_ids(self) -> set[str]:
        return set(self._peers)

    def _register(self, identifier: str, signaling: LocalSignaling) -> None:
        existing = self._peers.get(identifier)
        if existing is not None and existing is not signaling:
            raise IdentityRegistrationFailed(identifier, "identifier already taken")
        self._peers[identifier] = signaling

    def _unregister(self, identifier: str, signaling: LocalSignaling) -> None:
        if self._peers.get(identifier) is signaling:
            del self._peers[identifier]


class LocalSignaling(Signaling):
    def __init__(self, directory: LocalDirectory) -> None:
        super().__init__()
        self.directory = directory
        self._channels: set[LocalChannel] = set()

    async def register(self, identifier: str) -> None:
        if self.identifier is not None:
            await self.unregister()
        self.directory._register(identifier, self)
        self.identifier = identifier
        logger.debug(f"Registered {identifier}")

    async def unregister(self) -> None:
        if self.identifier is None:
            return
        identifier = self.identifier
        self.directory._unregister(identifier, self)
        self.identifier = None
        # Releasing the identity tears down every channel it brokered
        for channel in list(self._channels):
            channel.close()
        self._channels.clear()
        logger.debug(f"Unregistered {identifier}")

    def open_channel(self, remote_id: str) -> ChannelEndpoint:
        loop = asyncio.get_running_loop()
        channel = self._track(LocalChannel(remote_id, loop))
        loop.call_soon(self._connect, channel, loop)
        return channel

    def _track(self, channel: LocalChannel) -> LocalChannel:
        self._channels.add(channel)
        channel.once("close", lambda: self._channels.discard(channel))
        return channel

    def _connect(self, channel: LocalChannel, loop: asyncio.AbstractEventLoop) -> None:
        if channel.is_closed:
            return
        if self.identifier is None:
            channel._fail(ChannelOpenFailed(channel.remote_id, "not registered"))
            return
        remote = self.directory.lookup(channel.remote_id)
        if remote is None:
            channel._fail(ChannelOpenFailed(channel.remote_id, "unknown identifier"))
            return
        if not remote.is_accepting:
            channel._fail(ChannelOpenFailed(channel.remote_id, "not accepting guests"))
            return
        remote_end = remote._track(LocalChannel(self.identifier, loop))
        channel.peer = remote_end
        remote_end.peer = channel
        remote.emit("connection", remote_end)
        loop.call_soon(remote_end._mark_open)
        loop.call_soon(channel._mark_open)
