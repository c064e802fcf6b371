"""Moves payloads across the host/guest boundary."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Callable

from ..common.errors import ChannelSendFailed, NotConnected
from ..common.protocol import Envelope, wrap_with_sender
from .registry import SendResult
from .state import SessionState

logger = logging.getLogger(__name__)


class MessageRouter:
    def __init__(
        self, state: SessionState, deliver: Callable[[Envelope], None]
    ) -> None:
        self.state = state
        self._deliver = deliver

    def send_as_guest(self, payload: Any) -> None:
        """Send payload unchanged to the host. Raises NotConnected."""
        channel = self.state.guest_channel
        if not self.state.role.is_guest or channel is None or not channel.is_open:
            raise NotConnected("Not connected to a host")
        try:
            channel.send(payload)
        except ChannelSendFailed as e:
            raise NotConnected(str(e)) from e

    def send_as_host(
        self, payload: Any, exclude: Iterable[str] = ()
    ) -> list[SendResult]:
        """Broadcast payload to every connected guest. Raises NotConnected."""
        if not self.state.role.is_hosting:
            raise NotConnected("Not hosting")
        return self.state.registry.broadcast(payload, exclude=exclude)

    def relay(self, envelope: Envelope) -> list[SendResult]:
        """Forward a guest's payload to every other guest, tagged with its sender."""
        if envelope.sender is None:
            return self.send_as_host(envelope.payload)
        return self.send_as_host(
            wrap_with_sender(envelope.payload, envelope.sender),
            exclude=(envelope.sender,),
        )

    def host_inbound(self, remote_id: str, payload: Any) -> None:
        self._deliver(Envelope(payload=payload, sender=remote_id))

    def guest_inbound(self, payload: Any) -> None:
        self._deliver(Envelope(payload=payload, sender=self.state.role.host_id))
