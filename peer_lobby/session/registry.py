"""Host-side set of live guest channels."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..common.errors import ChannelSendFailed

if TYPE_CHECKING:
    from ..transport.channel import ChannelEndpoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    """Outcome of sending to one guest during a broadcast."""

    remote_id: str
    error: ChannelSendFailed | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RegistrySnapshot:
    """Restartable view over registry entries.

    Each iteration reads the entries as they are when it starts. Order is
    unspecified.
    """

    def __init__(self, channels: dict[str, ChannelEndpoint]) -> None:
        self._channels = channels

    def __iter__(self) -> Iterator[tuple[str, ChannelEndpoint]]:
        yield from list(self._channels.items())

    def __len__(self) -> int:
        return len(self._channels)


class ConnectionRegistry:
    """Maps remote identifiers to open channels."""

    def __init__(self) -> None:
        self._channels: dict[str, ChannelEndpoint] = {}

    def add(self, remote_id: str, channel: ChannelEndpoint) -> None:
        """Insert or replace the channel for remote_id."""
        if remote_id in self._channels:
            logger.info(f"Replacing channel for {remote_id}")
        self._channels[remote_id] = channel

    def remove(self, remote_id: str, channel: ChannelEndpoint | None = None) -> bool:
        """Remove remote_id if present.

        When channel is given, only remove the entry if it is that channel,
        so a late close from a replaced channel leaves its successor alone.
        """
        current = self._channels.get(remote_id)
        if current is None or (channel is not None and current is not channel):
            return False
        del self._channels[remote_id]
        return True

    def get(self, remote_id: str) -> ChannelEndpoint | None:
        return self._channels.get(remote_id)

    def clear(self) -> list[ChannelEndpoint]:
        """Remove all entries and return their channels."""
        channels = list(self._channels.values())
        self._channels.clear()
        return channels

    def remote_ids(self) -> list[str]:
        return list(self._channels)

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(self._channels)

    def broadcast(
        self, payload: Any, exclude: Iterable[str] = ()
    ) -> list[SendResult]:
        """Send payload to every entry independently.

        A failed send is recorded in its SendResult and never stops the
        remaining sends.
        """
        skip = set(exclude)
        results: list[SendResult] = []
        for remote_id, channel in self.snapshot():
            if remote_id in skip:
                continue
            try:
                channel.send(payload)
            except ChannelSendFailed as e:
                logger.warning(f"Broadcast to {remote_id} failed: {e}")
                results.append(SendResult(remote_id, e))
            else:
                results.append(SendResult(remote_id))
        return results

    def __contains__(self, remote_id: object) -> bool:
        return remote_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)
