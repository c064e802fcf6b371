"""Leave handshake: tell the other side before discarding session state.

A guest with a known name sends {"disconnection": name} to the host and
waits a grace period before closing, because some transports drop data
still in flight when a channel closes immediately. A host broadcasts
{"disconnection": null} to every guest and does not wait.
"""

from __future__ import annotations

import asyncio
import logging

from ..common.constants import LEAVE_GRACE_PERIOD
from ..common.errors import ChannelSendFailed
from ..common.protocol import ResetSignal, serialize_reset_signal
from .registry import SendResult
from .state import SessionState

logger = logging.getLogger(__name__)


class ResetProtocol:
    def __init__(
        self, state: SessionState, grace_period: float = LEAVE_GRACE_PERIOD
    ) -> None:
        self.state = state
        self.grace_period = grace_period

    async def run(self, participant_name: str | None = None) -> bool:
        """Notify the other side according to the current role.

        Returns False if the session was superseded while waiting, in which
        case nothing was closed and the caller must not reinitialize.
        """
        role = self.state.role
        if role.is_hosting:
            self.notify_guests()
            return True
        if role.is_guest or self.state.is_pending_guest:
            return await self._leave_host(participant_name)
        return True

    def notify_guests(self) -> list[SendResult]:
        """Best-effort disconnect notice to every guest."""
        notice = serialize_reset_signal(ResetSignal(participant=None))
        results = self.state.registry.broadcast(notice)
        failed = [r.remote_id for r in results if not r.ok]
        logger.info(
            f"Sent disconnect notice to {len(results) - len(failed)} guests"
            + (f", failed for {', '.join(failed)}" if failed else "")
        )
        return results

    async def _leave_host(self, participant_name: str | None) -> bool:
        channel = self.state.guest_channel
        if channel is None:
            return True

        if participant_name and channel.is_open:
            generation = self.state.generation
            try:
                channel.send(serialize_reset_signal(ResetSignal(participant_name)))
            except ChannelSendFailed as e:
                logger.warning(f"Could not notify host of leave: {e}")
            else:
                await asyncio.sleep(self.grace_period)
            if not self.state.is_current(generation):
                logger.debug("Session superseded during leave grace period")
                return False
            # The host may have closed the channel meanwhile; still finish

        # Detach first so our own close is not reported as the host vanishing
        self.state.revoke_subscriptions()
        self.state.guest_channel = None
        self.state.pending_host = None
        channel.close()
        return True
