"""Tunable session settings."""

from dataclasses import dataclass

from ..common.constants import (
    CHANNEL_OPEN_TIMEOUT,
    LEAVE_GRACE_PERIOD,
    SESSION_ID_LENGTH,
)


@dataclass
class SessionConfig:
    """Configuration for a RoleController and the transport beneath it."""

    # Seconds a leaving guest waits for its notice to flush before closing
    leave_grace_period: float = LEAVE_GRACE_PERIOD
    session_id_length: int = SESSION_ID_LENGTH
    channel_open_timeout: float = CHANNEL_OPEN_TIMEOUT
    # STUN/TURN urls for the WebRTC transport; empty means host candidates only
    ice_servers: tuple[str, ...] = ()
