"""Error taxonomy for session coordination.

None of these are fatal to the process. They are either raised to the
direct caller of a command or surfaced through the controller's
connection-error callbacks.
"""

from __future__ import annotations


class SessionError(Exception):
    """Base class for all session coordination errors."""


class InvalidSessionId(SessionError, ValueError):
    """A session identifier has the wrong length or alphabet."""


class IdentityRegistrationFailed(SessionError):
    """The directory rejected an identifier (e.g. it is already taken)."""

    def __init__(self, identifier: str, reason: str = "rejected") -> None:
        super().__init__(f"Could not register '{identifier}': {reason}")
        self.identifier = identifier
        self.reason = reason


class ChannelOpenFailed(SessionError):
    """A channel to a remote participant could not be opened."""

    def __init__(self, remote_id: str, reason: str = "failed") -> None:
        super().__init__(f"Could not open channel to '{remote_id}': {reason}")
        self.remote_id = remote_id
        self.reason = reason


class ChannelSendFailed(SessionError):
    """Sending on a single channel failed."""

    def __init__(self, remote_id: str, reason: str = "failed") -> None:
        super().__init__(f"Could not send to '{remote_id}': {reason}")
        self.remote_id = remote_id
        self.reason = reason


class NotConnected(SessionError):
    """A send was attempted with no open channel for the current role."""


class InvalidRoleTransition(SessionError):
    """A role command was issued in a state that does not allow it."""
