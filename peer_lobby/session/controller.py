"""Role state machine: Unhosted -> Hosting | GuestOf(host) -> Unhosted."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, Callable

from ..common.errors import (
    ChannelOpenFailed,
    IdentityRegistrationFailed,
    InvalidRoleTransition,
)
from ..common.identity import generate_session_id, validate_session_id
from ..common.protocol import Envelope
from ..transport.channel import ChannelEndpoint
from ..transport.signaling import Signaling
from .config import SessionConfig
from .registry import SendResult
from .reset import ResetProtocol
from .router import MessageRouter
from .state import HOSTING, UNHOSTED, Role, SessionState

logger = logging.getLogger(__name__)

# Callbacks may be plain functions or coroutine functions
IdentifierCallback = Callable[[str], Any]
MessageCallback = Callable[[Envelope], Any]
ErrorCallback = Callable[[Exception], Any]


class RoleController:
    """Owns the session's role and identity and drives every transition.

    Example usage:
        controller = RoleController(signaling)

        @controller.on_message
        def on_message(envelope):
            print(envelope.sender, envelope.payload)

        await controller.initialize()
        controller.start_hosting()
    """

    def __init__(
        self, signaling: Signaling, config: SessionConfig | None = None
    ) -> None:
        self.signaling = signaling
        self.config = config or SessionConfig()
        self.state = SessionState()
        self.router = MessageRouter(self.state, self._on_envelope)
        self.reset = ResetProtocol(self.state, self.config.leave_grace_period)
        self._tasks: set[asyncio.Future[Any]] = set()

        # Event callbacks
        self._on_identity_ready_callbacks: list[IdentifierCallback] = []
        self._on_connected_as_guest_callbacks: list[IdentifierCallback] = []
        self._on_guest_connected_callbacks: list[IdentifierCallback] = []
        self._on_guest_disconnected_callbacks: list[IdentifierCallback] = []
        self._on_host_disconnected_callbacks: list[IdentifierCallback] = []
        self._on_message_callbacks: list[MessageCallback] = []
        self._on_connection_error_callbacks: list[ErrorCallback] = []

    # Event decorator methods

    def on_identity_ready(self, callback: IdentifierCallback) -> IdentifierCallback:
        """Decorator for a newly registered session identifier."""
        self._on_identity_ready_callbacks.append(callback)
        return callback

    def on_connected_as_guest(
        self, callback: IdentifierCallback
    ) -> IdentifierCallback:
        """Decorator for the guest channel opening (receives the host id)."""
        self._on_connected_as_guest_callbacks.append(callback)
        return callback

    def on_guest_connected(self, callback: IdentifierCallback) -> IdentifierCallback:
        """Decorator for a guest joining while hosting."""
        self._on_guest_connected_callbacks.append(callback)
        return callback

    def on_guest_disconnected(
        self, callback: IdentifierCallback
    ) -> IdentifierCallback:
        """Decorator for a guest's channel closing while hosting."""
        self._on_guest_disconnected_callbacks.append(callback)
        return callback

    def on_host_disconnected(
        self, callback: IdentifierCallback
    ) -> IdentifierCallback:
        """Decorator for the host's channel closing under a guest."""
        self._on_host_disconnected_callbacks.append(callback)
        return callback

    def on_message(self, callback: MessageCallback) -> MessageCallback:
        """Decorator for inbound payloads, delivered as Envelopes."""
        self._on_message_callbacks.append(callback)
        return callback

    def on_connection_error(self, callback: ErrorCallback) -> ErrorCallback:
        """Decorator for non-fatal signaling and channel failures."""
        self._on_connection_error_callbacks.append(callback)
        return callback

    # State

    @property
    def role(self) -> Role:
        return self.state.role

    @property
    def identifier(self) -> str | None:
        return self.state.identifier

    @property
    def guests(self) -> list[str]:
        return self.state.registry.remote_ids()

    # Commands

    async def initialize(self, identifier: str | None = None) -> str:
        """Release any current identity, register a fresh one, become Unhosted.

        Raises IdentityRegistrationFailed (also reported to connection-error
        callbacks) if the directory rejects the identifier.
        """
        if identifier is None:
            identifier = generate_session_id(self.config.session_id_length)
        else:
            validate_session_id(identifier)

        self._teardown()
        self.state.identifier = None
        # Watch before registering so errors after a failed attempt still surface
        self._watch_signaling_errors()
        await self.signaling.unregister()

        try:
            await self.signaling.register(identifier)
        except IdentityRegistrationFailed as e:
            logger.error(f"Identity registration failed: {e}")
            self._notify("connection_error", self._on_connection_error_callbacks, e)
            raise

        self.state.identifier = identifier
        logger.info(f"Identity ready: {identifier}")
        self._notify("identity_ready", self._on_identity_ready_callbacks, identifier)
        return identifier

    def start_hosting(self) -> None:
        """Become the host and accept guests. Re-entry drops existing guests."""
        if self.state.identifier is None:
            raise InvalidRoleTransition("No registered identity; initialize first")
        if self.state.role.is_hosting:
            logger.info(f"Restarting hosting, dropping {len(self.state.registry)} guests")

        self._teardown()
        self.state.role = HOSTING
        self._watch_signaling_errors()
        self.state.subscribe(
            self.signaling, "connection", self._guarded(self._on_inbound_channel)
        )
        logger.info(f"Hosting as {self.state.identifier}")

    def connect_to_host(self, host_id: str) -> None:
        """Start joining host_id as a guest. The previous host link is dropped."""
        if self.state.identifier is None:
            raise InvalidRoleTransition("No registered identity; initialize first")
        if self.state.role.is_hosting:
            raise InvalidRoleTransition("Cannot join a host while hosting")
        validate_session_id(host_id)
        if host_id == self.state.identifier:
            raise InvalidRoleTransition("Cannot join our own session")
        if self.state.guest_channel is not None:
            logger.info(f"Dropping link to {self.state.guest_channel.remote_id}")

        self._teardown()
        self._watch_signaling_errors()
        channel = self.signaling.open_channel(host_id)
        self.state.guest_channel = channel
        self.state.pending_host = host_id
        self._subscribe_guest_channel(channel, host_id)
        logger.info(f"Connecting to host {host_id}")

    def send_as_guest(self, payload: Any) -> None:
        """Send payload to the host. Raises NotConnected until connected."""
        self.router.send_as_guest(payload)

    def send_as_host(
        self, payload: Any, exclude: Iterable[str] = ()
    ) -> list[SendResult]:
        """Broadcast payload to all guests. Raises NotConnected unless hosting."""
        return self.router.send_as_host(payload, exclude=exclude)

    def relay(self, envelope: Envelope) -> list[SendResult]:
        """Forward a guest's message to the other guests, tagged with its sender."""
        return self.router.relay(envelope)

    async def leave(self, participant_name: str | None = None) -> str | None:
        """Run the leave handshake for the current role, then reinitialize.

        Returns the new identifier, or None if a newer session replaced this
        one while the handshake was waiting.
        """
        generation = self.state.generation
        logger.info(f"Leaving session as {self.state.role}")
        if not await self.reset.run(participant_name):
            return None
        if not self.state.is_current(generation):
            return None
        return await self.initialize()

    async def close(self) -> None:
        """Drop every link and release the identity without reinitializing."""
        self._teardown()
        self.state.identifier = None
        await self.signaling.unregister()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    # Internals

    def _teardown(self) -> None:
        """Revoke handlers, close every link and return to Unhosted."""
        state = self.state
        state.revoke_subscriptions()
        state.generation += 1

        channel, state.guest_channel = state.guest_channel, None
        state.pending_host = None
        if channel is not None:
            channel.close()
        for guest_channel in state.registry.clear():
            guest_channel.close()

        state.role = UNHOSTED

    def _guarded(self, handler: Callable[..., None]) -> Callable[..., None]:
        """Wrap handler so it does nothing once the session generation moves on."""
        generation = self.state.generation

        def guarded(*args: Any) -> None:
            if not self.state.is_current(generation):
                logger.debug(f"Ignoring stale event from generation {generation}")
                return
            handler(*args)

        return guarded

    def _watch_signaling_errors(self) -> None:
        self.state.subscribe(
            self.signaling, "error", self._guarded(self._on_signaling_error)
        )

    def _on_signaling_error(self, exc: Exception) -> None:
        logger.warning(f"Signaling error: {exc}")
        self._notify("connection_error", self._on_connection_error_callbacks, exc)

    # Host side

    def _on_inbound_channel(self, channel: ChannelEndpoint) -> None:
        state = self.state
        remote_id = channel.remote_id
        logger.debug(f"Inbound channel from {remote_id}")

        def on_open() -> None:
            previous = state.registry.get(remote_id)
            state.registry.add(remote_id, channel)
            if previous is not None and previous is not channel:
                # Reconnection: the new channel wins
                previous.close()
            logger.info(f"Guest {remote_id} connected ({len(state.registry)} total)")
            self._notify("guest_connected", self._on_guest_connected_callbacks, remote_id)

        def on_data(payload: Any) -> None:
            self.router.host_inbound(remote_id, payload)

        def on_close() -> None:
            if state.registry.remove(remote_id, channel):
                logger.info(f"Guest {remote_id} disconnected")
                self._notify(
                    "guest_disconnected", self._on_guest_disconnected_callbacks, remote_id
                )

        def on_error(exc: Exception) -> None:
            logger.warning(f"Channel error from guest {remote_id}: {exc}")
            removed = state.registry.remove(remote_id, channel)
            channel.close()
            self._notify("connection_error", self._on_connection_error_callbacks, exc)
            if removed:
                self._notify(
                    "guest_disconnected", self._on_guest_disconnected_callbacks, remote_id
                )

        state.subscribe(channel, "open", self._guarded(on_open))
        state.subscribe(channel, "data", self._guarded(on_data))
        state.subscribe(channel, "close", self._guarded(on_close))
        state.subscribe(channel, "error", self._guarded(on_error))
        if channel.is_open:
            self._guarded(on_open)()

    # Guest side

    def _subscribe_guest_channel(self, channel: ChannelEndpoint, host_id: str) -> None:
        state = self.state

        def on_open() -> None:
            state.role = Role.guest_of(host_id)
            state.pending_host = None
            logger.info(f"Connected to host {host_id}")
            self._notify(
                "connected_as_guest", self._on_connected_as_guest_callbacks, host_id
            )

        def on_data(payload: Any) -> None:
            self.router.guest_inbound(payload)

        def on_close() -> None:
            if state.guest_channel is not channel:
                return
            state.guest_channel = None
            if state.role.is_guest:
                logger.info(f"Host {host_id} disconnected")
                self._notify(
                    "host_disconnected", self._on_host_disconnected_callbacks, host_id
                )
            else:
                state.pending_host = None
                self._notify(
                    "connection_error",
                    self._on_connection_error_callbacks,
                    ChannelOpenFailed(host_id, "closed before opening"),
                )

        def on_error(exc: Exception) -> None:
            if state.role.is_guest:
                logger.warning(f"Channel error from host {host_id}: {exc}")
                self._notify("connection_error", self._on_connection_error_callbacks, exc)
                return
            # Failed before opening: drop the attempt and stay Unhosted
            if not isinstance(exc, ChannelOpenFailed):
                exc = ChannelOpenFailed(host_id, str(exc))
            logger.warning(f"Could not connect to host {host_id}: {exc}")
            self._teardown()
            self._watch_signaling_errors()
            self._notify("connection_error", self._on_connection_error_callbacks, exc)

        state.subscribe(channel, "open", self._guarded(on_open))
        state.subscribe(channel, "data", self._guarded(on_data))
        state.subscribe(channel, "close", self._guarded(on_close))
        state.subscribe(channel, "error", self._guarded(on_error))

    # Callback dispatch

    def _on_envelope(self, envelope: Envelope) -> None:
        self._notify("message", self._on_message_callbacks, envelope)

    def _notify(self, name: str, callbacks: list[Any], *args: Any) -> None:
        for callback in list(callbacks):
            try:
                result = callback(*args)
            except Exception as e:
                logger.error(f"Error in on_{name} callback: {e}", exc_info=True)
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._callback_done)

    def _callback_done(self, task: asyncio.Future[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Error in async callback: {exc}", exc_info=exc)
