"""Shared fixtures for peer-lobby tests."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from peer_lobby.common.protocol import Envelope
from peer_lobby.session.config import SessionConfig
from peer_lobby.session.controller import RoleController
from peer_lobby.transport.channel import ChannelEndpoint
from peer_lobby.transport.local import LocalDirectory

# Short grace period so leave tests stay fast
TEST_GRACE_PERIOD = 0.05


class FakeChannel(ChannelEndpoint):
    """In-memory channel that records what was sent."""

    def __init__(self, remote_id: str, opened: bool = True) -> None:
        super().__init__(remote_id)
        self.sent: list[str] = []
        self.fail_sends = False
        self.shutdown_calls = 0
        if opened:
            self._mark_open()

    def _transmit(self, raw: str) -> None:
        if self.fail_sends:
            raise ConnectionError("transport gone")
        self.sent.append(raw)

    def _shutdown(self) -> None:
        self.shutdown_calls += 1

    # Test hooks for simulating remote events
    def open(self) -> None:
        self._mark_open()

    def receive(self, raw: str) -> None:
        self._deliver(raw)

    def remote_close(self) -> None:
        self._mark_closed()

    def fail(self, exc: Exception) -> None:
        self._fail(exc)


class Recorder:
    """Collects every controller callback in order."""

    def __init__(self, controller: RoleController) -> None:
        self.events: list[tuple[str, Any]] = []
        controller.on_identity_ready(lambda i: self.events.append(("identity_ready", i)))
        controller.on_connected_as_guest(
            lambda h: self.events.append(("connected_as_guest", h))
        )
        controller.on_guest_connected(lambda r: self.events.append(("guest_connected", r)))
        controller.on_guest_disconnected(
            lambda r: self.events.append(("guest_disconnected", r))
        )
        controller.on_host_disconnected(
            lambda h: self.events.append(("host_disconnected", h))
        )
        controller.on_message(lambda e: self.events.append(("message", e)))
        controller.on_connection_error(
            lambda e: self.events.append(("connection_error", e))
        )

    def of(self, name: str) -> list[Any]:
        return [value for event, value in self.events if event == name]

    @property
    def messages(self) -> list[Envelope]:
        return self.of("message")

    @property
    def payloads(self) -> list[Any]:
        return [envelope.payload for envelope in self.messages]


async def settle(rounds: int = 10) -> None:
    """Let call_soon-scheduled channel events run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def directory() -> LocalDirectory:
    """Create an in-process rendezvous directory."""
    return LocalDirectory()


@pytest.fixture
def make_controller(
    directory: LocalDirectory,
) -> Callable[[], tuple[RoleController, Recorder]]:
    """Factory for controllers sharing one directory, each with a recorder."""

    def factory() -> tuple[RoleController, Recorder]:
        controller = RoleController(
            directory.create_signaling(),
            SessionConfig(leave_grace_period=TEST_GRACE_PERIOD),
        )
        return controller, Recorder(controller)

    return factory
