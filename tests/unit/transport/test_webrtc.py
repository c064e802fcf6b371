"""Tests for directory message handling in WebRTC signaling.

No peer connections are negotiated here; the directory socket is scripted.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator

import pytest

from peer_lobby.common.errors import ChannelOpenFailed
from peer_lobby.common.protocol import deserialize_directory_message
from peer_lobby.transport.webrtc import DataChannelEndpoint, WebRTCSignaling


class ScriptedDirectory:
    """Directory socket stand-in that yields scripted frames and records sends."""

    def __init__(self, incoming: list[dict[str, Any]] | None = None) -> None:
        self.incoming = [json.dumps(m) for m in incoming or []]
        self.sent: list[dict[str, Any]] = []

    async def send(self, raw: str) -> None:
        self.sent.append(json.loads(raw))

    def __aiter__(self) -> AsyncIterator[str]:
        return self._frames()

    async def _frames(self) -> AsyncIterator[str]:
        for raw in self.incoming:
            yield raw


def pending_endpoint(
    signaling: WebRTCSignaling, remote_id: str
) -> tuple[DataChannelEndpoint, list[Exception]]:
    endpoint = signaling._track(DataChannelEndpoint(remote_id))
    signaling._pending[remote_id] = endpoint
    errors: list[Exception] = []
    endpoint.on("error", errors.append)
    return endpoint, errors


def parse(message: dict[str, Any]) -> Any:
    return deserialize_directory_message(json.dumps(message))


async def cancel_tasks(signaling: WebRTCSignaling) -> None:
    tasks = list(signaling._tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


class TestDirectoryReader:
    """Tests for the directory read loop."""

    @pytest.mark.asyncio
    async def test_offer_does_not_stall_reader(self) -> None:
        """Test messages after an offer are handled while the answer is pending."""
        signaling = WebRTCSignaling("ws://unused")
        stuck = asyncio.Event()
        answering: list[str] = []

        async def slow_accept(source: str, sdp: str) -> None:
            answering.append(source)
            await stuck.wait()

        signaling._accept_inbound = slow_accept  # type: ignore[method-assign]
        endpoint, errors = pending_endpoint(signaling, "gamma")
        ws = ScriptedDirectory(
            [
                {"type": "offer", "source": "beta", "sdp": "v=0"},
                {"type": "reject", "source": "gamma"},
            ]
        )

        await asyncio.wait_for(signaling._read_directory(ws), timeout=1.0)
        await asyncio.sleep(0)

        assert answering == ["beta"]
        assert len(signaling._tasks) == 1
        assert endpoint.is_closed
        assert len(errors) == 1
        await cancel_tasks(signaling)


class TestRefusal:
    """Tests for offers to and from peers that are not hosting."""

    @pytest.mark.asyncio
    async def test_reject_fails_pending_offer(self) -> None:
        """Test a refusal fails the outbound channel awaiting that peer."""
        signaling = WebRTCSignaling("ws://unused")
        endpoint, errors = pending_endpoint(signaling, "beta")
        closed: list[bool] = []
        endpoint.on("close", lambda: closed.append(True))

        await signaling._handle_directory_message(
            *parse({"type": "reject", "source": "beta"})
        )

        assert closed == [True]
        assert not endpoint.is_open
        assert "beta" not in signaling._pending
        assert len(errors) == 1
        assert isinstance(errors[0], ChannelOpenFailed)
        assert errors[0].reason == "not accepting guests"

    @pytest.mark.asyncio
    async def test_stray_reject_ignored(self) -> None:
        """Test a refusal with no matching offer changes nothing."""
        signaling = WebRTCSignaling("ws://unused")
        endpoint, errors = pending_endpoint(signaling, "beta")

        await signaling._handle_directory_message(
            *parse({"type": "reject", "source": "gamma"})
        )

        assert not endpoint.is_closed
        assert signaling._pending == {"beta": endpoint}
        assert errors == []

    @pytest.mark.asyncio
    async def test_offer_refused_when_not_accepting(self) -> None:
        """Test an offer is refused when nothing accepts inbound channels."""
        signaling = WebRTCSignaling("ws://unused")
        ws = ScriptedDirectory()
        signaling._ws = ws

        await signaling._accept_inbound("beta", "v=0")

        assert ws.sent == [{"type": "reject", "target": "beta"}]
        assert signaling._channels == set()

    @pytest.mark.asyncio
    async def test_offer_after_unregister_dropped(self) -> None:
        """Test an offer arriving without a directory link is dropped."""
        signaling = WebRTCSignaling("ws://unused")
        signaling.on("connection", lambda endpoint: None)

        await signaling._accept_inbound("beta", "v=0")

        assert signaling._channels == set()
