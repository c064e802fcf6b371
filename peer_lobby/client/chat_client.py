"""Chat client: the UI side of a session, driving a RoleController."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from ..common.errors import InvalidRoleTransition, InvalidSessionId, NotConnected
from ..common.protocol import (
    ChatMessage,
    Envelope,
    parse_chat_message,
    parse_reset_signal,
    serialize_chat_message,
    unwrap_sender,
)
from ..session.controller import RoleController
from ..session.state import Role
from .input_handler import HELP_TEXT, Command, apply_key, parse_line

if TYPE_CHECKING:
    from .terminal_ui import TerminalUI

logger = logging.getLogger(__name__)

MAX_LOG_LINES = 500


class ChatClient:
    def __init__(self, controller: RoleController, name: str) -> None:
        self.controller = controller
        self.name = name
        self.log: list[str] = []
        self.running = False
        self._input_buffer = ""
        self._leaving = False
        self._tasks: set[asyncio.Task[Any]] = set()
        self._register_callbacks()

    def _register_callbacks(self) -> None:
        controller = self.controller

        @controller.on_identity_ready
        def on_identity_ready(identifier: str) -> None:
            self.show(f"* Your session id is {identifier}")

        @controller.on_connected_as_guest
        def on_connected_as_guest(host_id: str) -> None:
            self.show(f"* Connected to {host_id}")

        @controller.on_guest_connected
        def on_guest_connected(remote_id: str) -> None:
            self.show(f"* {remote_id} joined")

        @controller.on_guest_disconnected
        def on_guest_disconnected(remote_id: str) -> None:
            self.show(f"* {remote_id} disconnected")

        @controller.on_host_disconnected
        def on_host_disconnected(host_id: str) -> None:
            self.show(f"* Lost connection to {host_id}")
            self._spawn(self._drop_host(host_id))

        @controller.on_message
        def on_message(envelope: Envelope) -> None:
            self.handle_message(envelope)

        @controller.on_connection_error
        def on_connection_error(exc: Exception) -> None:
            self.show(f"! {exc}")

    def show(self, line: str) -> None:
        stamp = time.strftime("%H:%M:%S")
        self.log.append(f"{stamp} {line}")
        del self.log[:-MAX_LOG_LINES]

    def handle_message(self, envelope: Envelope) -> None:
        """Handle an inbound payload from the host or a guest."""
        signal = parse_reset_signal(envelope.payload)
        if signal is not None:
            if signal.from_host:
                self.show("* The host ended the session")
                if envelope.sender is not None:
                    self._spawn(self._drop_host(envelope.sender))
            else:
                self.show(f"* {signal.participant} left")
            return

        if self.controller.role.is_guest:
            # A relaying host wraps each message with its original sender
            relayed = unwrap_sender(envelope.payload)
            if relayed.sender is not None:
                envelope = relayed

        chat = parse_chat_message(envelope.payload)
        if chat is None:
            logger.debug(f"Ignoring unknown payload from {envelope.sender}")
            return
        self.show(f"<{chat.name}> {chat.text}")

        # Host fans guest messages out to everyone else unchanged
        if self.controller.role.is_hosting and envelope.sender is not None:
            self.controller.send_as_host(envelope.payload, exclude=(envelope.sender,))

    def say(self, text: str) -> None:
        if not text:
            return
        payload = serialize_chat_message(ChatMessage(name=self.name, text=text))
        role = self.controller.role
        try:
            if role.is_hosting:
                self.controller.send_as_host(payload)
            else:
                self.controller.send_as_guest(payload)
        except NotConnected:
            if self.controller.state.is_pending_guest:
                self.show("! Still connecting, wait for the host")
            else:
                self.show("! Not in a session: /host or /join <id>")
            return
        self.show(f"<{self.name}> {text}")

    async def leave(self, announce: bool = True) -> None:
        if self._leaving:
            return
        self._leaving = True
        try:
            # Only a guest that actually joined announces its name
            name = self.name if announce and self.controller.role.is_guest else None
            await self.controller.leave(name)
        finally:
            self._leaving = False

    async def _drop_host(self, host_id: str) -> None:
        # A host notice and the channel closing both land here; act once
        if self.controller.role != Role.guest_of(host_id):
            return
        await self.leave(announce=False)

    async def handle_line(self, line: str) -> None:
        command, arg = parse_line(line)
        try:
            if command == Command.SAY:
                self.say(arg)
            elif command == Command.HOST:
                self.controller.start_hosting()
                self.show(f"* Hosting. Guests join with: /join {self.controller.identifier}")
            elif command == Command.JOIN:
                if not arg:
                    self.show("! Usage: /join <session id>")
                    return
                self.controller.connect_to_host(arg)
                self.show(f"* Connecting to {arg}...")
            elif command == Command.LEAVE:
                await self.leave()
            elif command == Command.QUIT:
                self.running = False
            elif command == Command.HELP:
                self.show(HELP_TEXT)
            else:
                self.show(f"! Unknown command: {line.split()[0]}")
        except (InvalidRoleTransition, InvalidSessionId) as e:
            self.show(f"! {e}")

    async def start(self, host: bool = False, join: str | None = None) -> None:
        """Register an identity and optionally start hosting or joining."""
        await self.controller.initialize()
        if host:
            await self.handle_line("/host")
        elif join:
            await self.handle_line(f"/join {join}")

    async def run(self, ui: TerminalUI) -> None:
        """Main client loop."""
        self.running = True
        term = ui.term
        try:
            with term.fullscreen(), term.cbreak(), term.hidden_cursor():
                while self.running:
                    # Drain all pending input
                    while True:
                        key = term.inkey(timeout=0)
                        if not key:
                            break
                        self._input_buffer, line = apply_key(self._input_buffer, key)
                        if line is not None:
                            await self.handle_line(line)
                    self._render(ui)
                    # Sleep to target ~30fps and let async tasks run
                    await asyncio.sleep(0.033)
        finally:
            self.running = False
            await self.shutdown()
            ui.cleanup()

    async def shutdown(self) -> None:
        """Say goodbye to the other side and release the identity."""
        role = self.controller.role
        if role.is_hosting:
            self.controller.reset.notify_guests()
        elif role.is_guest:
            await self.controller.reset.run(self.name)
        await self.controller.close()
        for task in list(self._tasks):
            task.cancel()

    def _render(self, ui: TerminalUI) -> None:
        ui.render(
            self.controller.role,
            self.controller.identifier,
            self.controller.guests,
            self.log,
            self._input_buffer,
        )

    def _spawn(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
