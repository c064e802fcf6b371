"""Explicit session state owned by the role controller."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from .registry import ConnectionRegistry

if TYPE_CHECKING:
    from pyee.base import EventEmitter

    from ..transport.channel import ChannelEndpoint


class RoleKind(enum.Enum):
    UNHOSTED = "unhosted"
    HOSTING = "hosting"
    GUEST = "guest"


@dataclass(frozen=True)
class Role:
    """Exactly one of Unhosted, Hosting or GuestOf(host_id)."""

    kind: RoleKind
    host_id: str | None = None

    @classmethod
    def guest_of(cls, host_id: str) -> Role:
        return cls(RoleKind.GUEST, host_id)

    @property
    def is_unhosted(self) -> bool:
        return self.kind is RoleKind.UNHOSTED

    @property
    def is_hosting(self) -> bool:
        return self.kind is RoleKind.HOSTING

    @property
    def is_guest(self) -> bool:
        return self.kind is RoleKind.GUEST

    def __str__(self) -> str:
        if self.kind is RoleKind.GUEST:
            return f"GuestOf({self.host_id})"
        return self.kind.value.capitalize()


UNHOSTED = Role(RoleKind.UNHOSTED)
HOSTING = Role(RoleKind.HOSTING)


class Subscription:
    """A revocable event listener registration."""

    def __init__(
        self, emitter: EventEmitter, event: str, handler: Callable[..., Any]
    ) -> None:
        self.emitter = emitter
        self.event = event
        self.handler = handler
        self.active = True
        emitter.add_listener(event, handler)

    def revoke(self) -> None:
        if not self.active:
            return
        self.active = False
        try:
            self.emitter.remove_listener(self.event, self.handler)
        except KeyError:
            pass


@dataclass
class SessionState:
    """Everything that belongs to the current session.

    generation is bumped on every teardown; event handlers capture it when
    installed and ignore events once it has moved on.
    """

    identifier: str | None = None
    role: Role = UNHOSTED
    generation: int = 0
    registry: ConnectionRegistry = field(default_factory=ConnectionRegistry)
    guest_channel: ChannelEndpoint | None = None
    pending_host: str | None = None
    subscriptions: list[Subscription] = field(default_factory=list)

    @property
    def is_pending_guest(self) -> bool:
        return self.role.is_unhosted and self.pending_host is not None

    def is_current(self, generation: int) -> bool:
        return self.generation == generation

    def subscribe(
        self, emitter: EventEmitter, event: str, handler: Callable[..., Any]
    ) -> Subscription:
        subscription = Subscription(emitter, event, handler)
        self.subscriptions.append(subscription)
        return subscription

    def revoke_subscriptions(self) -> None:
        for subscription in self.subscriptions:
            subscription.revoke()
        self.subscriptions.clear()
