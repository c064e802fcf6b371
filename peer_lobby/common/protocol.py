"""Wire formats for data channel payloads and directory signaling."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any

from .constants import DISCONNECTION_KEY, PAYLOAD_KEY, SENDER_KEY


@dataclass(frozen=True)
class Envelope:
    """An inbound application payload plus the identifier it came from."""

    payload: Any
    sender: str | None = None


@dataclass(frozen=True)
class ResetSignal:
    """A leave notice. participant is None when the host is leaving."""

    participant: str | None = None

    @property
    def from_host(self) -> bool:
        return self.participant is None


# Data channel payloads: compact JSON text. Decoding and re-encoding a
# payload yields identical bytes, so relayed messages are unchanged.
def encode_payload(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def decode_payload(raw: str | bytes) -> Any:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw)


# RESET: {"disconnection": name} guest -> host, {"disconnection": null} host -> guests
def serialize_reset_signal(signal: ResetSignal) -> dict[str, str | None]:
    return {DISCONNECTION_KEY: signal.participant}


def is_reset_signal(payload: Any) -> bool:
    """Check if payload is a leave notice from the other side."""
    if not isinstance(payload, dict) or DISCONNECTION_KEY not in payload:
        return False
    participant = payload[DISCONNECTION_KEY]
    return participant is None or isinstance(participant, str)


def parse_reset_signal(payload: Any) -> ResetSignal | None:
    """Return the ResetSignal carried by payload, or None for ordinary messages."""
    if not is_reset_signal(payload):
        return None
    return ResetSignal(participant=payload[DISCONNECTION_KEY])


# RELAY: host attaches the original sender when fanning a guest message out
def wrap_with_sender(payload: Any, sender: str) -> dict[str, Any]:
    return {SENDER_KEY: sender, PAYLOAD_KEY: payload}


def unwrap_sender(payload: Any) -> Envelope:
    """Split a relayed payload into an Envelope; other payloads pass through."""
    if (
        isinstance(payload, dict)
        and set(payload) == {SENDER_KEY, PAYLOAD_KEY}
        and isinstance(payload[SENDER_KEY], str)
    ):
        return Envelope(payload=payload[PAYLOAD_KEY], sender=payload[SENDER_KEY])
    return Envelope(payload=payload)


class DirectoryMessageType(str, enum.Enum):
    REGISTER = "register"  # Peer -> Directory: claim an identifier
    REGISTERED = "registered"  # Directory -> Peer: identifier claimed
    OFFER = "offer"  # Peer -> Directory -> Peer: SDP offer
    ANSWER = "answer"  # Peer -> Directory -> Peer: SDP answer
    REJECT = "reject"  # Peer -> Directory -> Peer: offer refused, not hosting
    ERROR = "error"  # Directory -> Peer: request rejected


class DirectoryError(str, enum.Enum):
    ID_TAKEN = "id-taken"
    INVALID_ID = "invalid-id"
    UNKNOWN_TARGET = "unknown-target"
    NOT_REGISTERED = "not-registered"
    BAD_REQUEST = "bad-request"


def serialize_directory_message(msg_type: DirectoryMessageType, **fields: Any) -> str:
    return json.dumps({"type": msg_type.value, **fields})


def deserialize_directory_message(
    raw: str | bytes,
) -> tuple[DirectoryMessageType, dict[str, Any]]:
    """Parse a directory message. Raises ValueError on malformed input."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Directory message must be a JSON object")
    msg_type = DirectoryMessageType(data.pop("type", None))
    return msg_type, data


@dataclass(frozen=True)
class ChatMessage:
    name: str
    text: str


# CHAT: {"type": "chat", "name": name, "text": text}
def serialize_chat_message(message: ChatMessage) -> dict[str, str]:
    return {"type": "chat", "name": message.name, "text": message.text}


def parse_chat_message(payload: Any) -> ChatMessage | None:
    if not isinstance(payload, dict) or payload.get("type") != "chat":
        return None
    name = payload.get("name")
    text = payload.get("text")
    if not isinstance(name, str) or not isinstance(text, str):
        return None
    return ChatMessage(name=name, text=text)
