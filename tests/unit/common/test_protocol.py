"""Tests for payload encoding, reset signals and directory messages."""

from __future__ import annotations

import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from peer_lobby.common.protocol import (
    ChatMessage,
    DirectoryMessageType,
    Envelope,
    ResetSignal,
    decode_payload,
    deserialize_directory_message,
    encode_payload,
    is_reset_signal,
    parse_chat_message,
    parse_reset_signal,
    serialize_chat_message,
    serialize_directory_message,
    serialize_reset_signal,
    unwrap_sender,
    wrap_with_sender,
)

json_values = st.recursive(
    st.none() | st.booleans() | st.integers() | st.text(),
    lambda children: st.lists(children, max_size=5)
    | st.dictionaries(st.text(max_size=10), children, max_size=5),
    max_leaves=20,
)


class TestPayloadEncoding:
    """Tests for encode_payload/decode_payload."""

    def test_compact(self) -> None:
        """Test encoding has no whitespace between tokens."""
        assert encode_payload({"type": "ping", "n": [1, 2]}) == '{"type":"ping","n":[1,2]}'

    def test_unicode_preserved(self) -> None:
        """Test non-ASCII text is not escaped."""
        assert encode_payload("プレイヤー") == '"プレイヤー"'

    def test_decode_bytes(self) -> None:
        """Test decoding accepts UTF-8 bytes."""
        assert decode_payload(b'{"a":1}') == {"a": 1}

    def test_decode_invalid(self) -> None:
        """Test malformed input raises ValueError."""
        with pytest.raises(ValueError):
            decode_payload("{not json")

    def test_unserializable(self) -> None:
        """Test payloads JSON cannot represent raise TypeError."""
        with pytest.raises(TypeError):
            encode_payload({"a": object()})

    @given(json_values)
    @settings(max_examples=50)
    def test_reencode_is_byte_identical(self, payload: object) -> None:
        """Property-based test: decode then encode reproduces the same text."""
        raw = encode_payload(payload)
        assert encode_payload(decode_payload(raw)) == raw


class TestResetSignal:
    """Tests for leave notices."""

    def test_guest_notice(self) -> None:
        """Test a guest notice carries the participant name."""
        payload = serialize_reset_signal(ResetSignal("alice"))
        assert payload == {"disconnection": "alice"}
        assert parse_reset_signal(payload) == ResetSignal("alice")

    def test_host_notice(self) -> None:
        """Test a host notice carries null."""
        payload = serialize_reset_signal(ResetSignal())
        assert payload == {"disconnection": None}
        signal = parse_reset_signal(payload)
        assert signal is not None
        assert signal.from_host

    def test_survives_wire(self) -> None:
        """Test a notice is still recognised after encoding."""
        raw = encode_payload(serialize_reset_signal(ResetSignal()))
        assert raw == '{"disconnection":null}'
        assert is_reset_signal(decode_payload(raw))

    @pytest.mark.parametrize(
        "payload", [{"type": "ping"}, {"disconnection": 5}, "disconnection", None, []]
    )
    def test_ordinary_messages(self, payload: object) -> None:
        """Test other payloads are not mistaken for notices."""
        assert not is_reset_signal(payload)
        assert parse_reset_signal(payload) is None


class TestSenderWrapping:
    """Tests for relayed payloads."""

    def test_wrap_unwrap(self) -> None:
        """Test a wrapped payload unwraps to an envelope."""
        wrapped = wrap_with_sender({"type": "ping"}, "g1")
        assert wrapped == {"from": "g1", "payload": {"type": "ping"}}
        assert unwrap_sender(wrapped) == Envelope({"type": "ping"}, "g1")

    def test_unwrapped_passthrough(self) -> None:
        """Test payloads without a sender pass through."""
        assert unwrap_sender({"type": "ping"}) == Envelope({"type": "ping"})

    def test_extra_keys_passthrough(self) -> None:
        """Test dicts with other keys are not treated as relayed."""
        payload = {"from": "g1", "payload": 1, "extra": True}
        assert unwrap_sender(payload) == Envelope(payload)


class TestChatMessage:
    """Tests for chat payloads."""

    def test_roundtrip(self) -> None:
        """Test chat messages survive serialization."""
        message = ChatMessage("alice", "hello")
        assert parse_chat_message(serialize_chat_message(message)) == message

    @pytest.mark.parametrize(
        "payload",
        [{"type": "ping"}, {"type": "chat", "name": 1, "text": "x"}, "chat", None],
    )
    def test_not_chat(self, payload: object) -> None:
        """Test other payloads are ignored."""
        assert parse_chat_message(payload) is None


class TestDirectoryMessages:
    """Tests for directory message serialization."""

    def test_roundtrip(self) -> None:
        """Test a message round-trips with its fields."""
        raw = serialize_directory_message(
            DirectoryMessageType.OFFER, target="host1", sdp="v=0"
        )
        assert json.loads(raw)["type"] == "offer"
        msg_type, data = deserialize_directory_message(raw)
        assert msg_type == DirectoryMessageType.OFFER
        assert data == {"target": "host1", "sdp": "v=0"}

    @pytest.mark.parametrize("raw", ["[]", '{"type": "bogus"}', "{}", "not json"])
    def test_malformed(self, raw: str) -> None:
        """Test malformed messages raise ValueError."""
        with pytest.raises(ValueError):
            deserialize_directory_message(raw)
