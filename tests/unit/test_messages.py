"""Unit tests for sidelink.messages module."""

import pytest

from sidelink.errors import MessageDecodeError
from sidelink.messages import (
    DiscoveryMessage,
    MsgType,
    SignallingMessage,
    decode_message,
    message_name,
)


class TestDiscoveryMessage:
    """Test discovery message encoding."""

    def test_encoded_size(self):
        """Test discovery message wire size."""
        message = DiscoveryMessage(msg_type=MsgType.RELAY_ANNOUNCEMENT, code=100, sender_id=1)
        assert len(message.encode()) == 13

    def test_decode_response_keeps_target(self):
        """Test decoding a response keeps the target remote."""
        message = DiscoveryMessage(msg_type=MsgType.RELAY_RESPONSE, code=100, sender_id=1, target_id=3)
        decoded = decode_message(message.encode())
        assert isinstance(decoded, DiscoveryMessage)
        assert decoded.target_id == 3
        assert decoded == message

    def test_name(self):
        """Test message type names."""
        message = DiscoveryMessage(msg_type=MsgType.RELAY_SOLICITATION, code=100, sender_id=3)
        assert message.name == "RelaySolicitation"

    def test_signalling_type_rejected(self):
        """Test discovery message with a signalling type."""
        message = DiscoveryMessage(msg_type=MsgType.RELEASE_REQUEST, code=100, sender_id=3)
        with pytest.raises(ValueError, match="not a discovery message type"):
            message.encode()


class TestSignallingMessage:
    """Test PC5 signalling message encoding."""

    def test_encoded_size(self):
        """Test signalling message wire size."""
        message = SignallingMessage(MsgType.ESTABLISHMENT_REQUEST, 3, 1, 100, 7)
        assert len(message.encode()) == 15

    def test_decode(self):
        """Test decoding a signalling message."""
        message = SignallingMessage(MsgType.RELEASE_ACCEPT, 3, 1, 0, 65535)
        assert decode_message(message.encode()) == message

    def test_reply_swaps_peers_and_keeps_sequence(self):
        """Test reply addressing and sequence."""
        request = SignallingMessage(MsgType.ESTABLISHMENT_REQUEST, 3, 1, 100, 7)
        reply = request.reply(MsgType.ESTABLISHMENT_ACCEPT)
        assert reply.sender_id == 1
        assert reply.receiver_id == 3
        assert reply.service_code == 100
        assert reply.sequence == 7
        assert reply.name == "DirectLinkEstablishmentAccept"

    def test_discovery_type_rejected(self):
        """Test signalling message with a discovery type."""
        message = SignallingMessage(MsgType.RELAY_ANNOUNCEMENT, 3, 1, 100, 7)
        with pytest.raises(ValueError, match="not a signalling message type"):
            message.encode()


class TestDecodeErrors:
    """Test rejection of malformed input."""

    def test_empty(self):
        """Test decoding empty input."""
        with pytest.raises(MessageDecodeError, match="empty"):
            decode_message(b"")

    def test_unknown_type(self):
        """Test decoding an unknown type."""
        with pytest.raises(MessageDecodeError, match="unknown msg_type"):
            decode_message(b"\x7f" + b"\x00" * 12)

    def test_truncated_discovery(self):
        """Test decoding a truncated discovery message."""
        data = DiscoveryMessage(MsgType.RELAY_ANNOUNCEMENT, 100, 1).encode()
        with pytest.raises(MessageDecodeError, match="13 bytes"):
            decode_message(data[:-1])

    def test_oversized_signalling(self):
        """Test decoding an oversized signalling message."""
        data = SignallingMessage(MsgType.RELEASE_REQUEST, 3, 1, 100, 1).encode()
        with pytest.raises(MessageDecodeError, match="15 bytes"):
            decode_message(data + b"\x00")


def test_message_name_unknown():
    """Test name of an unknown type."""
    assert message_name(0x7F) == "Unknown(0x7f)"
