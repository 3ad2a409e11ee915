from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Union

from .errors import MessageDecodeError


class MsgType:
    # discovery
    RELAY_ANNOUNCEMENT = 0x01
    RELAY_SOLICITATION = 0x02
    RELAY_RESPONSE = 0x03
    APP_ANNOUNCEMENT = 0x04
    # PC5 signalling
    ESTABLISHMENT_REQUEST = 0x10
    ESTABLISHMENT_ACCEPT = 0x11
    ESTABLISHMENT_REJECT = 0x12
    RELEASE_REQUEST = 0x13
    RELEASE_ACCEPT = 0x14


MESSAGE_NAMES = {
    MsgType.RELAY_ANNOUNCEMENT: "RelayAnnouncement",
    MsgType.RELAY_SOLICITATION: "RelaySolicitation",
    MsgType.RELAY_RESPONSE: "RelayResponse",
    MsgType.APP_ANNOUNCEMENT: "AppAnnouncement",
    MsgType.ESTABLISHMENT_REQUEST: "DirectLinkEstablishmentRequest",
    MsgType.ESTABLISHMENT_ACCEPT: "DirectLinkEstablishmentAccept",
    MsgType.ESTABLISHMENT_REJECT: "DirectLinkEstablishmentReject",
    MsgType.RELEASE_REQUEST: "DirectLinkReleaseRequest",
    MsgType.RELEASE_ACCEPT: "DirectLinkReleaseAccept",
}

DISCOVERY_TYPES = frozenset(
    {MsgType.RELAY_ANNOUNCEMENT, MsgType.RELAY_SOLICITATION, MsgType.RELAY_RESPONSE, MsgType.APP_ANNOUNCEMENT}
)
SIGNALLING_TYPES = frozenset(
    {
        MsgType.ESTABLISHMENT_REQUEST,
        MsgType.ESTABLISHMENT_ACCEPT,
        MsgType.ESTABLISHMENT_REJECT,
        MsgType.RELEASE_REQUEST,
        MsgType.RELEASE_ACCEPT,
    }
)

_DISCOVERY_FMT = "!BIII"  # type, code, sender_id, target_id
_DISCOVERY_LEN = struct.calcsize(_DISCOVERY_FMT)
_SIGNALLING_FMT = "!BIIIH"  # type, sender_id, receiver_id, service_code, sequence
_SIGNALLING_LEN = struct.calcsize(_SIGNALLING_FMT)


def message_name(msg_type: int) -> str:
    return MESSAGE_NAMES.get(msg_type, f"Unknown(0x{msg_type:02x})")


@dataclass(frozen=True)
class DiscoveryMessage:
    """Announcement, solicitation or response carrying a relay or application code.

    ``target_id`` is 0 for broadcast messages and the requester's L2 id for
    relay responses.
    """

    msg_type: int
    code: int
    sender_id: int
    target_id: int = 0

    @property
    def name(self) -> str:
        return message_name(self.msg_type)

    def encode(self) -> bytes:
        if self.msg_type not in DISCOVERY_TYPES:
            raise ValueError(f"not a discovery message type: {self.msg_type}")
        return struct.pack(_DISCOVERY_FMT, self.msg_type, self.code, self.sender_id, self.target_id)


@dataclass(frozen=True)
class SignallingMessage:
    """PC5 signalling message of the direct link handshake.

    ``sequence`` identifies one link instance; replies echo it so that late
    replies addressed to an earlier instance can be told apart.
    """

    msg_type: int
    sender_id: int
    receiver_id: int
    service_code: int
    sequence: int

    @property
    def name(self) -> str:
        return message_name(self.msg_type)

    def encode(self) -> bytes:
        if self.msg_type not in SIGNALLING_TYPES:
            raise ValueError(f"not a signalling message type: {self.msg_type}")
        return struct.pack(
            _SIGNALLING_FMT,
            self.msg_type,
            self.sender_id,
            self.receiver_id,
            self.service_code,
            self.sequence,
        )

    def reply(self, msg_type: int) -> SignallingMessage:
        return SignallingMessage(
            msg_type=msg_type,
            sender_id=self.receiver_id,
            receiver_id=self.sender_id,
            service_code=self.service_code,
            sequence=self.sequence,
        )


Message = Union[DiscoveryMessage, SignallingMessage]


def decode_message(data: bytes) -> Message:
    if not data:
        raise MessageDecodeError("empty message")
    msg_type = data[0]

    if msg_type in DISCOVERY_TYPES:
        if len(data) != _DISCOVERY_LEN:
            raise MessageDecodeError(f"discovery message must be {_DISCOVERY_LEN} bytes, got {len(data)}")
        _, code, sender_id, target_id = struct.unpack(_DISCOVERY_FMT, data)
        return DiscoveryMessage(msg_type=msg_type, code=code, sender_id=sender_id, target_id=target_id)

    if msg_type in SIGNALLING_TYPES:
        if len(data) != _SIGNALLING_LEN:
            raise MessageDecodeError(f"signalling message must be {_SIGNALLING_LEN} bytes, got {len(data)}")
        _, sender_id, receiver_id, service_code, sequence = struct.unpack(_SIGNALLING_FMT, data)
        return SignallingMessage(
            msg_type=msg_type,
            sender_id=sender_id,
            receiver_id=receiver_id,
            service_code=service_code,
            sequence=sequence,
        )

    raise MessageDecodeError(f"unknown msg_type: {msg_type}")
