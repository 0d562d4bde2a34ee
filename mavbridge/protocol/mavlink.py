"""MAVLink v2 wire constants and the message checksum table.

Message names and CRC_EXTRA values come from the generated pymavlink
``ardupilotmega`` v2 dialect; framing and checksums are done here.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Final, NamedTuple

from pymavlink.dialects.v20 import ardupilotmega as dialect  # type: ignore

STX_V2: Final[int] = 0xFD
HEADER_SIZE: Final[int] = 10
CHECKSUM_SIZE: Final[int] = 2
SIGNATURE_SIZE: Final[int] = 13
MAX_PAYLOAD_SIZE: Final[int] = 255

INCOMPAT_FLAG_SIGNED: Final[int] = 0x01
SUPPORTED_INCOMPAT_FLAGS: Final[int] = INCOMPAT_FLAG_SIGNED

SEQUENCE_MODULO: Final[int] = 256
MSG_ID_MAX: Final[int] = 0xFFFFFF
X25_INIT: Final[int] = 0xFFFF

MAVLINK_MSG_ID_COMMAND_LONG: Final[int] = 76
MAVLINK_MSG_ID_PROTOCOL_VERSION: Final[int] = 300
MAV_CMD_REQUEST_MESSAGE: Final[int] = 512


class MessageInfo(NamedTuple):
    name: str
    crc_extra: int


def _dialect_table() -> dict[int, MessageInfo]:
    return {
        msg_id: MessageInfo(message_class.msgname, message_class.crc_extra)
        for msg_id, message_class in dialect.mavlink_map.items()
    }


# ardupilotmega is a superset of the common dialect; extend through
# configuration for anything else.
MESSAGE_INFO: Final[Mapping[int, MessageInfo]] = MappingProxyType(_dialect_table())


def x25_accumulate(data: bytes | bytearray | memoryview, crc: int = X25_INIT) -> int:
    """Fold *data* into a CRC-16/MCRF4XX (X.25) accumulator."""
    for byte in bytes(data):
        tmp = byte ^ (crc & 0xFF)
        tmp = (tmp ^ (tmp << 4)) & 0xFF
        crc = ((crc >> 8) ^ (tmp << 8) ^ (tmp << 3) ^ (tmp >> 4)) & 0xFFFF
    return crc


def frame_checksum(covered: bytes | bytearray | memoryview, crc_extra: int) -> int:
    """Checksum over header (minus start marker) and body, seeded by CRC_EXTRA."""
    return x25_accumulate(bytes((crc_extra & 0xFF,)), x25_accumulate(covered))


def build_message_table(extra: Mapping[int, int] | None = None) -> dict[int, MessageInfo]:
    """Return the built-in table merged with ``{msg_id: crc_extra}`` overrides."""
    table = dict(MESSAGE_INFO)
    for msg_id, crc_extra in (extra or {}).items():
        if not 0 <= msg_id <= MSG_ID_MAX:
            raise ValueError(f"MAVLink message id {msg_id} out of range")
        if not 0 <= crc_extra <= 0xFF:
            raise ValueError(f"CRC_EXTRA {crc_extra} for message {msg_id} out of range")
        known = table.get(msg_id)
        name = known.name if known is not None else f"MSG_{msg_id}"
        table[msg_id] = MessageInfo(name, crc_extra)
    return table


__all__ = [
    "CHECKSUM_SIZE",
    "HEADER_SIZE",
    "INCOMPAT_FLAG_SIGNED",
    "MAVLINK_MSG_ID_COMMAND_LONG",
    "MAVLINK_MSG_ID_PROTOCOL_VERSION",
    "MAV_CMD_REQUEST_MESSAGE",
    "MAX_PAYLOAD_SIZE",
    "MESSAGE_INFO",
    "MessageInfo",
    "SIGNATURE_SIZE",
    "STX_V2",
    "build_message_table",
    "frame_checksum",
    "x25_accumulate",
]
