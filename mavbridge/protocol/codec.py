"""Streaming MAVLink v2 codec used by the bridge pump.

The decoder is fed raw chunks exactly as they arrive from the link and turns
them into a sequence of frames. Malformed input never raises: it surfaces as
:class:`InvalidFrame` so the pump can keep running on a noisy line.

Frame Structure (on wire):
    [STX 0xFD] [Header (9 bytes)] [Body (0-255 bytes)] [CRC16] [Signature (13 bytes, optional)]

The checksum is X.25 over everything after STX, seeded with the per-message
CRC_EXTRA. Messages whose id is not in the table cannot be validated and are
reported as invalid.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any, Final

import msgspec
from construct import ConstructError

from . import mavlink
from .structures import CHECKSUM_STRUCT, COMMAND_LONG_STRUCT, FRAME_HEADER_STRUCT

_STX: Final[bytes] = bytes((mavlink.STX_V2,))


class ValidFrame(msgspec.Struct, frozen=True, kw_only=True):
    """A checksum-verified MAVLink message.

    Attributes:
        name: Message name from the message table.
        msg_id: Numeric message id.
        payload: Complete wire encoding of the message, ready to forward.
        sysid: Sender system id.
        compid: Sender component id.
        seq: Sender sequence number.
    """

    name: str
    msg_id: int
    payload: bytes
    sysid: int = 0
    compid: int = 0
    seq: int = 0


class InvalidFrame(msgspec.Struct, frozen=True, kw_only=True):
    """Bytes that could not be parsed into a valid message."""

    raw: bytes
    reason: str


Frame = ValidFrame | InvalidFrame


class MavlinkCodec:
    """Stateful MAVLink v2 parser and frame builder."""

    def __init__(
        self,
        *,
        source_system: int = 255,
        source_component: int = 190,
        crc_extras: Mapping[int, int] | None = None,
    ) -> None:
        self.source_system = source_system
        self.source_component = source_component
        self._messages = mavlink.build_message_table(crc_extras)
        self._buffer = bytearray()
        self._seq = 0

    @property
    def buffered(self) -> int:
        """Number of bytes held back waiting for the rest of a frame."""
        return len(self._buffer)

    def feed(self, data: bytes | bytearray | memoryview) -> Iterator[Frame]:
        """Queue *data* and return an iterator over the frames it completes.

        The chunk is buffered immediately; frames are parsed lazily as the
        iterator is consumed, in the order their bytes arrived.
        """
        self._buffer.extend(data)
        return self._drain()

    def _drain(self) -> Iterator[Frame]:
        buffer = self._buffer
        while buffer:
            start = buffer.find(_STX)
            if start < 0:
                junk = bytes(buffer)
                buffer.clear()
                yield InvalidFrame(raw=junk, reason="no start marker")
                return
            if start > 0:
                junk = bytes(buffer[:start])
                del buffer[:start]
                yield InvalidFrame(raw=junk, reason="unexpected bytes before start marker")
                continue

            if len(buffer) < mavlink.HEADER_SIZE:
                return

            try:
                header = FRAME_HEADER_STRUCT.parse(bytes(buffer[: mavlink.HEADER_SIZE]))
            except ConstructError as exc:
                del buffer[:1]
                yield InvalidFrame(raw=_STX, reason=f"header parse failed: {exc}")
                continue

            if header.incompat_flags & ~mavlink.SUPPORTED_INCOMPAT_FLAGS:
                del buffer[:1]
                yield InvalidFrame(
                    raw=_STX,
                    reason=f"unsupported incompat flags 0x{header.incompat_flags:02X}",
                )
                continue

            total = mavlink.HEADER_SIZE + header.payload_len + mavlink.CHECKSUM_SIZE
            if header.incompat_flags & mavlink.INCOMPAT_FLAG_SIGNED:
                total += mavlink.SIGNATURE_SIZE
            if len(buffer) < total:
                return

            raw = bytes(buffer[:total])
            del buffer[:total]
            yield self._validate(raw, header)

    def _validate(self, raw: bytes, header: Any) -> Frame:
        msg_id: int = header.msgid
        info = self._messages.get(msg_id)
        if info is None:
            return InvalidFrame(raw=raw, reason=f"unknown message id {msg_id}")

        body_end = mavlink.HEADER_SIZE + header.payload_len
        received = CHECKSUM_STRUCT.parse(raw[body_end : body_end + mavlink.CHECKSUM_SIZE])
        expected = mavlink.frame_checksum(raw[1:body_end], info.crc_extra)
        if received != expected:
            return InvalidFrame(
                raw=raw,
                reason=f"crc mismatch for {info.name}: expected 0x{expected:04X}, got 0x{received:04X}",
            )

        return ValidFrame(
            name=info.name,
            msg_id=msg_id,
            payload=raw,
            sysid=header.sysid,
            compid=header.compid,
            seq=header.seq,
        )

    def pack(self, msg_id: int, body: bytes) -> bytes:
        """Encode one unsigned v2 frame from this codec's source identity."""
        info = self._messages.get(msg_id)
        if info is None:
            raise ValueError(f"Unknown MAVLink message id {msg_id}")
        # v2 senders strip trailing zero bytes; at least one byte is kept.
        trimmed = body.rstrip(b"\x00") or body[:1]
        if len(trimmed) > mavlink.MAX_PAYLOAD_SIZE:
            raise ValueError(f"Payload too large ({len(trimmed)} bytes); max is {mavlink.MAX_PAYLOAD_SIZE}")

        header = FRAME_HEADER_STRUCT.build(
            {
                "payload_len": len(trimmed),
                "incompat_flags": 0,
                "compat_flags": 0,
                "seq": self._seq,
                "sysid": self.source_system,
                "compid": self.source_component,
                "msgid": msg_id,
            }
        )
        self._seq = (self._seq + 1) % mavlink.SEQUENCE_MODULO
        covered = header[1:] + trimmed
        checksum = mavlink.frame_checksum(covered, info.crc_extra)
        return header + trimmed + CHECKSUM_STRUCT.build(checksum)

    def build_probe(
        self,
        target_system: int,
        requested_message_id: int = mavlink.MAVLINK_MSG_ID_PROTOCOL_VERSION,
        target_component: int = 1,
    ) -> bytes:
        """Build a COMMAND_LONG asking *target_system* to send one message."""
        body = COMMAND_LONG_STRUCT.build(
            {
                "param1": float(requested_message_id),
                "param2": 0.0,
                "param3": 0.0,
                "param4": 0.0,
                "param5": 0.0,
                "param6": 0.0,
                "param7": 0.0,
                "command": mavlink.MAV_CMD_REQUEST_MESSAGE,
                "target_system": target_system,
                "target_component": target_component,
                "confirmation": 0,
            }
        )
        return self.pack(mavlink.MAVLINK_MSG_ID_COMMAND_LONG, body)


__all__ = ["Frame", "InvalidFrame", "MavlinkCodec", "ValidFrame"]
