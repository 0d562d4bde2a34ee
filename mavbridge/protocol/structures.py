"""Binary layouts of the MAVLink v2 frame header and probe payload.

Declared with Construct so the wire format lives in one place.
"""

from __future__ import annotations

from typing import Any, Final

from construct import (  # type: ignore
    Const,
    Float32l,
    Int8ul,
    Int16ul,
    Int24ul,
    Struct as BinStruct,
)

from .mavlink import STX_V2

FRAME_HEADER_STRUCT: Final[Any] = BinStruct(
    "magic" / Const(bytes((STX_V2,))),
    "payload_len" / Int8ul,
    "incompat_flags" / Int8ul,
    "compat_flags" / Int8ul,
    "seq" / Int8ul,
    "sysid" / Int8ul,
    "compid" / Int8ul,
    "msgid" / Int24ul,
)

CHECKSUM_STRUCT: Final[Any] = Int16ul

# MAVLink orders fields by size on the wire: floats, then uint16, then uint8.
COMMAND_LONG_STRUCT: Final[Any] = BinStruct(
    "param1" / Float32l,
    "param2" / Float32l,
    "param3" / Float32l,
    "param4" / Float32l,
    "param5" / Float32l,
    "param6" / Float32l,
    "param7" / Float32l,
    "command" / Int16ul,
    "target_system" / Int8ul,
    "target_component" / Int8ul,
    "confirmation" / Int8ul,
)


__all__ = ["CHECKSUM_STRUCT", "COMMAND_LONG_STRUCT", "FRAME_HEADER_STRUCT"]
