"""MAVLink framing helpers for the bridge."""

from . import mavlink, structures
from .codec import Frame, InvalidFrame, MavlinkCodec, ValidFrame

__all__ = [
    "Frame",
    "InvalidFrame",
    "MavlinkCodec",
    "ValidFrame",
    "mavlink",
    "structures",
]
