"""Shared fakes for MAVLink bridge tests."""

from __future__ import annotations

import asyncio
from typing import Any

from pymavlink.dialects.v20 import ardupilotmega  # type: ignore

from mavbridge.protocol.codec import MavlinkCodec
from mavbridge.state.stats import BridgeStats
from mavbridge.transport.base import Endpoint, EndpointRole

# HEARTBEAT body: custom_mode, type, autopilot, base_mode, system_status, mavlink_version
HEARTBEAT_BODY = b"\x00\x00\x00\x00\x02\x03\x51\x04\x03"


def heartbeat_frame(codec: MavlinkCodec | None = None) -> bytes:
    """Wire bytes of one valid HEARTBEAT sent by system 1."""
    codec = codec or MavlinkCodec(source_system=1, source_component=1)
    return codec.pack(0, HEARTBEAT_BODY)


def dialect_sender(system: int = 1, component: int = 1) -> Any:
    """pymavlink encoder for the ardupilotmega dialect."""
    return ardupilotmega.MAVLink(None, srcSystem=system, srcComponent=component)


def distance_sensor_frame(sender: Any = None) -> bytes:
    """Wire bytes of one DISTANCE_SENSOR, encoded by pymavlink."""
    sender = sender or dialect_sender()
    message = sender.distance_sensor_encode(1000, 20, 4000, 150, 0, 0, 25, 0)
    return bytes(message.pack(sender))


def corrupt(frame: bytes) -> bytes:
    """Flip the last checksum byte so the frame fails validation."""
    return frame[:-1] + bytes(((frame[-1] ^ 0xFF),))


class FakeEndpoint(Endpoint):
    """Scriptable in-memory endpoint.

    ``open_gate`` holds ``open()`` until set; ``open_error`` makes it fail.
    """

    def __init__(
        self,
        role: EndpointRole,
        name: str,
        *,
        stats: BridgeStats | None = None,
        open_error: BaseException | None = None,
        open_gate: asyncio.Event | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(role, name, stats=stats, **kwargs)
        self.open_error = open_error
        self.open_gate = open_gate
        self.sent: list[bytes] = []
        self.transport_closes = 0
        self.open_cancelled = False

    async def _open_transport(self) -> None:
        try:
            if self.open_gate is not None:
                await self.open_gate.wait()
        except asyncio.CancelledError:
            self.open_cancelled = True
            raise
        if self.open_error is not None:
            raise self.open_error

    def _write(self, data: bytes) -> bool:
        self.sent.append(bytes(data))
        return True

    async def _close_transport(self) -> None:
        self.transport_closes += 1

    def inject(self, data: bytes) -> None:
        self._deliver(data)

    def break_link(self, reason: str = "link lost") -> None:
        self._fault(reason)


class FakeEndpointFactory:
    """Build a fresh :class:`FakeEndpoint` per session and remember each one.

    ``scripts`` holds per-attempt keyword arguments, consumed in order.
    """

    def __init__(
        self,
        role: EndpointRole,
        name: str,
        scripts: list[dict[str, Any]] | None = None,
    ) -> None:
        self.role = role
        self.name = name
        self.scripts = list(scripts or [])
        self.created: list[FakeEndpoint] = []

    def __call__(self, stats: BridgeStats) -> FakeEndpoint:
        kwargs = self.scripts.pop(0) if self.scripts else {}
        endpoint = FakeEndpoint(self.role, self.name, stats=stats, **kwargs)
        self.created.append(endpoint)
        return endpoint

    @property
    def last(self) -> FakeEndpoint:
        return self.created[-1]


async def wait_until(predicate: Any, timeout: float = 2.0) -> None:
    """Yield to the loop until *predicate()* is true."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.001)
