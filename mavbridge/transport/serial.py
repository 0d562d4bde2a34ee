"""Serial endpoint using pyserial-asyncio-fast with direct Protocol access.

The protocol hands every received chunk to the endpoint untouched; framing
is the pump's concern. Losing the port after it opened faults the endpoint.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import cast

# pyserial-asyncio-fast is mandatory; do not catch ImportError.
import serial_asyncio_fast  # type: ignore

from ..config.settings import RuntimeConfig
from ..state.stats import BridgeStats
from ..util import log_hexdump
from .base import Endpoint, EndpointRole

logger = logging.getLogger("mavbridge.serial")


class SerialLinkProtocol(asyncio.Protocol):
    """Relay raw serial chunks into a :class:`SerialEndpoint`."""

    def __init__(self, endpoint: SerialEndpoint, loop: asyncio.AbstractEventLoop) -> None:
        self.endpoint = endpoint
        self.transport: asyncio.Transport | None = None
        self.connected_future: asyncio.Future[None] = loop.create_future()

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = cast(asyncio.Transport, transport)
        logger.debug("Serial transport established (Protocol).")
        if not self.connected_future.done():
            self.connected_future.set_result(None)

    def connection_lost(self, exc: Exception | None) -> None:
        self.transport = None
        if not self.connected_future.done():
            self.connected_future.set_exception(exc or ConnectionError("Closed"))
            return
        self.endpoint._fault(f"connection lost: {exc}" if exc else "port closed")

    def data_received(self, data: bytes) -> None:
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, "SERIAL <", data)
        self.endpoint._deliver(data)


class SerialEndpoint(Endpoint):
    """Local endpoint attached to the flight controller's serial port."""

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        role: EndpointRole = EndpointRole.LOCAL,
        stats: BridgeStats | None = None,
    ) -> None:
        super().__init__(role, "serial", stats=stats)
        self.config = config
        self.protocol: SerialLinkProtocol | None = None
        self._transport: asyncio.Transport | None = None

    @property
    def address(self) -> str:
        return f"{self.config.serial_port}@{self.config.serial_baud}"

    async def _open_transport(self) -> None:
        loop = asyncio.get_running_loop()
        factory = functools.partial(SerialLinkProtocol, self, loop)
        transport, proto = await serial_asyncio_fast.create_serial_connection(
            loop, factory, self.config.serial_port, baudrate=self.config.serial_baud
        )
        self._transport = cast(asyncio.Transport, transport)
        self.protocol = cast(SerialLinkProtocol, proto)
        await self.protocol.connected_future

    def _write(self, data: bytes) -> bool:
        transport = self._transport
        if transport is None or transport.is_closing():
            self._fault("port closed")
            return False
        transport.write(data)
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, "SERIAL >", data)
        return True

    async def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None and not transport.is_closing():
            transport.close()


__all__ = ["SerialEndpoint", "SerialLinkProtocol"]
