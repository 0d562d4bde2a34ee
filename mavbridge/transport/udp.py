"""UDP endpoint facing a ground-station application.

Binds ``udp_bind_host:udp_bind_port`` and relays every datagram. Outbound
datagrams go to the configured peer, or, when none is configured, to
whichever address sent the most recent datagram. Until that first datagram
arrives outbound data has nowhere to go and is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, cast

from ..config.settings import RuntimeConfig
from ..state.stats import BridgeStats
from ..util import log_hexdump
from .base import Endpoint, EndpointRole

logger = logging.getLogger("mavbridge.udp")


class UdpLinkProtocol(asyncio.DatagramProtocol):
    def __init__(self, endpoint: UdpEndpoint) -> None:
        self.endpoint = endpoint

    def datagram_received(self, data: bytes, addr: tuple[Any, ...]) -> None:
        self.endpoint._on_datagram(data, (addr[0], addr[1]))

    def error_received(self, exc: Exception) -> None:
        # ICMP port unreachable and friends; the socket is still usable.
        logger.warning("UDP error received: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        self.endpoint._fault(f"socket closed: {exc}" if exc else "socket closed")


class UdpEndpoint(Endpoint):
    """Local endpoint bound to a UDP port."""

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        role: EndpointRole = EndpointRole.LOCAL,
        stats: BridgeStats | None = None,
    ) -> None:
        super().__init__(role, "udp", stats=stats)
        self.config = config
        self.peer: tuple[str, int] | None = config.udp_peer
        self.local_address: tuple[str, int] | None = None
        self._learn_peer = self.peer is None
        self.protocol: UdpLinkProtocol | None = None
        self._transport: asyncio.DatagramTransport | None = None

    @property
    def address(self) -> str:
        peer = f"{self.peer[0]}:{self.peer[1]}" if self.peer else "learned"
        return f"{self.config.udp_bind_host}:{self.config.udp_bind_port} peer={peer}"

    async def _open_transport(self) -> None:
        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: UdpLinkProtocol(self),
            local_addr=(self.config.udp_bind_host, self.config.udp_bind_port),
        )
        self._transport = cast(asyncio.DatagramTransport, transport)
        self.protocol = cast(UdpLinkProtocol, protocol)
        sockname = self._transport.get_extra_info("sockname")
        if sockname:
            self.local_address = (sockname[0], sockname[1])

    def _on_datagram(self, data: bytes, addr: tuple[str, int]) -> None:
        if self._learn_peer and addr != self.peer:
            logger.info("UDP peer is now %s:%d", addr[0], addr[1])
            self.peer = addr
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, f"UDP < {addr[0]}:{addr[1]}", data)
        self._deliver(data)

    def _write(self, data: bytes) -> bool:
        transport = self._transport
        if transport is None or transport.is_closing():
            self._fault("socket closed")
            return False
        if self.peer is None:
            logger.debug("No UDP peer known yet; dropped %d bytes", len(data))
            if self.stats is not None:
                self.stats.record_send_suppressed(self.name)
            return False
        transport.sendto(data, self.peer)
        if logger.isEnabledFor(logging.DEBUG):
            log_hexdump(logger, logging.DEBUG, f"UDP > {self.peer[0]}:{self.peer[1]}", data)
        return True

    async def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None and not transport.is_closing():
            transport.close()


__all__ = ["UdpEndpoint", "UdpLinkProtocol"]
