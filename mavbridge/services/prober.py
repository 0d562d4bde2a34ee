"""Rate-limited keep-alive probe towards the flight controller.

Malformed traffic on the local link usually means the autopilot is mid-boot
or talking at the wrong baud rate. Each invalid frame asks the prober to poke
the target with a ``COMMAND_LONG`` request; at most one probe leaves per
cooldown window (leading edge, no trailing probe).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from construct import ConstructError

from ..protocol.codec import MavlinkCodec
from ..protocol.mavlink import MAVLINK_MSG_ID_PROTOCOL_VERSION
from ..state.stats import BridgeStats

logger = logging.getLogger("mavbridge.prober")

ProbeSender = Callable[[bytes], bool]


class KeepAliveProber:
    def __init__(
        self,
        codec: MavlinkCodec,
        sender: ProbeSender,
        *,
        cooldown: float,
        target_system: int,
        target_component: int = 1,
        message_id: int = MAVLINK_MSG_ID_PROTOCOL_VERSION,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
        stats: BridgeStats | None = None,
    ) -> None:
        self.codec = codec
        self.sender = sender
        self.cooldown = cooldown
        self.target_system = target_system
        self.target_component = target_component
        self.message_id = message_id
        self.enabled = enabled
        self.stats = stats
        self._clock = clock
        self._last_probe: float | None = None

    def notify_invalid(self) -> bool:
        """Report one invalid frame; return True if a probe was emitted."""
        if self.stats is not None:
            self.stats.record_invalid_frame()
        if not self.enabled:
            logger.debug("skip")
            return False

        now = self._clock()
        if self._last_probe is not None and now - self._last_probe < self.cooldown:
            return False
        self._last_probe = now

        try:
            probe = self.codec.build_probe(
                self.target_system,
                requested_message_id=self.message_id,
                target_component=self.target_component,
            )
        except (ValueError, ConstructError) as exc:
            logger.error("Failed to build keep-alive probe: %s", exc)
            return False

        delivered = self.sender(probe)
        if self.stats is not None:
            self.stats.record_probe(delivered=delivered)
        logger.info("pong")
        return True


__all__ = ["KeepAliveProber", "ProbeSender"]
