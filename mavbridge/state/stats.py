"""Counters describing bridge traffic and session health."""

from __future__ import annotations

import time
from typing import Any

import msgspec


class BridgeStats(msgspec.Struct):
    """Process-wide bridge statistics.

    Shared by every session of one engine so the totals survive restarts.
    """

    sessions_started: int = 0
    connect_failures: int = 0
    runtime_faults: int = 0
    frames_forwarded: int = 0
    bytes_forwarded: int = 0
    frames_skipped: int = 0
    invalid_frames: int = 0
    probes_sent: int = 0
    probes_suppressed: int = 0
    chunks_relayed: int = 0
    bytes_relayed: int = 0
    chunks_skipped: int = 0
    backlog_dropped: int = 0
    send_suppressed: dict[str, int] = msgspec.field(default_factory=dict)
    last_fault: str | None = None
    last_fault_unix: float = 0.0

    def record_session_started(self) -> None:
        self.sessions_started += 1

    def record_fault(self, reason: str, *, connecting: bool) -> None:
        if connecting:
            self.connect_failures += 1
        else:
            self.runtime_faults += 1
        self.last_fault = reason
        self.last_fault_unix = time.time()

    def record_forwarded(self, size: int) -> None:
        self.frames_forwarded += 1
        self.bytes_forwarded += size

    def record_frame_skipped(self) -> None:
        self.frames_skipped += 1

    def record_invalid_frame(self) -> None:
        self.invalid_frames += 1

    def record_probe(self, *, delivered: bool) -> None:
        if delivered:
            self.probes_sent += 1
        else:
            self.probes_suppressed += 1

    def record_relayed(self, size: int) -> None:
        self.chunks_relayed += 1
        self.bytes_relayed += size

    def record_chunk_skipped(self) -> None:
        self.chunks_skipped += 1

    def record_backlog_drop(self) -> None:
        self.backlog_dropped += 1

    def record_send_suppressed(self, endpoint: str) -> None:
        self.send_suppressed[endpoint] = self.send_suppressed.get(endpoint, 0) + 1

    def as_dict(self) -> dict[str, Any]:
        return msgspec.structs.asdict(self)


__all__ = ["BridgeStats"]
