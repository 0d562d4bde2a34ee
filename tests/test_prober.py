"""Tests for the keep-alive prober rate limiter."""

from __future__ import annotations

import logging

import pytest

from mavbridge.protocol.codec import MavlinkCodec, ValidFrame
from mavbridge.services.prober import KeepAliveProber
from mavbridge.state.stats import BridgeStats


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_prober(
    clock: FakeClock,
    sent: list[bytes],
    *,
    cooldown: float = 1.0,
    enabled: bool = True,
    stats: BridgeStats | None = None,
    delivered: bool = True,
) -> KeepAliveProber:
    def sender(data: bytes) -> bool:
        sent.append(data)
        return delivered

    return KeepAliveProber(
        MavlinkCodec(),
        sender,
        cooldown=cooldown,
        target_system=1,
        enabled=enabled,
        clock=clock,
        stats=stats,
    )


def test_two_invalid_frames_10ms_apart_send_one_probe() -> None:
    clock = FakeClock()
    sent: list[bytes] = []
    prober = _make_prober(clock, sent, cooldown=1.0)

    assert prober.notify_invalid() is True
    clock.advance(0.010)
    assert prober.notify_invalid() is False

    assert len(sent) == 1
    frames = list(MavlinkCodec().feed(sent[0]))
    assert isinstance(frames[0], ValidFrame)
    assert frames[0].name == "COMMAND_LONG"


def test_at_most_one_probe_per_window() -> None:
    clock = FakeClock()
    sent_at: list[float] = []

    def sender(_: bytes) -> bool:
        sent_at.append(clock.now)
        return True

    prober = KeepAliveProber(MavlinkCodec(), sender, cooldown=1.0, target_system=1, clock=clock)

    for _ in range(500):
        prober.notify_invalid()
        clock.advance(0.037)

    assert sent_at
    for earlier, later in zip(sent_at, sent_at[1:]):
        assert later - earlier >= 1.0


def test_isolated_invalid_after_quiet_period_probes_again() -> None:
    clock = FakeClock()
    sent: list[bytes] = []
    prober = _make_prober(clock, sent, cooldown=1.0)

    prober.notify_invalid()
    clock.advance(5.0)
    prober.notify_invalid()

    assert len(sent) == 2


def test_no_trailing_probe_after_burst() -> None:
    clock = FakeClock()
    sent: list[bytes] = []
    prober = _make_prober(clock, sent, cooldown=1.0)

    for _ in range(10):
        prober.notify_invalid()
        clock.advance(0.01)
    clock.advance(10.0)

    assert len(sent) == 1


def test_disabled_prober_only_counts() -> None:
    clock = FakeClock()
    sent: list[bytes] = []
    stats = BridgeStats()
    prober = _make_prober(clock, sent, enabled=False, stats=stats)

    assert prober.notify_invalid() is False
    assert sent == []
    assert stats.invalid_frames == 1
    assert stats.probes_sent == 0


def test_suppressed_probe_is_counted_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    clock = FakeClock()
    sent: list[bytes] = []
    stats = BridgeStats()
    prober = _make_prober(clock, sent, stats=stats, delivered=False)

    with caplog.at_level(logging.INFO, logger="mavbridge.prober"):
        assert prober.notify_invalid() is True

    assert stats.probes_suppressed == 1
    assert stats.probes_sent == 0
    assert "pong" in caplog.text


def test_build_failure_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    clock = FakeClock()
    sent: list[bytes] = []
    prober = _make_prober(clock, sent)
    prober.target_system = 999

    with caplog.at_level(logging.ERROR, logger="mavbridge.prober"):
        assert prober.notify_invalid() is False

    assert sent == []
    assert "Failed to build keep-alive probe" in caplog.text
