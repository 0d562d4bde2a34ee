"""Tests for the serial endpoint with a faked pyserial-asyncio-fast."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from mavbridge.config.settings import RuntimeConfig
from mavbridge.errors import ConnectFailure
from mavbridge.transport import serial as serial_transport
from mavbridge.transport.base import Endpoint
from mavbridge.transport.serial import SerialEndpoint


class FakeSerialTransport:
    def __init__(self) -> None:
        self.written: list[bytes] = []
        self.closing = False

    def write(self, data: bytes) -> None:
        self.written.append(data)

    def is_closing(self) -> bool:
        return self.closing

    def close(self) -> None:
        self.closing = True


class FakeSerialFactory:
    def __init__(self, *, lose_before_open: bool = False, error: BaseException | None = None) -> None:
        self.lose_before_open = lose_before_open
        self.error = error
        self.calls: list[tuple[str, int]] = []
        self.transport = FakeSerialTransport()
        self.protocol: Any = None

    async def __call__(
        self,
        loop: asyncio.AbstractEventLoop,
        protocol_factory: Callable[[], asyncio.Protocol],
        url: str,
        *,
        baudrate: int,
    ) -> tuple[FakeSerialTransport, Any]:
        self.calls.append((url, baudrate))
        if self.error is not None:
            raise self.error
        self.protocol = protocol_factory()
        if self.lose_before_open:
            self.protocol.connection_lost(OSError("device disconnected"))
        else:
            self.protocol.connection_made(self.transport)
        return self.transport, self.protocol


def _install(monkeypatch: pytest.MonkeyPatch, factory: FakeSerialFactory) -> None:
    monkeypatch.setattr(serial_transport.serial_asyncio_fast, "create_serial_connection", factory)


@pytest.mark.asyncio
async def test_open_write_and_receive(monkeypatch: pytest.MonkeyPatch, runtime_config: RuntimeConfig) -> None:
    factory = FakeSerialFactory()
    _install(monkeypatch, factory)
    endpoint = SerialEndpoint(runtime_config)

    await endpoint.open()
    assert endpoint.connected
    assert factory.calls == [("/dev/null", 57600)]
    assert endpoint.address == "/dev/null@57600"

    received: list[bytes] = []
    endpoint.attach(received.append, lambda ep, reason: None)
    factory.protocol.data_received(b"\xfd\x09")
    assert received == [b"\xfd\x09"]

    assert endpoint.send(b"probe") is True
    assert factory.transport.written == [b"probe"]

    await endpoint.close()
    assert factory.transport.closing
    factory.protocol.connection_lost(None)
    assert endpoint.fsm_state == Endpoint.STATE_CLOSED


@pytest.mark.asyncio
async def test_open_error_becomes_connect_failure(
    monkeypatch: pytest.MonkeyPatch, runtime_config: RuntimeConfig
) -> None:
    _install(monkeypatch, FakeSerialFactory(error=OSError("could not open port /dev/null")))
    endpoint = SerialEndpoint(runtime_config)

    with pytest.raises(ConnectFailure, match="could not open port"):
        await endpoint.open()


@pytest.mark.asyncio
async def test_lost_before_ready_fails_open(monkeypatch: pytest.MonkeyPatch, runtime_config: RuntimeConfig) -> None:
    _install(monkeypatch, FakeSerialFactory(lose_before_open=True))
    endpoint = SerialEndpoint(runtime_config)

    with pytest.raises(ConnectFailure, match="device disconnected"):
        await endpoint.open()


@pytest.mark.asyncio
async def test_connection_lost_faults(monkeypatch: pytest.MonkeyPatch, runtime_config: RuntimeConfig) -> None:
    factory = FakeSerialFactory()
    _install(monkeypatch, factory)
    endpoint = SerialEndpoint(runtime_config)
    await endpoint.open()

    faults: list[str] = []
    endpoint.attach(lambda data: None, lambda ep, reason: faults.append(reason))
    factory.protocol.connection_lost(OSError("read failed"))

    assert faults == ["connection lost: read failed"]
    assert endpoint.send(b"x") is False
    await endpoint.close()


@pytest.mark.asyncio
async def test_write_on_closing_transport_faults(
    monkeypatch: pytest.MonkeyPatch, runtime_config: RuntimeConfig
) -> None:
    factory = FakeSerialFactory()
    _install(monkeypatch, factory)
    endpoint = SerialEndpoint(runtime_config)
    await endpoint.open()

    factory.transport.closing = True
    assert endpoint.send(b"x") is False
    assert endpoint.faulted
    await endpoint.close()
