"""Pytest configuration for MAVLink bridge tests."""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging
import sys
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
if str(PACKAGE_ROOT) not in sys.path:
    sys.path.insert(0, str(PACKAGE_ROOT))

import pytest
from mavbridge.config.settings import RuntimeConfig
from mavbridge.const import LOCAL_TRANSPORT_UDP, ROLE_HUB
from mavbridge.state.stats import BridgeStats

_HAS_PYTEST_ASYNCIO = importlib.util.find_spec("pytest_asyncio") is not None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Fallback asyncio runner when pytest-asyncio is unavailable."""
    if _HAS_PYTEST_ASYNCIO:
        return None
    if "asyncio" not in pyfuncitem.keywords:
        return None
    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
        loop.run_until_complete(test_function(**kwargs))
    finally:
        try:
            loop.run_until_complete(loop.shutdown_asyncgens())
        except (RuntimeError, ValueError):
            pass
        loop.close()
        asyncio.set_event_loop(None)
    return True


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)


@pytest.fixture()
def runtime_config() -> RuntimeConfig:
    """Field deployment with short timings suitable for tests."""
    return RuntimeConfig(
        serial_port="/dev/null",
        mqtt_host="localhost",
        mqtt_queue_limit=8,
        restart_backoff_ms=20,
        probe_cooldown_ms=1000,
        stats_interval=0,
    )


@pytest.fixture()
def hub_config() -> RuntimeConfig:
    return RuntimeConfig(
        role=ROLE_HUB,
        local_transport=LOCAL_TRANSPORT_UDP,
        udp_bind_host="127.0.0.1",
        udp_bind_port=0,
        udp_peer_host=None,
        inbound_topic="mavlink/from-thing",
        outbound_topic="mavlink/to-thing",
        restart_backoff_ms=20,
        stats_interval=0,
    )


@pytest.fixture()
def stats() -> BridgeStats:
    return BridgeStats()
