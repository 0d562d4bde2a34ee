"""Tests for RuntimeConfig validation and JSON loading."""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any

import msgspec
import pytest

from mavbridge.config import settings
from mavbridge.config.settings import RuntimeConfig, get_default_config, load_runtime_config

ETC_DIR = Path(__file__).resolve().parents[1] / "etc"


def _write(tmp_path: Path, payload: dict[str, Any]) -> Path:
    path = tmp_path / "config.json"
    path.write_bytes(msgspec.json.encode(payload))
    return path


def test_defaults_describe_field_bridge() -> None:
    config = RuntimeConfig()

    assert config.role == "field"
    assert config.local_transport == "serial"
    assert config.probe_enabled is True
    assert config.restart_backoff == 5.0
    assert config.probe_cooldown == 1.0
    assert config.udp_peer == ("127.0.0.1", 14550)


def test_hub_disables_probe_by_default() -> None:
    config = RuntimeConfig(role="hub", local_transport="udp")
    assert config.probe_enabled is False

    config = RuntimeConfig(role="hub", local_transport="udp", probe_enabled=True)
    assert config.probe_enabled is True


def test_get_default_config_matches_fields() -> None:
    defaults = get_default_config()

    assert set(defaults) == {f.name for f in dataclasses.fields(RuntimeConfig)}
    assert defaults["mavlink_crc_extras"] == {}
    assert defaults["probe_enabled"] is None


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    config = load_runtime_config(tmp_path / "absent.json")
    assert config == RuntimeConfig()


def test_load_json(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {
            "role": "hub",
            "local_transport": "udp",
            "udp_peer_host": None,
            "inbound_topic": "mavlink/from-thing",
            "outbound_topic": "mavlink/to-thing",
            "restart_backoff_ms": 250,
            "mavlink_crc_extras": {"9000000": 7},
        },
    )

    config = load_runtime_config(path)

    assert config.role == "hub"
    assert config.udp_peer is None
    assert config.restart_backoff == 0.25
    assert config.mavlink_crc_extras == {9000000: 7}


@pytest.mark.parametrize("name", ["field.json", "hub.json"])
def test_shipped_examples_load(name: str) -> None:
    config = load_runtime_config(ETC_DIR / name)
    assert config.inbound_topic != config.outbound_topic


def test_invalid_json_raises_runtime_error(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json")

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        load_runtime_config(path)


def test_wrong_type_raises_runtime_error(tmp_path: Path) -> None:
    path = _write(tmp_path, {"mqtt_port": "eighteen-eighty-three"})

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        load_runtime_config(path)


def test_semantic_error_raises_runtime_error(tmp_path: Path) -> None:
    path = _write(tmp_path, {"role": "hub", "local_transport": "serial"})

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        load_runtime_config(path)


def test_bad_crc_extra_fails_at_load(tmp_path: Path) -> None:
    path = _write(tmp_path, {"mavlink_crc_extras": {"9000000": 300}})

    with pytest.raises(RuntimeError, match="CRC_EXTRA 300"):
        load_runtime_config(path)


def test_unreadable_file_raises_runtime_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = _write(tmp_path, {})

    def _deny(self: Path) -> bytes:
        raise PermissionError("denied")

    monkeypatch.setattr(settings.Path, "read_bytes", _deny)
    with pytest.raises(RuntimeError, match="Cannot read configuration"):
        load_runtime_config(path)


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"role": "relay"}, "role must be"),
        ({"local_transport": "can"}, "local_transport must be"),
        ({"serial_port": "  "}, "serial_port"),
        ({"serial_baud": 0}, "serial_baud"),
        ({"mqtt_port": 70000}, "mqtt_port"),
        ({"udp_peer_port": 0}, "udp_peer_port"),
        ({"mqtt_qos": 3}, "mqtt_qos"),
        ({"mqtt_queue_limit": 0}, "mqtt_queue_limit"),
        ({"mqtt_connect_timeout": 0}, "mqtt_connect_timeout"),
        ({"mqtt_certfile": "/tmp/c.pem"}, "mqtt_keyfile"),
        ({"outbound_topic": "mavlink/#"}, "wildcards"),
        ({"mqtt_will_topic": "will/+"}, "wildcards"),
        ({"inbound_topic": "same", "outbound_topic": "same"}, "must differ"),
        ({"restart_backoff_ms": 0}, "restart_backoff_ms"),
        ({"probe_cooldown_ms": -1}, "probe_cooldown_ms"),
        ({"stats_interval": -5}, "stats_interval"),
        ({"target_system_id": 256}, "target_system_id"),
        ({"source_component_id": -1}, "source_component_id"),
        ({"probe_message_id": 1 << 24}, "probe_message_id"),
        ({"mavlink_crc_extras": {9000000: 256}}, "CRC_EXTRA 256"),
        ({"mavlink_crc_extras": {1 << 24: 7}}, "message id 16777216 out of range"),
    ],
)
def test_validation_rejects(overrides: dict[str, Any], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        RuntimeConfig(**overrides)


def test_password_not_in_repr() -> None:
    config = RuntimeConfig(mqtt_user="drone", mqtt_pass="hunter2")
    assert "hunter2" not in repr(config)
