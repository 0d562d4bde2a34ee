"""Settings loader for the MAVLink bridge daemon.

Configuration is a flat JSON object (see ``etc/`` for both deployments).
Every key is optional; missing keys fall back to the defaults declared in
:mod:`mavbridge.const`. Environment variables are not used as overrides.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import msgspec

from ..const import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_INBOUND_TOPIC,
    DEFAULT_LOCAL_TRANSPORT,
    DEFAULT_MQTT_CONNECT_TIMEOUT,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_KEEPALIVE,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_QOS,
    DEFAULT_MQTT_QUEUE_LIMIT,
    DEFAULT_MQTT_WILL_PAYLOAD,
    DEFAULT_OUTBOUND_TOPIC,
    DEFAULT_PROBE_COOLDOWN_MS,
    DEFAULT_RESTART_BACKOFF_MS,
    DEFAULT_ROLE,
    DEFAULT_SERIAL_BAUD,
    DEFAULT_SERIAL_PORT,
    DEFAULT_SOURCE_COMPONENT_ID,
    DEFAULT_SOURCE_SYSTEM_ID,
    DEFAULT_STATS_INTERVAL,
    DEFAULT_TARGET_COMPONENT_ID,
    DEFAULT_TARGET_SYSTEM_ID,
    DEFAULT_UDP_BIND_HOST,
    DEFAULT_UDP_BIND_PORT,
    DEFAULT_UDP_PEER_HOST,
    DEFAULT_UDP_PEER_PORT,
    LOCAL_TRANSPORT_SERIAL,
    LOCAL_TRANSPORT_UDP,
    ROLE_FIELD,
    ROLE_HUB,
)
from ..protocol.mavlink import MAVLINK_MSG_ID_PROTOCOL_VERSION, MSG_ID_MAX, build_message_table

logger = logging.getLogger(__name__)

_MQTT_WILDCARDS = ("+", "#")


@dataclass(slots=True)
class RuntimeConfig:
    """Strongly typed configuration for the daemon."""

    role: str = DEFAULT_ROLE
    local_transport: str = DEFAULT_LOCAL_TRANSPORT

    serial_port: str = DEFAULT_SERIAL_PORT
    serial_baud: int = DEFAULT_SERIAL_BAUD

    udp_bind_host: str = DEFAULT_UDP_BIND_HOST
    udp_bind_port: int = DEFAULT_UDP_BIND_PORT
    udp_peer_host: str | None = DEFAULT_UDP_PEER_HOST
    udp_peer_port: int = DEFAULT_UDP_PEER_PORT

    mqtt_host: str = DEFAULT_MQTT_HOST
    mqtt_port: int = DEFAULT_MQTT_PORT
    mqtt_user: str | None = None
    mqtt_pass: str | None = field(repr=False, default=None)
    mqtt_tls: bool = False
    mqtt_tls_insecure: bool = False
    mqtt_cafile: str | None = None
    mqtt_certfile: str | None = None
    mqtt_keyfile: str | None = None
    mqtt_client_id: str | None = None
    mqtt_keepalive: int = DEFAULT_MQTT_KEEPALIVE
    mqtt_connect_timeout: float = DEFAULT_MQTT_CONNECT_TIMEOUT
    mqtt_qos: int = DEFAULT_MQTT_QOS
    mqtt_queue_limit: int = DEFAULT_MQTT_QUEUE_LIMIT
    mqtt_will_topic: str | None = None
    mqtt_will_payload: str = DEFAULT_MQTT_WILL_PAYLOAD

    inbound_topic: str = DEFAULT_INBOUND_TOPIC
    outbound_topic: str = DEFAULT_OUTBOUND_TOPIC

    restart_backoff_ms: int = DEFAULT_RESTART_BACKOFF_MS
    probe_enabled: bool | None = None
    probe_cooldown_ms: int = DEFAULT_PROBE_COOLDOWN_MS
    target_system_id: int = DEFAULT_TARGET_SYSTEM_ID
    target_component_id: int = DEFAULT_TARGET_COMPONENT_ID
    probe_message_id: int = MAVLINK_MSG_ID_PROTOCOL_VERSION
    source_system_id: int = DEFAULT_SOURCE_SYSTEM_ID
    source_component_id: int = DEFAULT_SOURCE_COMPONENT_ID
    mavlink_crc_extras: dict[int, int] = field(default_factory=dict)

    stats_interval: float = DEFAULT_STATS_INTERVAL
    debug_logging: bool = DEFAULT_DEBUG_LOGGING

    @property
    def restart_backoff(self) -> float:
        """Restart delay in seconds."""
        return self.restart_backoff_ms / 1000.0

    @property
    def probe_cooldown(self) -> float:
        """Probe cooldown window in seconds."""
        return self.probe_cooldown_ms / 1000.0

    @property
    def udp_peer(self) -> tuple[str, int] | None:
        if self.udp_peer_host is None:
            return None
        return (self.udp_peer_host, self.udp_peer_port)

    def __post_init__(self) -> None:
        if self.role not in (ROLE_FIELD, ROLE_HUB):
            raise ValueError(f"role must be '{ROLE_FIELD}' or '{ROLE_HUB}', got {self.role!r}")
        if self.local_transport not in (LOCAL_TRANSPORT_SERIAL, LOCAL_TRANSPORT_UDP):
            raise ValueError(
                f"local_transport must be '{LOCAL_TRANSPORT_SERIAL}' or '{LOCAL_TRANSPORT_UDP}', "
                f"got {self.local_transport!r}"
            )
        if self.role == ROLE_HUB and self.local_transport != LOCAL_TRANSPORT_UDP:
            raise ValueError("hub bridges face the ground station and require local_transport 'udp'")
        if self.probe_enabled is None:
            self.probe_enabled = self.role == ROLE_FIELD

        self._validate_local_link()
        self._validate_mqtt()
        self._validate_engine()

        if not self.mqtt_tls:
            logger.warning(
                "MQTT TLS is disabled; MQTT credentials and payloads "
                "will be sent in plaintext."
            )
        elif self.mqtt_tls_insecure:
            logger.warning(
                "MQTT TLS hostname verification is disabled (mqtt_tls_insecure); "
                "use this only for known/self-hosted brokers."
            )

    def _validate_local_link(self) -> None:
        if self.local_transport == LOCAL_TRANSPORT_SERIAL:
            self.serial_port = self._require_text("serial_port", self.serial_port)
            self.serial_baud = self._require_positive("serial_baud", self.serial_baud)
        self.udp_bind_port = self._require_port("udp_bind_port", self.udp_bind_port, allow_zero=True)
        if self.udp_peer_host is not None:
            self.udp_peer_host = self._require_text("udp_peer_host", self.udp_peer_host)
            self.udp_peer_port = self._require_port("udp_peer_port", self.udp_peer_port)

    def _validate_mqtt(self) -> None:
        self.mqtt_host = self._require_text("mqtt_host", self.mqtt_host)
        self.mqtt_port = self._require_port("mqtt_port", self.mqtt_port)
        self.mqtt_keepalive = self._require_positive("mqtt_keepalive", self.mqtt_keepalive)
        self.mqtt_queue_limit = self._require_positive("mqtt_queue_limit", self.mqtt_queue_limit)
        if self.mqtt_connect_timeout <= 0:
            raise ValueError("mqtt_connect_timeout must be a positive number")
        if self.mqtt_qos not in (0, 1, 2):
            raise ValueError(f"mqtt_qos must be 0, 1 or 2, got {self.mqtt_qos}")
        if bool(self.mqtt_certfile) != bool(self.mqtt_keyfile):
            raise ValueError("Both mqtt_certfile and mqtt_keyfile must be provided for mTLS.")

        self.inbound_topic = self._require_text("inbound_topic", self.inbound_topic)
        self.outbound_topic = self._require_text("outbound_topic", self.outbound_topic)
        for name in ("outbound_topic", "mqtt_will_topic"):
            value = getattr(self, name)
            if value and any(wildcard in value for wildcard in _MQTT_WILDCARDS):
                raise ValueError(f"{name} must not contain MQTT wildcards")
        if self.inbound_topic == self.outbound_topic:
            raise ValueError("inbound_topic and outbound_topic must differ")

    def _validate_engine(self) -> None:
        self.restart_backoff_ms = self._require_positive("restart_backoff_ms", self.restart_backoff_ms)
        if self.probe_cooldown_ms < 0:
            raise ValueError("probe_cooldown_ms must not be negative")
        if self.stats_interval < 0:
            raise ValueError("stats_interval must not be negative")
        for name in ("target_system_id", "target_component_id", "source_system_id", "source_component_id"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFF:
                raise ValueError(f"{name} must be within 0..255, got {value}")
        if not 0 <= self.probe_message_id <= MSG_ID_MAX:
            raise ValueError(f"probe_message_id {self.probe_message_id} out of range")
        # Same checks the codec applies when a session builds its table.
        build_message_table(self.mavlink_crc_extras)

    @staticmethod
    def _require_positive(name: str, value: int) -> int:
        if value <= 0:
            raise ValueError(f"{name} must be a positive integer")
        return value

    @staticmethod
    def _require_text(name: str, value: str) -> str:
        candidate = (value or "").strip()
        if not candidate:
            raise ValueError(f"{name} must be a non-empty string")
        return candidate

    @staticmethod
    def _require_port(name: str, value: int, *, allow_zero: bool = False) -> int:
        lower = 0 if allow_zero else 1
        if not lower <= value <= 65535:
            raise ValueError(f"{name} must be within {lower}..65535, got {value}")
        return value


def get_default_config() -> dict[str, Any]:
    """Provide default bridge configuration values.

    Derived from the ``RuntimeConfig`` field defaults so the dataclass stays
    the single source of truth.
    """
    defaults: dict[str, Any] = {}
    for fi in dataclasses.fields(RuntimeConfig):
        if fi.default is not dataclasses.MISSING:
            defaults[fi.name] = fi.default
        elif fi.default_factory is not dataclasses.MISSING:
            defaults[fi.name] = fi.default_factory()
    return defaults


def load_runtime_config(path: str | Path | None = None) -> RuntimeConfig:
    """Load configuration from a JSON file, falling back to defaults."""

    config_path = Path(path or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        logger.warning("Configuration file %s not found; using defaults.", config_path)
        return RuntimeConfig()

    try:
        raw = config_path.read_bytes()
    except OSError as exc:
        raise RuntimeError(f"Cannot read configuration {config_path}: {exc}") from exc

    try:
        return msgspec.json.decode(raw, type=RuntimeConfig)
    except (msgspec.ValidationError, msgspec.DecodeError, ValueError, TypeError) as exc:
        raise RuntimeError(f"Invalid configuration {config_path}: {exc}") from exc


__all__ = ["RuntimeConfig", "get_default_config", "load_runtime_config"]
