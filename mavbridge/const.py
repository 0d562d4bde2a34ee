"""Shared constants and configuration defaults for the MAVLink bridge."""

from __future__ import annotations

from typing import Final

DEFAULT_CONFIG_PATH: Final[str] = "/etc/mavbridge/config.json"

ROLE_FIELD: Final[str] = "field"
ROLE_HUB: Final[str] = "hub"
LOCAL_TRANSPORT_SERIAL: Final[str] = "serial"
LOCAL_TRANSPORT_UDP: Final[str] = "udp"

DEFAULT_ROLE: Final[str] = ROLE_FIELD
DEFAULT_LOCAL_TRANSPORT: Final[str] = LOCAL_TRANSPORT_SERIAL

# Serial link
DEFAULT_SERIAL_PORT: Final[str] = "/dev/ttyS0"
DEFAULT_SERIAL_BAUD: Final[int] = 57600

# UDP link (ground control stations listen on 14550 by convention)
DEFAULT_UDP_BIND_HOST: Final[str] = "0.0.0.0"
DEFAULT_UDP_BIND_PORT: Final[int] = 14555
DEFAULT_UDP_PEER_HOST: Final[str] = "127.0.0.1"
DEFAULT_UDP_PEER_PORT: Final[int] = 14550

# MQTT
DEFAULT_MQTT_HOST: Final[str] = "localhost"
DEFAULT_MQTT_PORT: Final[int] = 1883
DEFAULT_MQTT_KEEPALIVE: Final[int] = 60
DEFAULT_MQTT_CONNECT_TIMEOUT: Final[float] = 10.0
DEFAULT_MQTT_QOS: Final[int] = 0
DEFAULT_MQTT_QUEUE_LIMIT: Final[int] = 256
DEFAULT_INBOUND_TOPIC: Final[str] = "mavlink/to-thing"
DEFAULT_OUTBOUND_TOPIC: Final[str] = "mavlink/from-thing"
DEFAULT_MQTT_WILL_PAYLOAD: Final[str] = "Connection Closed abnormally..!"

# Engine
DEFAULT_RESTART_BACKOFF_MS: Final[int] = 5000
DEFAULT_PROBE_COOLDOWN_MS: Final[int] = 1000
DEFAULT_STATS_INTERVAL: Final[float] = 60.0
DEFAULT_ENDPOINT_BACKLOG: Final[int] = 64

# MAVLink identities
DEFAULT_TARGET_SYSTEM_ID: Final[int] = 1
DEFAULT_TARGET_COMPONENT_ID: Final[int] = 1
DEFAULT_SOURCE_SYSTEM_ID: Final[int] = 255
DEFAULT_SOURCE_COMPONENT_ID: Final[int] = 190

DEFAULT_DEBUG_LOGGING: Final[bool] = False
