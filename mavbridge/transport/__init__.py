"""Transport endpoints for the MAVLink bridge."""

from .base import DataHandler, Endpoint, EndpointRole, FaultHandler
from .mqtt import MqttEndpoint
from .serial import SerialEndpoint
from .udp import UdpEndpoint

__all__ = [
    "DataHandler",
    "Endpoint",
    "EndpointRole",
    "FaultHandler",
    "MqttEndpoint",
    "SerialEndpoint",
    "UdpEndpoint",
]
