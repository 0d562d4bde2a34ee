"""Bridge engine and keep-alive prober."""

from .engine import BridgeEngine, BridgeSession, CodecFactory, EndpointFactory
from .prober import KeepAliveProber, ProbeSender

__all__ = [
    "BridgeEngine",
    "BridgeSession",
    "CodecFactory",
    "EndpointFactory",
    "KeepAliveProber",
    "ProbeSender",
]
