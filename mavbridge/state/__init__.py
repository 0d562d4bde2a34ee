"""Runtime state helpers for the MAVLink bridge."""

from .stats import BridgeStats

__all__ = ["BridgeStats"]
