"""Fault types raised inside the bridge lifecycle."""

from __future__ import annotations


class BridgeFault(Exception):
    """Base class for conditions that end one bridge session."""

    def __init__(self, endpoint: str, reason: str) -> None:
        super().__init__(f"{endpoint}: {reason}")
        self.endpoint = endpoint
        self.reason = reason


class ConnectFailure(BridgeFault):
    """An endpoint could not be opened."""


class RuntimeFault(BridgeFault):
    """An open endpoint failed while the bridge was active."""


__all__ = ["BridgeFault", "ConnectFailure", "RuntimeFault"]
