"""Uniform endpoint wrapper around one transport connection.

Each bridge session owns exactly one local and one remote endpoint. An
endpoint is single-use: once closed or faulted it is discarded and the next
session builds a fresh one, so listeners never accumulate across restarts.

Lifecycle::

    closed --open()--> opening --ready--> open --error--> faulted
                          |                   |
                          +----close()--------+--> closed

``send`` is fire-and-forget. While the endpoint is not open the data is
dropped and counted; nothing is queued for later delivery.
"""

from __future__ import annotations

import asyncio
import collections
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, ClassVar

from transitions import Machine

from ..const import DEFAULT_ENDPOINT_BACKLOG
from ..errors import ConnectFailure
from ..state.stats import BridgeStats

logger = logging.getLogger("mavbridge.transport")

DataHandler = Callable[[bytes], None]
FaultHandler = Callable[["Endpoint", str], None]


class EndpointRole(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


class Endpoint:
    """Base class for bridge endpoints with FSM-based state management.

    Subclasses implement ``_open_transport``, ``_write`` and
    ``_close_transport`` and report inbound traffic through ``_deliver`` and
    failures through ``_fault``.
    """

    if TYPE_CHECKING:
        fsm_state: str

        def trigger(self, trigger_name: str) -> bool: ...

    # FSM States
    STATE_CLOSED = "closed"
    STATE_OPENING = "opening"
    STATE_OPEN = "open"
    STATE_FAULTED = "faulted"

    OPEN_ERRORS: ClassVar[tuple[type[BaseException], ...]] = (OSError,)

    def __init__(
        self,
        role: EndpointRole,
        name: str,
        *,
        stats: BridgeStats | None = None,
        backlog_limit: int = DEFAULT_ENDPOINT_BACKLOG,
    ) -> None:
        self.role = role
        self.name = name
        self.stats = stats
        self.fault_reason: str | None = None
        self._on_data: DataHandler | None = None
        self._on_fault: FaultHandler | None = None
        self._backlog: collections.deque[bytes] = collections.deque()
        self._backlog_limit = backlog_limit
        self._used = False
        self._released = False
        self._fault_event = asyncio.Event()

        self.machine = Machine(
            model=self,
            states=[
                self.STATE_CLOSED,
                self.STATE_OPENING,
                self.STATE_OPEN,
                self.STATE_FAULTED,
            ],
            initial=self.STATE_CLOSED,
            model_attribute="fsm_state",
            ignore_invalid_triggers=True,
        )
        self.machine.add_transition("begin_open", self.STATE_CLOSED, self.STATE_OPENING)
        self.machine.add_transition("ready", self.STATE_OPENING, self.STATE_OPEN)
        self.machine.add_transition("fail", [self.STATE_OPENING, self.STATE_OPEN], self.STATE_FAULTED)
        self.machine.add_transition("shutdown", [self.STATE_OPENING, self.STATE_OPEN], self.STATE_CLOSED)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.fsm_state}>"

    @property
    def connected(self) -> bool:
        return self.fsm_state == self.STATE_OPEN

    @property
    def faulted(self) -> bool:
        return self.fsm_state == self.STATE_FAULTED

    @property
    def address(self) -> str:
        """Human-readable transport address used in log lines."""
        return self.name

    async def open(self) -> None:
        """Bring the transport up; raise :class:`ConnectFailure` if it cannot."""
        if self._used:
            raise RuntimeError(f"{self.name} endpoint instances are single-use")
        self._used = True
        self.trigger("begin_open")
        logger.info("Opening %s endpoint (%s)...", self.name, self.address)

        try:
            await self._open_transport()
        except asyncio.CancelledError:
            self.trigger("shutdown")
            await self._release()
            raise
        except self.OPEN_ERRORS as exc:
            self._fault(f"open failed: {exc}")
            await self._release()
            raise ConnectFailure(self.name, str(exc)) from exc

        if self.fsm_state != self.STATE_OPENING:
            await self._release()
            raise ConnectFailure(self.name, self.fault_reason or "closed while opening")

        self.trigger("ready")
        logger.info("%s endpoint open (%s).", self.name, self.address)

    def attach(self, on_data: DataHandler, on_fault: FaultHandler) -> None:
        """Install the pump callbacks and replay anything received before."""
        self._on_data = on_data
        self._on_fault = on_fault

        while self._backlog and self._on_data is not None:
            on_data(self._backlog.popleft())

        if self.fault_reason is not None and self._on_fault is not None:
            on_fault(self, self.fault_reason)

    def send(self, data: bytes) -> bool:
        """Write *data* if the endpoint is open; drop it otherwise."""
        if self.fsm_state != self.STATE_OPEN:
            if self.stats is not None:
                self.stats.record_send_suppressed(self.name)
            logger.debug("%s endpoint %s; dropped %d bytes", self.name, self.fsm_state, len(data))
            return False

        try:
            return self._write(data)
        except OSError as exc:
            logger.error("%s send failed: %s", self.name, exc)
            self._fault(f"send failed: {exc}")
            return False

    async def wait_faulted(self) -> str:
        """Block until the endpoint faults and return the reason."""
        await self._fault_event.wait()
        return self.fault_reason or ""

    async def close(self) -> None:
        """Release the transport. Safe to call any number of times."""
        self._on_data = None
        self._on_fault = None
        self._backlog.clear()
        self.trigger("shutdown")
        await self._release()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            await self._close_transport()
        except OSError as exc:
            logger.warning("Error while closing %s endpoint: %s", self.name, exc)
        logger.info("%s endpoint closed.", self.name)

    def _deliver(self, data: bytes) -> None:
        if self.fsm_state not in (self.STATE_OPENING, self.STATE_OPEN):
            return
        if self._on_data is not None:
            self._on_data(data)
            return
        if len(self._backlog) >= self._backlog_limit:
            self._backlog.popleft()
            if self.stats is not None:
                self.stats.record_backlog_drop()
            logger.warning("%s backlog full; oldest chunk dropped.", self.name)
        self._backlog.append(data)

    def _fault(self, reason: str) -> None:
        if self.fsm_state not in (self.STATE_OPENING, self.STATE_OPEN):
            return
        self.fault_reason = reason
        self.trigger("fail")
        self._fault_event.set()
        logger.warning("%s endpoint faulted: %s", self.name, reason)
        if self._on_fault is not None:
            self._on_fault(self, reason)

    async def _open_transport(self) -> None:
        raise NotImplementedError

    def _write(self, data: bytes) -> bool:
        raise NotImplementedError

    async def _close_transport(self) -> None:
        raise NotImplementedError


__all__ = ["DataHandler", "Endpoint", "EndpointRole", "FaultHandler"]
