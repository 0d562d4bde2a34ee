"""Two-endpoint bridge engine.

The engine brings a local link (serial or UDP, carrying MAVLink) and a remote
MQTT channel up as a unit, pumps data between them, and tears both down on
the first fault before starting over after a fixed backoff.

Lifecycle::

    idle --connect--> connecting --activate--> active
      ^                   |                       |
      |                 drain                   drain
      |                   v                       |
      +----settle---- draining <------------------+

    (any) --halt--> stopped

Data pump (only while active)::

    local chunk  -> codec -> valid   -> remote.send(frame.payload)
                          -> invalid -> prober.notify_invalid()
    remote chunk -> local.send(chunk)

The pump never awaits. The only suspension points are the two ``open()``
calls and the backoff sleep, and ``stop()`` is observed at each of them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import tenacity
from transitions import Machine

from ..config.settings import RuntimeConfig
from ..errors import BridgeFault, ConnectFailure, RuntimeFault
from ..protocol.codec import MavlinkCodec, ValidFrame
from ..state.stats import BridgeStats
from ..transport.base import Endpoint
from .prober import KeepAliveProber

logger = logging.getLogger("mavbridge.engine")

EndpointFactory = Callable[[BridgeStats], Endpoint]
CodecFactory = Callable[[], MavlinkCodec]


@dataclass(slots=True)
class BridgeSession:
    """Endpoints, codec and prober belonging to one lifecycle attempt."""

    local: Endpoint
    remote: Endpoint
    codec: MavlinkCodec
    prober: KeepAliveProber

    @property
    def endpoints(self) -> tuple[Endpoint, Endpoint]:
        return (self.local, self.remote)


class BridgeEngine:
    """Run bridge sessions until stopped, restarting after every fault."""

    if TYPE_CHECKING:
        fsm_state: str

        def trigger(self, trigger_name: str) -> bool: ...

    # FSM States
    STATE_IDLE = "idle"
    STATE_CONNECTING = "connecting"
    STATE_ACTIVE = "active"
    STATE_DRAINING = "draining"
    STATE_STOPPED = "stopped"

    def __init__(
        self,
        config: RuntimeConfig,
        local_factory: EndpointFactory,
        remote_factory: EndpointFactory,
        codec_factory: CodecFactory | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        stats: BridgeStats | None = None,
    ) -> None:
        self.config = config
        self.stats = stats or BridgeStats()
        self.session: BridgeSession | None = None
        self._local_factory = local_factory
        self._remote_factory = remote_factory
        self._codec_factory = codec_factory or self._default_codec
        self._clock = clock
        self._stop_event = asyncio.Event()

        self.state_machine = Machine(
            model=self,
            states=[
                self.STATE_IDLE,
                self.STATE_CONNECTING,
                self.STATE_ACTIVE,
                self.STATE_DRAINING,
                self.STATE_STOPPED,
            ],
            initial=self.STATE_IDLE,
            ignore_invalid_triggers=True,
            model_attribute="fsm_state",
            after_state_change="_log_state",
        )
        self.state_machine.add_transition("connect", self.STATE_IDLE, self.STATE_CONNECTING)
        self.state_machine.add_transition("activate", self.STATE_CONNECTING, self.STATE_ACTIVE)
        self.state_machine.add_transition(
            "drain", [self.STATE_CONNECTING, self.STATE_ACTIVE], self.STATE_DRAINING
        )
        self.state_machine.add_transition("settle", self.STATE_DRAINING, self.STATE_IDLE)
        self.state_machine.add_transition("halt", "*", self.STATE_STOPPED)

    @property
    def state(self) -> str:
        return self.fsm_state

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask the engine to close both endpoints and not restart."""
        if not self._stop_event.is_set():
            logger.info("Bridge stop requested (state=%s).", self.fsm_state)
        self._stop_event.set()

    async def run(self) -> None:
        """Run sessions back to back until :meth:`stop` is called."""
        retryer = tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception_type(BridgeFault),
            wait=tenacity.wait_fixed(self.config.restart_backoff),
            stop=tenacity.stop_never,
            sleep=self._sleep_unless_stopped,
            before_sleep=self._before_sleep_log,
            reraise=True,
        )

        try:
            async for attempt in retryer:
                with attempt:
                    if self._stop_event.is_set():
                        return
                    await self._run_session()
        finally:
            self.trigger("halt")
            logger.info("Bridge engine stopped.")

    def _default_codec(self) -> MavlinkCodec:
        return MavlinkCodec(
            source_system=self.config.source_system_id,
            source_component=self.config.source_component_id,
            crc_extras=self.config.mavlink_crc_extras,
        )

    def _build_session(self) -> BridgeSession:
        local = self._local_factory(self.stats)
        remote = self._remote_factory(self.stats)
        codec = self._codec_factory()
        prober = KeepAliveProber(
            codec,
            local.send,
            cooldown=self.config.probe_cooldown,
            target_system=self.config.target_system_id,
            target_component=self.config.target_component_id,
            message_id=self.config.probe_message_id,
            enabled=bool(self.config.probe_enabled),
            clock=self._clock,
            stats=self.stats,
        )
        return BridgeSession(local=local, remote=remote, codec=codec, prober=prober)

    async def _run_session(self) -> None:
        self.trigger("connect")
        self.stats.record_session_started()
        session = self._build_session()
        self.session = session
        loop = asyncio.get_running_loop()
        fault: asyncio.Future[tuple[Endpoint, str]] = loop.create_future()

        try:
            try:
                if not await self._open_endpoints(session):
                    return
            except ConnectFailure as exc:
                self.stats.record_fault(str(exc), connecting=True)
                logger.error("Bridge connect failed: %s", exc)
                raise

            self.trigger("activate")
            self._attach_pump(session, fault)
            logger.info(
                "Bridge active: %s <-> %s",
                session.local.address,
                session.remote.address,
            )

            stop_waiter = asyncio.create_task(self._stop_event.wait())
            try:
                await asyncio.wait({fault, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                stop_waiter.cancel()

            if fault.done():
                endpoint, reason = fault.result()
                exc = RuntimeFault(endpoint.name, reason)
                self.stats.record_fault(str(exc), connecting=False)
                logger.error("Bridge session faulted: %s", exc)
                raise exc
        finally:
            if not fault.done():
                fault.cancel()
            self.trigger("drain")
            await self._close_session(session)

    async def _open_endpoints(self, session: BridgeSession) -> bool:
        """Open both endpoints concurrently.

        Returns False when stopped before both are open. The first failure
        cancels the other open and surfaces as :class:`ConnectFailure`.
        """
        tasks = {
            asyncio.create_task(endpoint.open(), name=f"open-{endpoint.name}"): endpoint
            for endpoint in session.endpoints
        }
        pending: set[asyncio.Task[None]] = set(tasks)
        stop_waiter = asyncio.create_task(self._stop_event.wait())
        watchers: set[asyncio.Future[Any]] = {stop_waiter}
        watchers.update(asyncio.create_task(endpoint.wait_faulted()) for endpoint in session.endpoints)

        try:
            while pending:
                done, _ = await asyncio.wait(pending | watchers, return_when=asyncio.FIRST_COMPLETED)
                if stop_waiter in done:
                    logger.info("Stop requested while connecting.")
                    return False
                watchers.difference_update(done)

                for task in done & pending:
                    pending.discard(task)
                    exc = task.exception()
                    if exc is not None:
                        raise exc

                # An endpoint may already be gone while its peer is still opening.
                for task, endpoint in tasks.items():
                    if task.done() and endpoint.faulted:
                        raise ConnectFailure(endpoint.name, endpoint.fault_reason or "faulted")
            return True
        finally:
            for waiter in watchers:
                waiter.cancel()
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    def _attach_pump(
        self, session: BridgeSession, fault: asyncio.Future[tuple[Endpoint, str]]
    ) -> None:
        def on_fault(endpoint: Endpoint, reason: str) -> None:
            if not fault.done():
                fault.set_result((endpoint, reason))

        def on_local_data(chunk: bytes) -> None:
            self._pump_local(session, chunk)

        def on_remote_data(chunk: bytes) -> None:
            self._pump_remote(session, chunk)

        session.remote.attach(on_remote_data, on_fault)
        session.local.attach(on_local_data, on_fault)

    def _pump_local(self, session: BridgeSession, chunk: bytes) -> None:
        for frame in session.codec.feed(chunk):
            if isinstance(frame, ValidFrame):
                if session.remote.send(frame.payload):
                    self.stats.record_forwarded(len(frame.payload))
                    logger.debug("send %d as %s", len(frame.payload), frame.name)
                else:
                    self.stats.record_frame_skipped()
                    logger.debug("skip send %s", frame.name)
            else:
                logger.debug("invalid frame (%s, %d bytes)", frame.reason, len(frame.raw))
                session.prober.notify_invalid()

    def _pump_remote(self, session: BridgeSession, chunk: bytes) -> None:
        if session.local.send(chunk):
            self.stats.record_relayed(len(chunk))
            logger.debug("recv %d", len(chunk))
        else:
            self.stats.record_chunk_skipped()
            logger.debug("skip recv")

    async def _close_session(self, session: BridgeSession) -> None:
        results = await asyncio.gather(
            *(endpoint.close() for endpoint in session.endpoints),
            return_exceptions=True,
        )
        for endpoint, result in zip(session.endpoints, results):
            if isinstance(result, BaseException):
                logger.warning("Error closing %s endpoint: %s", endpoint.name, result)

    async def _sleep_unless_stopped(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            self.trigger("settle")

    def _before_sleep_log(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning("Bridge session ended (%s); restarting in %.1fs", exc, delay)

    def _log_state(self) -> None:
        logger.debug("Bridge state -> %s", self.fsm_state)


__all__ = ["BridgeEngine", "BridgeSession", "CodecFactory", "EndpointFactory"]
