"""MQTT endpoint for the MAVLink bridge.

Subscribes to the inbound topic and relays every message payload to the
pump; publishes outbound frames from a bounded queue so ``send`` never
awaits. Any broker error, disconnect or end of the message stream faults the
endpoint; reconnection is the engine's job, not the client's.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import AsyncExitStack

import aiomqtt

from ..config.settings import RuntimeConfig
from ..state.stats import BridgeStats
from ..util import log_hexdump
from ..util.mqtt_helper import configure_tls_context
from .base import Endpoint, EndpointRole

logger = logging.getLogger("mavbridge.mqtt")


class MqttEndpoint(Endpoint):
    """Remote endpoint backed by :class:`aiomqtt.Client`."""

    OPEN_ERRORS = (aiomqtt.MqttError, OSError, asyncio.TimeoutError)

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        role: EndpointRole = EndpointRole.REMOTE,
        stats: BridgeStats | None = None,
    ) -> None:
        super().__init__(role, "mqtt", stats=stats)
        self.config = config
        self._client: aiomqtt.Client | None = None
        self._stack: AsyncExitStack | None = None
        self._outbox: asyncio.Queue[bytes] = asyncio.Queue(maxsize=config.mqtt_queue_limit)
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def address(self) -> str:
        return (
            f"{self.config.mqtt_host}:{self.config.mqtt_port} "
            f"sub={self.config.inbound_topic} pub={self.config.outbound_topic}"
        )

    def _build_client(self) -> aiomqtt.Client:
        will = None
        if self.config.mqtt_will_topic:
            will = aiomqtt.Will(
                topic=self.config.mqtt_will_topic,
                payload=self.config.mqtt_will_payload,
                qos=0,
                retain=False,
            )

        if not self.config.mqtt_user:
            logger.warning(
                "MQTT connecting without authentication (anonymous); "
                "consider setting mqtt_user/mqtt_pass for production"
            )

        return aiomqtt.Client(
            hostname=self.config.mqtt_host,
            port=self.config.mqtt_port,
            username=self.config.mqtt_user or None,
            password=self.config.mqtt_pass or None,
            identifier=self.config.mqtt_client_id or None,
            tls_context=configure_tls_context(self.config),
            keepalive=self.config.mqtt_keepalive,
            timeout=self.config.mqtt_connect_timeout,
            will=will,
            logger=logging.getLogger("mavbridge.mqtt.client"),
        )

    async def _open_transport(self) -> None:
        client = self._build_client()
        self._stack = AsyncExitStack()
        await self._stack.enter_async_context(client)
        self._client = client
        logger.info("Connected to MQTT broker %s:%d.", self.config.mqtt_host, self.config.mqtt_port)

        await client.subscribe(self.config.inbound_topic, qos=self.config.mqtt_qos)
        logger.info("Subscribed to %s.", self.config.inbound_topic)

        self._tasks = [
            asyncio.create_task(self._subscriber_loop(client), name="mqtt-subscriber"),
            asyncio.create_task(self._publisher_loop(client), name="mqtt-publisher"),
        ]

    def _write(self, data: bytes) -> bool:
        try:
            self._outbox.put_nowait(data)
        except asyncio.QueueFull:
            logger.warning("MQTT outbox full (%d); frame dropped.", self.config.mqtt_queue_limit)
            if self.stats is not None:
                self.stats.record_send_suppressed(self.name)
            return False
        return True

    async def _subscriber_loop(self, client: aiomqtt.Client) -> None:
        try:
            async for message in client.messages:
                payload = message.payload
                if not isinstance(payload, (bytes, bytearray)):
                    logger.warning("Ignoring non-binary MQTT payload on %s", message.topic)
                    continue
                data = bytes(payload)
                if logger.isEnabledFor(logging.DEBUG):
                    log_hexdump(logger, logging.DEBUG, f"MQTT SUB < {message.topic}", data)
                self._deliver(data)
        except aiomqtt.MqttError as exc:
            self._fault(f"subscriber interrupted: {exc}")
        else:
            self._fault("message stream ended")

    async def _publisher_loop(self, client: aiomqtt.Client) -> None:
        while True:
            payload = await self._outbox.get()
            if logger.isEnabledFor(logging.DEBUG):
                log_hexdump(logger, logging.DEBUG, f"MQTT PUB > {self.config.outbound_topic}", payload)
            try:
                await client.publish(
                    self.config.outbound_topic,
                    payload,
                    qos=self.config.mqtt_qos,
                )
            except aiomqtt.MqttError as exc:
                self._fault(f"publish failed: {exc}")
                return
            finally:
                self._outbox.task_done()

    async def _close_transport(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()

        stack, self._stack = self._stack, None
        self._client = None
        if stack is None:
            return
        try:
            await stack.aclose()
        except aiomqtt.MqttError as exc:
            logger.debug("MQTT disconnect error ignored: %s", exc)


__all__ = ["MqttEndpoint"]
