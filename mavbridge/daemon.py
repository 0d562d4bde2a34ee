#!/usr/bin/env python3
"""Async entry point for the MAVLink bridge daemon.

Architecture:
    main() -> BridgeDaemon -> TaskGroup
        ├── bridge-engine (BridgeEngine: local link <-> MQTT)
        └── stats-reporter (optional periodic summary)

The same daemon serves both deployments. A ``field`` bridge sits next to
the vehicle with the autopilot on a serial port (or UDP); a ``hub`` bridge
sits next to the ground station and faces it over UDP.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from typing import NoReturn

# uvloop is mandatory in production; fail immediately if it is missing.
import uvloop

from mavbridge import __version__
from mavbridge.config.logging import configure_logging
from mavbridge.config.settings import RuntimeConfig, load_runtime_config
from mavbridge.const import DEFAULT_CONFIG_PATH, LOCAL_TRANSPORT_SERIAL
from mavbridge.services.engine import BridgeEngine, EndpointFactory
from mavbridge.state.stats import BridgeStats
from mavbridge.transport import Endpoint, MqttEndpoint, SerialEndpoint, UdpEndpoint

logger = logging.getLogger("mavbridge")


def build_endpoint_factories(config: RuntimeConfig) -> tuple[EndpointFactory, EndpointFactory]:
    """Return ``(local, remote)`` factories for the configured deployment."""

    def local_factory(stats: BridgeStats) -> Endpoint:
        if config.local_transport == LOCAL_TRANSPORT_SERIAL:
            return SerialEndpoint(config, stats=stats)
        return UdpEndpoint(config, stats=stats)

    def remote_factory(stats: BridgeStats) -> Endpoint:
        return MqttEndpoint(config, stats=stats)

    return local_factory, remote_factory


class BridgeDaemon:
    """Own the bridge engine and its companions for one process.

    Attributes:
        config: Validated runtime configuration.
        stats: Counters shared by every bridge session.
        engine: The bridge engine driving both endpoints.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        local_factory: EndpointFactory | None = None,
        remote_factory: EndpointFactory | None = None,
    ) -> None:
        self.config = config
        self.stats = BridgeStats()
        default_local, default_remote = build_endpoint_factories(config)
        self.engine = BridgeEngine(
            config,
            local_factory or default_local,
            remote_factory or default_remote,
            stats=self.stats,
        )

    def request_stop(self) -> None:
        self.engine.stop()

    def _install_signal_handlers(self) -> list[signal.Signals]:
        loop = asyncio.get_running_loop()
        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("Signal handler for %s not installed", sig.name)
                continue
            installed.append(sig)
        return installed

    async def _run_stats_reporter(self) -> None:
        while True:
            await asyncio.sleep(self.config.stats_interval)
            logger.info(
                "Bridge summary (state=%s)",
                self.engine.state,
                extra={"stats": self.stats.as_dict()},
            )

    async def run(self) -> None:
        """Main async entry point."""
        installed = self._install_signal_handlers()
        loop = asyncio.get_running_loop()

        try:
            async with asyncio.TaskGroup() as task_group:
                reporter: asyncio.Task[None] | None = None
                if self.config.stats_interval > 0:
                    reporter = task_group.create_task(self._run_stats_reporter(), name="stats-reporter")
                try:
                    await self.engine.run()
                finally:
                    if reporter is not None:
                        reporter.cancel()
        except* asyncio.CancelledError:
            logger.info("Main task cancelled; shutting down.")
        except* Exception as exc_group:
            for group_exc in exc_group.exceptions:
                logger.critical(
                    "Unhandled exception in main task group: %s",
                    group_exc,
                    exc_info=group_exc,
                )
            raise
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            logger.info(
                "MAVLink bridge daemon stopped.",
                extra={"stats": self.stats.as_dict()},
            )


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="mavbridge",
        description="Bridge a MAVLink serial/UDP link to an MQTT broker.",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"path to the JSON configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="enable debug logging (hex dumps of every chunk)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> NoReturn:  # pragma: no cover (Entry point wrapper)
    args = _parse_args(argv)

    try:
        config = load_runtime_config(args.config)
    except RuntimeError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.critical("Startup aborted due to configuration error: %s", exc)
        sys.exit(1)

    if args.debug:
        config.debug_logging = True
    configure_logging(config)

    if config.local_transport == LOCAL_TRANSPORT_SERIAL:
        local_link = f"{config.serial_port}@{config.serial_baud}"
    else:
        local_link = f"udp {config.udp_bind_host}:{config.udp_bind_port}"
    logger.info(
        "Starting MAVLink bridge (%s). Local: %s MQTT: %s:%d",
        config.role,
        local_link,
        config.mqtt_host,
        config.mqtt_port,
    )

    try:
        daemon = BridgeDaemon(config)
        asyncio.run(daemon.run(), loop_factory=uvloop.new_event_loop)
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user.")
        sys.exit(0)
    except RuntimeError as exc:
        logger.critical("Startup aborted due to runtime error: %s", exc)
        sys.exit(1)
    except ExceptionGroup as exc_group:
        for group_exc in exc_group.exceptions:
            logger.critical("Fatal error in task group: %s", group_exc, exc_info=group_exc)
        sys.exit(1)
    except OSError as exc:
        logger.critical("System/OS error during daemon execution: %s", exc, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
