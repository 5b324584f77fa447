"""Main application entry-point for checkin-printer."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

from .adapters import ConnectionState, DaemonChannel
from .config import PrinterAppConfig, load_config
from .health import HealthReporter, HealthServer
from .jobs import BadgePrinter
from .logging import configure_logging
from .session import PrinterSession

LOGGER = logging.getLogger(__name__)


class CheckinPrinterApp:
    """Coordinates printer session startup, status reporting and shutdown.

    One instance owns the single daemon connection for the process; the
    session and badge printer hang off it and are handed to whatever serves
    check-in requests.
    """

    def __init__(
        self,
        config: Optional[PrinterAppConfig] = None,
        *,
        channel: Optional[DaemonChannel] = None,
    ) -> None:
        self._config = config or load_config()
        self.channel = channel or DaemonChannel(self._config.daemon)
        self.session = PrinterSession(self.channel, self._config.session)
        self.printer = BadgePrinter(
            self.session,
            label_config=self._config.label,
            job_config=self._config.job,
        )
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._background: Set[asyncio.Task[None]] = set()

    @property
    def config(self) -> PrinterAppConfig:
        return self._config

    @property
    def health(self) -> HealthReporter:
        return self._health

    async def run(self) -> None:
        self._shutdown_event = asyncio.Event()

        LOGGER.info("checkin-printer starting with config: %s", self._config.path)
        ready = await self.start_services()
        if not ready:
            LOGGER.warning("Printer not ready; running in degraded mode")

        try:
            LOGGER.info("checkin-printer active; awaiting shutdown signal")
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("checkin-printer received shutdown signal")
            raise
        finally:
            await self.stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def start_services(self) -> bool:
        self.channel.add_state_callback(self._on_connection_state)

        status = await self.session.initialize()
        await self._health.update_from_session(status)

        health_config = self._config.health
        if health_config.enabled:
            self._health_server = HealthServer(
                self._health,
                health_config.host,
                health_config.port,
                status_provider=self.session.status,
            )
            try:
                await self._health_server.start()
            except OSError as exc:
                LOGGER.error("Failed to start status endpoint: %s", exc)
                self._health_server = None

        return status.ready

    async def stop_services(self) -> None:
        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

        self.channel.remove_state_callback(self._on_connection_state)
        await self.session.disconnect()

        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()

    def _on_connection_state(self, state: ConnectionState) -> None:
        if state == ConnectionState.CONNECTING:
            return

        # Deferred so the session has processed the same transition first.
        task = asyncio.get_running_loop().create_task(self._refresh_health())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_health(self) -> None:
        await self._health.update_from_session(self.session.status())

    @classmethod
    def start(cls, config: Optional[PrinterAppConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("checkin-printer received shutdown signal")
