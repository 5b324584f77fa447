"""Health and printer status endpoints."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from aiohttp import web

from .session import SessionStatus

LOGGER = logging.getLogger(__name__)

StatusProvider = Callable[[], SessionStatus]


@dataclass(slots=True)
class ComponentStatus:
    name: str
    healthy: bool
    detail: Optional[str] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "detail": self.detail,
            "updatedAt": self.updated_at.isoformat(timespec="seconds"),
        }


class HealthReporter:
    """Tracks the health of the daemon connection and the selected printer."""

    def __init__(self) -> None:
        self._status: Dict[str, ComponentStatus] = {}
        self._lock = asyncio.Lock()

    async def update(
        self, name: str, healthy: bool, detail: Optional[str] = None
    ) -> None:
        async with self._lock:
            previous = self._status.get(name)
            if previous is None or previous.healthy != healthy:
                LOGGER.debug("Component %s healthy=%s (%s)", name, healthy, detail)
            self._status[name] = ComponentStatus(
                name=name, healthy=healthy, detail=detail
            )

    async def update_from_session(self, status: SessionStatus) -> None:
        await self.update(
            "daemon",
            status.connected,
            "connected" if status.connected else status.initialization_error or "disconnected",
        )
        await self.update("printer", status.ready, status.selected_printer or status.state.value)

    async def snapshot(self) -> Dict[str, object]:
        async with self._lock:
            components = [status.as_dict() for status in self._status.values()]

        healthy = bool(components) and all(item["healthy"] for item in components)
        return {"status": "ok" if healthy else "degraded", "components": components}


class HealthServer:
    """HTTP server exposing `/healthz` and `/printer`."""

    def __init__(
        self,
        reporter: HealthReporter,
        host: str,
        port: int,
        *,
        status_provider: Optional[StatusProvider] = None,
    ) -> None:
        self._reporter = reporter
        self._host = host
        self._port = port
        self._status_provider = status_provider
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_get("/printer", self._handle_printer)

        self._runner = web.AppRunner(app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info(
            "Status endpoint listening on http://%s:%s/healthz", self._host, self._port
        )

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    async def _handle_health(self, request: web.Request) -> web.Response:
        snapshot = await self._reporter.snapshot()
        status = 200 if snapshot["status"] == "ok" else 503
        return web.json_response(snapshot, status=status)

    async def _handle_printer(self, request: web.Request) -> web.Response:
        if self._status_provider is None:
            raise web.HTTPNotFound()
        return web.json_response(self._status_provider().as_dict())
