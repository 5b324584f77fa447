import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from aiohttp import WSMsgType, web

from checkin_printer import constants
from checkin_printer.config import DaemonConfig, SessionConfig


class FakeDaemon:
    """In-process stand-in for the vendor print daemon."""

    def __init__(self) -> None:
        self.port = 0
        self.connections = 0
        self.requests: List[Dict[str, Any]] = []
        self.sockets: List[web.WebSocketResponse] = []
        self._replies: Dict[str, List[Dict[str, Any]]] = {
            "getAllPrinters": [
                {"errorCode": 0, "info": json.dumps({"ThermalPrinterA": 9100})}
            ],
        }
        self._ignored: set[str] = set()
        self._pushes_after: Dict[str, List[Dict[str, Any]]] = {}
        self.site: Optional[web.TCPSite] = None

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.port}"

    @property
    def calls(self) -> List[str]:
        return [request["apiName"] for request in self.requests]

    def requests_for(self, api_name: str) -> List[Dict[str, Any]]:
        return [request for request in self.requests if request["apiName"] == api_name]

    def reply(self, api_name: str, error_code: int = 0, info: str = "", **extra: Any) -> None:
        """Always answer ``api_name`` with the given resultAck."""
        self._replies[api_name] = [{"errorCode": error_code, "info": info, **extra}]

    def reply_sequence(self, api_name: str, acks: List[Dict[str, Any]]) -> None:
        """Answer successive ``api_name`` requests in order; the last ack repeats."""
        self._replies[api_name] = list(acks)

    def ignore(self, api_name: str) -> None:
        self._ignored.add(api_name)

    def push_after(self, api_name: str, **result_ack: Any) -> None:
        """Send a push message right after answering ``api_name``."""
        self._pushes_after.setdefault(api_name, []).append(result_ack)

    def complete_on_commit(self) -> None:
        self.push_after("commitJob", errorCode=0, printCopies=1, printPages=1)

    async def push(self, **result_ack: Any) -> None:
        for ws in list(self.sockets):
            await ws.send_json({"apiName": constants.PUSH_API_NAME, "resultAck": result_ack})

    async def send_raw(self, payload: Any) -> None:
        for ws in list(self.sockets):
            await ws.send_str(payload if isinstance(payload, str) else json.dumps(payload))

    async def stop_listening(self) -> None:
        """Refuse new connections; open sockets stay up."""
        if self.site is not None:
            await self.site.stop()
            self.site = None

    async def drop_connections(self) -> None:
        for ws in list(self.sockets):
            await ws.close()

    async def wait_for_connections(self, count: int, timeout: float = 2.0) -> None:
        async with asyncio.timeout(timeout):
            while self.connections < count or not self.sockets:
                await asyncio.sleep(0.01)

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.connections += 1
        self.sockets.append(ws)
        try:
            async for message in ws:
                if message.type == WSMsgType.TEXT:
                    await self._answer(ws, json.loads(message.data))
        finally:
            if ws in self.sockets:
                self.sockets.remove(ws)
        return ws

    async def _answer(self, ws: web.WebSocketResponse, payload: Dict[str, Any]) -> None:
        self.requests.append(payload)
        api_name = payload["apiName"]
        if api_name in self._ignored:
            return

        acks = self._replies.get(api_name) or [{"errorCode": 0, "info": ""}]
        ack = acks.pop(0) if len(acks) > 1 else acks[0]
        await ws.send_json({"apiName": api_name, "resultAck": ack})

        for push in self._pushes_after.get(api_name, []):
            await ws.send_json({"apiName": constants.PUSH_API_NAME, "resultAck": push})


@pytest_asyncio.fixture
async def fake_daemon(unused_tcp_port_factory):
    daemon = FakeDaemon()

    app = web.Application()
    app.router.add_get("/", daemon.handle)

    runner = web.AppRunner(app)
    await runner.setup()

    daemon.port = unused_tcp_port_factory()
    daemon.site = web.TCPSite(runner, "127.0.0.1", daemon.port)
    await daemon.site.start()

    try:
        yield daemon
    finally:
        await daemon.drop_connections()
        await runner.cleanup()


def make_daemon_config(url: str, **overrides: Any) -> DaemonConfig:
    values: Dict[str, Any] = {
        "url": url,
        "connect_timeout_seconds": 1.0,
        "request_timeout_seconds": 0.5,
        "reconnect_initial_seconds": 0.05,
        "reconnect_max_seconds": 0.2,
        "reconnect_jitter_ratio": 0.0,
        "reconnect_max_attempts": 5,
    }
    values.update(overrides)
    return DaemonConfig(**values)


def make_session_config(**overrides: Any) -> SessionConfig:
    values: Dict[str, Any] = {
        "stabilization_delay_seconds": 0.0,
        "select_attempts": 2,
        "select_retry_delay_seconds": 0.0,
    }
    values.update(overrides)
    return SessionConfig(**values)


@pytest.fixture
def unreachable_url(unused_tcp_port_factory) -> str:
    return f"ws://127.0.0.1:{unused_tcp_port_factory()}"


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
