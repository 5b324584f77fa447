"""Websocket transport to the local print daemon."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import random
from enum import Enum
from typing import List, Optional

import aiohttp

from .. import constants
from ..config import DaemonConfig
from ..core.correlator import OperationNameCorrelator
from ..core.events import EventDispatcher
from ..core.models import DaemonCapabilities, DaemonRequest, DaemonResponse
from ..core.protocols import RequestCorrelator, StateChangeCallback
from ..operation_names import OperationNames

LOGGER = logging.getLogger(__name__)


class DaemonConnectionError(RuntimeError):
    """Raised when the websocket handshake with the print daemon fails."""


class ConnectionState(str, Enum):
    """Current state of the daemon connection."""

    CLOSED = "closed"
    """No socket; either never opened, dropped, or closed by the caller."""

    CONNECTING = "connecting"
    """Handshake in progress."""

    OPEN = "open"
    """Handshake confirmed; requests may be sent."""


class DaemonChannel:
    """Single persistent connection to the print daemon.

    Incoming text frames are decoded once and routed either to the event
    dispatcher (push messages) or to the request correlator (responses).
    An unexpected drop triggers reconnection with exponential backoff; a
    caller-requested close does not.
    """

    def __init__(
        self,
        config: DaemonConfig,
        *,
        correlator: Optional[RequestCorrelator] = None,
        dispatcher: Optional[EventDispatcher] = None,
        session: Optional[aiohttp.ClientSession] = None,
        operations: Optional[frozenset[str]] = None,
    ) -> None:
        self.config = config
        self.correlator: RequestCorrelator = correlator or OperationNameCorrelator(
            push_api_name=config.push_api_name
        )
        self.dispatcher = dispatcher or EventDispatcher(
            push_api_name=config.push_api_name
        )
        self._operations = operations if operations is not None else OperationNames.ALL

        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._state = ConnectionState.CLOSED
        self._intentional_close = False
        self._state_callbacks: List[StateChangeCallback] = []
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._open_lock = asyncio.Lock()
        self._capabilities: Optional[DaemonCapabilities] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def endpoint(self) -> str:
        return self.config.url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return (
            self._state == ConnectionState.OPEN
            and self._ws is not None
            and not self._ws.closed
        )

    @property
    def intentional_close(self) -> bool:
        return self._intentional_close

    @property
    def capabilities(self) -> Optional[DaemonCapabilities]:
        return self._capabilities

    async def open(
        self, on_state_change: Optional[StateChangeCallback] = None
    ) -> DaemonCapabilities:
        """Open the connection, or return immediately if it is already open.

        Raises:
            DaemonConnectionError: If the daemon cannot be reached in time.
        """

        if on_state_change is not None:
            self.add_state_callback(on_state_change)

        async with self._open_lock:
            if self.is_open and self._capabilities is not None:
                return self._capabilities

            self._intentional_close = False
            await self._connect()

        assert self._capabilities is not None
        return self._capabilities

    def add_state_callback(self, callback: StateChangeCallback) -> None:
        if callback not in self._state_callbacks:
            self._state_callbacks.append(callback)

    def remove_state_callback(self, callback: StateChangeCallback) -> None:
        with contextlib.suppress(ValueError):
            self._state_callbacks.remove(callback)

    async def send(
        self, request: DaemonRequest, timeout: Optional[float] = None
    ) -> DaemonResponse:
        """Send ``request`` and wait for its response.

        Never raises for transport problems: a closed socket yields a
        NOT_CONNECTED response immediately, a missing reply a TIMEOUT one.
        """

        timeout_value = (
            timeout if timeout is not None else self.config.request_timeout_seconds
        )
        api_name = request.api_name
        ws = self._ws

        if ws is None or ws.closed or self._state != ConnectionState.OPEN:
            LOGGER.debug("Not sending %s: print daemon is not connected", api_name)
            return DaemonResponse.failure(
                api_name, constants.ERROR_NOT_CONNECTED, "Print daemon is not connected"
            )

        future = self.correlator.register(api_name, timeout_value)
        try:
            await ws.send_str(json.dumps(request.to_message()))
        except asyncio.CancelledError:
            self.correlator.discard(api_name, future)
            raise
        except Exception as exc:
            self.correlator.discard(api_name, future)
            LOGGER.warning("Failed to send %s to print daemon: %s", api_name, exc)
            return DaemonResponse.failure(
                api_name,
                constants.ERROR_NOT_CONNECTED,
                f"Print daemon connection failed: {exc}",
            )

        try:
            return await future
        finally:
            self.correlator.discard(api_name, future)

    async def close(self, intentional: bool = True) -> None:
        """Close the socket; an intentional close suppresses reconnection."""

        if intentional:
            self._intentional_close = True
            reconnect_task = self._reconnect_task
            self._reconnect_task = None
            if reconnect_task is not None and reconnect_task is not asyncio.current_task():
                reconnect_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reconnect_task

        ws = self._ws
        if ws is not None and not ws.closed:
            await ws.close()

        reader_task = self._reader_task
        if reader_task is not None and reader_task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await reader_task

        if intentional:
            self._reader_task = None
            self._set_state(ConnectionState.CLOSED)
            if self._owns_session and self._session is not None:
                await self._session.close()
                self._session = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=None)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def _connect(self) -> None:
        url = self.config.url
        self._set_state(ConnectionState.CONNECTING)
        session = await self._ensure_session()

        try:
            async with asyncio.timeout(self.config.connect_timeout_seconds):
                ws = await session.ws_connect(url)
        except asyncio.CancelledError:
            self._set_state(ConnectionState.CLOSED)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            self._set_state(ConnectionState.CLOSED)
            detail = str(exc) or type(exc).__name__
            raise DaemonConnectionError(
                f"Cannot reach print daemon at {url}: {detail}"
            ) from exc

        self._ws = ws
        self._capabilities = DaemonCapabilities(
            endpoint=url, operations=frozenset(self._operations)
        )
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        LOGGER.info("Connected to print daemon at %s", url)
        self._set_state(ConnectionState.OPEN)

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    self._handle_text(message.data)
                elif message.type == aiohttp.WSMsgType.BINARY:
                    pass  # The daemon only speaks JSON text frames
                elif message.type == aiohttp.WSMsgType.ERROR:
                    LOGGER.warning("Print daemon websocket error: %s", ws.exception())
                    break
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pragma: no cover
            LOGGER.warning("Print daemon read loop failed: %s", exc)
        finally:
            if self._ws is ws:
                self._ws = None

        self._handle_disconnect()

    def _handle_text(self, raw_data: str) -> None:
        try:
            payload = json.loads(raw_data)
        except json.JSONDecodeError:
            LOGGER.debug("Discarding non-JSON daemon message: %.80s", raw_data)
            return

        if not isinstance(payload, dict):
            return

        try:
            message = DaemonResponse.from_message(payload)
        except ValueError as exc:
            LOGGER.debug("Discarding daemon message: %s", exc)
            return

        if self.dispatcher.is_push(message):
            self.dispatcher.dispatch(message)
        else:
            self.correlator.resolve(message)

    def _handle_disconnect(self) -> None:
        self._set_state(ConnectionState.CLOSED)

        if self._intentional_close:
            LOGGER.info("Print daemon connection closed")
            return

        LOGGER.warning("Print daemon connection lost; scheduling reconnect")
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        delay = self.config.reconnect_initial_seconds
        max_delay = max(delay, self.config.reconnect_max_seconds)
        max_attempts = self.config.reconnect_max_attempts
        attempt = 0

        while not self._intentional_close and (max_attempts == 0 or attempt < max_attempts):
            attempt += 1
            await asyncio.sleep(self._jittered(delay))
            if self._intentional_close:
                return

            try:
                async with self._open_lock:
                    if self.is_open:
                        return
                    await self._connect()
            except DaemonConnectionError as exc:
                LOGGER.warning("Reconnect attempt %d failed: %s", attempt, exc)
                delay = min(delay * 2, max_delay)
                continue

            LOGGER.info("Reconnected to print daemon after %d attempt(s)", attempt)
            return

        if not self._intentional_close:
            LOGGER.error(
                "Giving up reconnecting to print daemon after %d attempt(s)", attempt
            )

    def _jittered(self, delay: float) -> float:
        ratio = self.config.reconnect_jitter_ratio
        if ratio <= 0.0 or delay <= 0.0:
            return delay
        jitter = delay * ratio
        return random.uniform(max(0.0, delay - jitter), delay + jitter)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return

        previous = self._state
        self._state = state
        LOGGER.debug("Daemon connection %s -> %s", previous.value, state.value)

        for callback in list(self._state_callbacks):
            try:
                callback(state)
            except Exception:
                LOGGER.exception("Connection state callback failed")
