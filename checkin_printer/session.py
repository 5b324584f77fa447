"""Stateful printer session on top of the daemon channel."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from .adapters.daemon import ConnectionState, DaemonChannel, DaemonConnectionError
from .config import SessionConfig
from .core.events import EventDispatcher
from .core.models import DaemonCapabilities, DaemonRequest, DaemonResponse, PrinterDevice
from .operation_names import OperationNames

LOGGER = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class UnsupportedOperationError(RuntimeError):
    """Raised when calling an operation the connected daemon does not provide."""


class SessionState(str, Enum):
    """Readiness of the printer session, in bring-up order."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    SDK_READY = "sdk_ready"
    PRINTER_SELECTED = "printer_selected"


@dataclass(slots=True)
class SessionStatus:
    state: SessionState
    connected: bool
    sdk_initialized: bool
    selected_printer: Optional[str]
    selected_port: Optional[int]
    missing_operations: List[str] = field(default_factory=list)
    available_printers: List[PrinterDevice] = field(default_factory=list)
    initialization_error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.state == SessionState.PRINTER_SELECTED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "ready": self.ready,
            "isConnected": self.connected,
            "isSdkInitialized": self.sdk_initialized,
            "selectedPrinter": self.selected_printer,
            "selectedPort": self.selected_port,
            "hasRequiredFunctions": not self.missing_operations,
            "missingOperations": list(self.missing_operations),
            "availablePrinters": [device.as_dict() for device in self.available_printers],
            "initializationError": self.initialization_error,
        }


class PrinterSession:
    """Connect, initialise the device subsystem, select a device.

    Every operation reports ordinary failure through its return value and
    leaves the session in the last state it reached. Only calling an
    operation the daemon does not provide raises.
    """

    def __init__(
        self,
        channel: DaemonChannel,
        config: Optional[SessionConfig] = None,
        *,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        self.channel = channel
        self.config = config or SessionConfig()
        self._sleep = sleep or asyncio.sleep

        self._connected = False
        self._sdk_initialized = False
        self._selected_printer: Optional[str] = None
        self._selected_port: Optional[int] = None
        self._available: List[PrinterDevice] = []
        self._initialization_error: Optional[str] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def dispatcher(self) -> EventDispatcher:
        return self.channel.dispatcher

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def sdk_initialized(self) -> bool:
        return self._sdk_initialized

    @property
    def selected_printer(self) -> Optional[str]:
        return self._selected_printer

    @property
    def selected_port(self) -> Optional[int]:
        return self._selected_port

    @property
    def ready(self) -> bool:
        return self._connected and self._sdk_initialized and self._selected_printer is not None

    @property
    def state(self) -> SessionState:
        if not self._connected:
            return SessionState.DISCONNECTED
        if not self._sdk_initialized:
            return SessionState.CONNECTED
        if self._selected_printer is None:
            return SessionState.SDK_READY
        return SessionState.PRINTER_SELECTED

    def status(self) -> SessionStatus:
        capabilities = self.channel.capabilities
        missing: List[str] = []
        if capabilities is not None:
            missing = sorted(capabilities.missing(OperationNames.ALL))

        return SessionStatus(
            state=self.state,
            connected=self._connected,
            sdk_initialized=self._sdk_initialized,
            selected_printer=self._selected_printer,
            selected_port=self._selected_port,
            missing_operations=missing,
            available_printers=list(self._available),
            initialization_error=self._initialization_error,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def connect(self) -> bool:
        if self._connected and self.channel.is_open:
            return True

        try:
            await self.channel.open(self._on_connection_state)
        except DaemonConnectionError as exc:
            LOGGER.warning("Printer service unavailable: %s", exc)
            self._connected = False
            return False

        self._connected = True
        return True

    async def call(
        self,
        api_name: str,
        parameter: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> DaemonResponse:
        """Send one daemon request through the channel.

        Raises:
            UnsupportedOperationError: If the daemon did not advertise ``api_name``.
        """

        capabilities: Optional[DaemonCapabilities] = self.channel.capabilities
        if capabilities is not None and not capabilities.supports(api_name):
            raise UnsupportedOperationError(
                f"Print daemon at {capabilities.endpoint} does not provide {api_name}"
            )
        return await self.channel.send(DaemonRequest(api_name, parameter), timeout)

    async def initialize_device(self) -> bool:
        if not self._connected:
            LOGGER.warning("Cannot initialise printer SDK: printer service not connected")
            return False

        response = await self.call(
            OperationNames.INIT_SDK, {"fontDir": self.config.font_dir}
        )
        if not response.ok:
            LOGGER.error(
                "Printer SDK initialisation failed (errorCode=%s): %s",
                response.error_code,
                response.info,
            )
            return False

        self._sdk_initialized = True
        LOGGER.info("Printer SDK initialised")
        return True

    async def list_devices(self) -> List[PrinterDevice]:
        """Enumerate attached printers; an empty list covers every failure."""

        if not self._connected or not self._sdk_initialized:
            LOGGER.debug("Skipping printer enumeration: printer SDK not ready")
            return []

        response = await self.call(OperationNames.GET_ALL_PRINTERS)
        if not response.ok:
            LOGGER.info(
                "No printers available (errorCode=%s): %s",
                response.error_code,
                response.info,
            )
            self._available = []
            return []

        try:
            raw = response.info_json()
        except ValueError:
            LOGGER.warning("Unparseable printer list from daemon: %.120s", response.info)
            self._available = []
            return []

        if not isinstance(raw, dict):
            LOGGER.warning("Unexpected printer list payload: %r", raw)
            self._available = []
            return []

        devices: List[PrinterDevice] = []
        for name, port in raw.items():
            try:
                devices.append(PrinterDevice(name=str(name), port=int(port)))
            except (TypeError, ValueError):
                LOGGER.warning("Ignoring printer %s with invalid port %r", name, port)

        self._available = devices
        LOGGER.debug("Found %d printer(s)", len(devices))
        return list(devices)

    async def select_device(self, name: str, port: int) -> bool:
        if not self._connected or not self._sdk_initialized:
            LOGGER.warning("Cannot select printer %s: printer SDK not ready", name)
            return False

        self._selected_printer = None
        self._selected_port = None

        if self.config.stabilization_delay_seconds > 0:
            await self._sleep(self.config.stabilization_delay_seconds)

        attempts = max(1, self.config.select_attempts)
        delay = self.config.select_retry_delay_seconds
        for attempt in range(1, attempts + 1):
            response = await self.call(
                OperationNames.SELECT_PRINTER, {"printerName": name, "port": port}
            )
            if response.ok:
                self._selected_printer = name
                self._selected_port = port
                LOGGER.info("Selected printer %s (port %d)", name, port)
                return True

            LOGGER.warning(
                "Selecting printer %s failed on attempt %d/%d (errorCode=%s): %s",
                name,
                attempt,
                attempts,
                response.error_code,
                response.info,
            )
            if attempt < attempts:
                await self._sleep(delay)
                delay *= 2
                if not self.channel.is_open:
                    await self.connect()

        return False

    async def initialize(self) -> SessionStatus:
        """Bring the session up as far as possible and return its status.

        Connects, initialises the device subsystem, enumerates printers and,
        when configured, selects the first one found. Having no printer
        attached is not an error.
        """

        self._initialization_error = None

        if not await self.connect():
            self._initialization_error = (
                "Failed to connect to printer service. Please ensure the printer "
                "plugin is installed and running."
            )
        elif not await self.initialize_device():
            self._initialization_error = "Failed to initialize printer SDK."
        else:
            devices = await self.list_devices()
            if devices and self.config.auto_select_first and not self.ready:
                first = devices[0]
                if not await self.select_device(first.name, first.port):
                    self._initialization_error = f"Failed to select printer {first.name}."

        if self._initialization_error:
            LOGGER.error("Printer initialisation failed: %s", self._initialization_error)
        else:
            LOGGER.info("Printer session state: %s", self.state.value)
        return self.status()

    async def disconnect(self) -> None:
        await self.channel.close(intentional=True)
        self._connected = False
        self._sdk_initialized = False
        self._selected_printer = None
        self._selected_port = None
        self._available = []
        self.dispatcher.clear_all()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_connection_state(self, state: ConnectionState) -> None:
        if state == ConnectionState.OPEN:
            self._connected = True
        elif state == ConnectionState.CLOSED:
            self._connected = False
