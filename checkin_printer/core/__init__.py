"""Core primitives for checkin-printer."""

from .correlator import OperationNameCorrelator, PendingRequest
from .events import EventDispatcher
from .models import DaemonCapabilities, DaemonRequest, DaemonResponse, PrinterDevice
from .protocols import (
    AuthorizationGate,
    ParticipantStore,
    PushListener,
    RequestCorrelator,
    StateChangeCallback,
)

__all__ = [
    "AuthorizationGate",
    "DaemonCapabilities",
    "DaemonRequest",
    "DaemonResponse",
    "EventDispatcher",
    "OperationNameCorrelator",
    "ParticipantStore",
    "PendingRequest",
    "PrinterDevice",
    "PushListener",
    "RequestCorrelator",
    "StateChangeCallback",
]
