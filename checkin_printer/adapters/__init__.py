"""Adapter modules for external integrations."""

from .daemon import ConnectionState, DaemonChannel, DaemonConnectionError

__all__ = [
    "ConnectionState",
    "DaemonChannel",
    "DaemonConnectionError",
]
