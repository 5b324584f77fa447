"""Protocol definitions for daemon plumbing and external collaborators."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Protocol

from .models import DaemonResponse

if TYPE_CHECKING:
    from ..adapters.daemon import ConnectionState


PushListener = Callable[[DaemonResponse], None]
StateChangeCallback = Callable[["ConnectionState"], None]


class RequestCorrelator(Protocol):
    """Pairs outgoing requests with the responses that answer them."""

    def register(self, api_name: str, timeout: float) -> asyncio.Future[DaemonResponse]:
        """Create a pending entry and return the future it will resolve."""
        ...

    def resolve(self, response: DaemonResponse) -> bool:
        """Resolve the pending entry matching ``response``; False if none matched."""
        ...

    def discard(self, api_name: str, future: asyncio.Future[DaemonResponse]) -> None:
        """Drop a pending entry without resolving it through the daemon."""
        ...

    @property
    def pending_count(self) -> int:
        ...


class ParticipantStore(Protocol):
    """Minimal contract for the participant record store."""

    async def get_by_identifier(self, identifier: str) -> Optional[Mapping[str, Any]]:
        """Return the participant record or None when unknown."""
        ...

    async def mark_attended(self, identifier: str) -> bool:
        """Flag the participant as attended; False when the update failed."""
        ...


class AuthorizationGate(Protocol):
    """Opaque signal gating staff-only operations."""

    def is_authorized(self) -> bool:
        ...
