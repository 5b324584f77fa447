"""Pairing of daemon requests and responses by operation name.

The daemon echoes the request's ``apiName`` in its response and carries no
request id, so the operation name is the only correlation key available.
Consequently at most one request per operation name may be outstanding:
registering a second one takes over the pending slot, and the earlier
request can then only complete through its own timeout. Callers serialise
same-named requests (the print job awaits every step before the next).

The ``RequestCorrelator`` protocol in ``core.protocols`` is the seam where a
request-id scheme would plug in if the daemon ever grows one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .. import constants
from .models import DaemonResponse

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingRequest:
    api_name: str
    submitted_at: float
    future: asyncio.Future[DaemonResponse]
    timer: Optional[asyncio.TimerHandle] = None


class OperationNameCorrelator:
    """Pending-request table keyed by ``apiName``."""

    def __init__(
        self,
        *,
        push_api_name: str = constants.PUSH_API_NAME,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._push_api_name = push_api_name
        self._clock = clock or time.monotonic
        self._pending: Dict[str, PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def register(self, api_name: str, timeout: float) -> asyncio.Future[DaemonResponse]:
        if api_name == self._push_api_name:
            raise ValueError(f"{api_name!r} is reserved for push messages")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[DaemonResponse] = loop.create_future()

        if api_name in self._pending:
            LOGGER.warning(
                "Request %s already pending; its response will resolve the newer request",
                api_name,
            )

        entry = PendingRequest(api_name=api_name, submitted_at=self._clock(), future=future)
        entry.timer = loop.call_later(timeout, self._expire, entry, timeout)
        self._pending[api_name] = entry
        return future

    def resolve(self, response: DaemonResponse) -> bool:
        if response.api_name == self._push_api_name:
            return False

        entry = self._pending.pop(response.api_name, None)
        if entry is None:
            LOGGER.debug("Ignoring unmatched response for %s", response.api_name)
            return False

        LOGGER.debug(
            "Response for %s after %.3fs (errorCode=%s)",
            response.api_name,
            self._clock() - entry.submitted_at,
            response.error_code,
        )
        self._settle(entry, response)
        return True

    def discard(self, api_name: str, future: asyncio.Future[DaemonResponse]) -> None:
        entry = self._pending.get(api_name)
        if entry is None or entry.future is not future:
            return
        del self._pending[api_name]
        if entry.timer is not None:
            entry.timer.cancel()

    def _expire(self, entry: PendingRequest, timeout: float) -> None:
        # The slot may already belong to a newer request with the same name.
        if self._pending.get(entry.api_name) is entry:
            del self._pending[entry.api_name]

        LOGGER.warning("Daemon request %s timed out after %.1fs", entry.api_name, timeout)
        self._settle(
            entry,
            DaemonResponse.failure(
                entry.api_name,
                constants.ERROR_TIMEOUT,
                f"No response to {entry.api_name} within {timeout:.1f}s",
            ),
        )

    @staticmethod
    def _settle(entry: PendingRequest, response: DaemonResponse) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
        if not entry.future.done():
            entry.future.set_result(response)
