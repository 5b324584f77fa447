"""Fan-out of unsolicited daemon push messages."""

from __future__ import annotations

import logging
from typing import List

from .. import constants
from .models import DaemonResponse
from .protocols import PushListener

LOGGER = logging.getLogger(__name__)


class EventDispatcher:
    """Delivers push messages to registered listeners in registration order.

    Listeners are called synchronously from the transport's read loop; a
    listener that raises is logged and the remaining listeners still run.
    The dispatcher also tracks whether a job is in flight: it is opened by
    ``mark_job_started`` and closed by a completion or error push.
    """

    def __init__(self, *, push_api_name: str = constants.PUSH_API_NAME) -> None:
        self.push_api_name = push_api_name
        self._listeners: List[PushListener] = []
        self._job_in_progress = False

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def job_in_progress(self) -> bool:
        return self._job_in_progress

    def is_push(self, message: DaemonResponse) -> bool:
        return message.api_name == self.push_api_name

    def add_listener(self, listener: PushListener) -> None:
        """Register ``listener``; re-adding an equal callback replaces it in place."""

        try:
            index = self._listeners.index(listener)
        except ValueError:
            self._listeners.append(listener)
        else:
            self._listeners[index] = listener

    def remove_listener(self, listener: PushListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def clear_all(self) -> None:
        self._listeners.clear()
        self._job_in_progress = False

    def mark_job_started(self) -> None:
        self._job_in_progress = True

    def mark_job_finished(self) -> None:
        self._job_in_progress = False

    def dispatch(self, event: DaemonResponse) -> None:
        self._track_job_state(event)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                LOGGER.exception("Push listener failed for %s", event.api_name)

    def _track_job_state(self, event: DaemonResponse) -> None:
        if not event.ok:
            if self._job_in_progress:
                LOGGER.warning(
                    "Daemon reported job error %s: %s", event.error_code, event.info
                )
            self._job_in_progress = False
        elif event.print_copies >= 1 and event.print_pages >= 1:
            self._job_in_progress = False
        elif not self._job_in_progress:
            # Only mark_job_started opens a job; idle status pushes leave it closed.
            LOGGER.debug("Ignoring status push outside a print job: %s", event.info)
