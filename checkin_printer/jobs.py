"""Badge print job orchestration.

A job is a fixed sequence of daemon calls:

    startJob -> InitDrawingBoard -> draw elements -> commitJob -> (push) -> endJob

The direct response to ``commitJob`` only confirms submission. Physical
completion is reported by a push carrying ``printCopies >= 1`` and
``printPages >= 1`` with a zero error code, so a temporary push listener is
registered before the first call and removed when the job ends, whatever
the outcome. Already-drawn elements are never rolled back; a failed job is
retried from ``startJob``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from .config import JobConfig, LabelConfig
from .core.models import DaemonResponse
from .labels import (
    SAMPLE_BADGE,
    BadgeContent,
    Participant,
    build_badge_elements,
    drawing_board_parameters,
)
from .operation_names import OperationNames
from .session import PrinterSession

LOGGER = logging.getLogger(__name__)


class PrintJobError(RuntimeError):
    """Raised when a print job fails; carries the daemon error code when known."""

    def __init__(
        self, message: str, *, code: Optional[int] = None, step: Optional[str] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.step = step


class PrinterNotReadyError(PrintJobError):
    """Raised when printing is requested before a printer is selected."""


class PrinterBusyError(PrintJobError):
    """Raised when a job is requested while another one is still running."""


@dataclass(slots=True)
class PrintResult:
    completed: bool
    timed_out: bool = False
    message: str = ""
    copies: int = 0
    pages: int = 0
    operations: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.completed


class BadgePrinter:
    """Runs one badge print at a time against a ready printer session."""

    def __init__(
        self,
        session: PrinterSession,
        *,
        label_config: Optional[LabelConfig] = None,
        job_config: Optional[JobConfig] = None,
    ) -> None:
        self.session = session
        self.label_config = label_config or LabelConfig()
        self.job_config = job_config or JobConfig()
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def print_participant(self, participant: Participant) -> PrintResult:
        return await self.print_badge(BadgeContent.from_participant(participant))

    async def test_print(self) -> PrintResult:
        return await self.print_badge(SAMPLE_BADGE)

    async def print_badge(self, badge: BadgeContent) -> PrintResult:
        """Print ``badge`` and wait for the printer to report completion.

        Returns a completed result on success and a ``timed_out`` result when
        no completion report arrives within the job timeout.

        Raises:
            PrinterNotReadyError: If the session is not ready; nothing is sent.
            PrinterBusyError: If another job is still in flight.
            PrintJobError: If a step fails or the printer reports an error.
        """

        if not self.session.ready:
            raise PrinterNotReadyError(
                "Printer not ready. Please check the printer connection."
            )

        dispatcher = self.session.dispatcher
        if self._busy or dispatcher.job_in_progress:
            raise PrinterBusyError("A print job is already in progress")

        self._busy = True
        outcome: asyncio.Future[DaemonResponse] = asyncio.get_running_loop().create_future()

        def on_push(event: DaemonResponse) -> None:
            if outcome.done():
                return
            if not event.ok:
                outcome.set_exception(
                    PrintJobError(
                        event.info or f"Printer reported error {event.error_code}",
                        code=event.error_code,
                        step=event.api_name,
                    )
                )
            elif event.print_copies >= 1 and event.print_pages >= 1:
                outcome.set_result(event)
            else:
                LOGGER.debug(
                    "Print progress: copies=%d pages=%d",
                    event.print_copies,
                    event.print_pages,
                )

        dispatcher.add_listener(on_push)
        dispatcher.mark_job_started()
        operations: List[str] = []
        timeout = self.job_config.timeout_seconds

        try:
            async with asyncio.timeout(timeout):
                completion = await self._run(badge, outcome, operations)
        except TimeoutError:
            LOGGER.warning(
                "No completion report for %s within %.1fs", badge.identifier, timeout
            )
            return PrintResult(
                completed=False,
                timed_out=True,
                message=f"Printer did not report completion within {timeout:g}s",
                operations=operations,
            )
        else:
            # Bounded by the request timeout only; the label is already printed.
            await self._end_job(operations)
        finally:
            dispatcher.remove_listener(on_push)
            dispatcher.mark_job_finished()
            self._busy = False
            if not outcome.done():
                outcome.cancel()
            elif not outcome.cancelled():
                outcome.exception()  # mark retrieved

        LOGGER.info(
            "Printed badge for %s (copies=%d, pages=%d)",
            badge.identifier,
            completion.print_copies,
            completion.print_pages,
        )
        return PrintResult(
            completed=True,
            message="Label printed successfully",
            copies=completion.print_copies,
            pages=completion.print_pages,
            operations=operations,
        )

    async def _run(
        self,
        badge: BadgeContent,
        outcome: asyncio.Future[DaemonResponse],
        operations: List[str],
    ) -> DaemonResponse:
        job = self.job_config

        await self._step(
            OperationNames.START_JOB,
            {
                "printDensity": job.density,
                "printLabelType": job.label_type,
                "printMode": job.print_mode,
                "count": job.quantity,
            },
            outcome,
            operations,
        )
        await self._step(
            OperationNames.INIT_DRAWING_BOARD,
            drawing_board_parameters(self.label_config),
            outcome,
            operations,
        )
        for element in build_badge_elements(badge, self.label_config):
            await self._step(
                element.operation,
                element.parameter,
                outcome,
                operations,
                label=element.label,
            )
        await self._step(
            OperationNames.COMMIT_JOB,
            {
                "printData": None,
                "printerImageProcessingInfo": json.dumps(
                    {"printerImageProcessingInfo": {"printQuantity": job.quantity}}
                ),
            },
            outcome,
            operations,
        )

        return await outcome

    async def _end_job(self, operations: List[str]) -> None:
        operations.append(OperationNames.END_JOB)
        response = await self.session.call(OperationNames.END_JOB)
        if not response.ok:
            LOGGER.warning(
                "endJob failed after completed print (errorCode=%s): %s",
                response.error_code,
                response.info,
            )

    async def _step(
        self,
        api_name: str,
        parameter: Mapping[str, Any],
        outcome: asyncio.Future[DaemonResponse],
        operations: List[str],
        *,
        label: Optional[str] = None,
    ) -> None:
        operations.append(api_name)
        response = await self.session.call(api_name, parameter)
        if not response.ok:
            what = f"{api_name} ({label})" if label else api_name
            LOGGER.error(
                "Print step %s failed (errorCode=%s): %s",
                what,
                response.error_code,
                response.info,
            )
            raise PrintJobError(
                response.info or f"{what} failed with error {response.error_code}",
                code=response.error_code,
                step=api_name,
            )

        # An error push aborts the job even while steps are still being issued.
        if outcome.done() and not outcome.cancelled():
            error = outcome.exception()
            if error is not None:
                raise error
