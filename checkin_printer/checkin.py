"""Attendance check-in workflow.

Attendance is recorded before anything is printed, and a failed print never
undoes it: the caller gets a result flagged ``printed=False`` with a
warning it can show to staff.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from .core.protocols import AuthorizationGate, ParticipantStore
from .jobs import BadgePrinter, PrintJobError, PrintResult
from .labels import Participant

LOGGER = logging.getLogger(__name__)


class CheckInError(RuntimeError):
    """Raised when attendance cannot be recorded."""


class ParticipantNotFoundError(CheckInError):
    """Raised when no participant matches the scanned identifier."""


class AuthorizationError(RuntimeError):
    """Raised when a staff-only operation is attempted without authorization."""


@dataclass(slots=True)
class CheckInResult:
    participant: Participant
    attended: bool
    printed: bool
    warning: Optional[str] = None
    print_result: Optional[PrintResult] = None


class InMemoryParticipantStore:
    """Participant records held in memory, addressable by UUID or staff id."""

    def __init__(self, records: Iterable[Mapping[str, Any]] = ()) -> None:
        self._records: Dict[str, Dict[str, Any]] = {}
        for record in records:
            self.add(record)

    def add(self, record: Mapping[str, Any]) -> None:
        self._records[str(record["id"])] = dict(record)

    def _find(self, identifier: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(identifier)
        if record is not None:
            return record
        for candidate in self._records.values():
            if candidate.get("staff_id") == identifier:
                return candidate
        return None

    async def get_by_identifier(self, identifier: str) -> Optional[Mapping[str, Any]]:
        record = self._find(identifier)
        return dict(record) if record is not None else None

    async def mark_attended(self, identifier: str) -> bool:
        record = self._find(identifier)
        if record is None:
            return False
        record["attended"] = True
        return True


class CheckInService:
    def __init__(
        self,
        store: ParticipantStore,
        printer: Optional[BadgePrinter] = None,
        *,
        authorization: Optional[AuthorizationGate] = None,
    ) -> None:
        self.store = store
        self.printer = printer
        self.authorization = authorization

    async def lookup(self, identifier: str) -> Optional[Participant]:
        record = await self.store.get_by_identifier(identifier.strip())
        if record is None:
            return None
        return Participant.from_record(record)

    async def check_in(self, identifier: str, *, print_label: bool = True) -> CheckInResult:
        """Mark the participant attended, then print their badge.

        Raises:
            ParticipantNotFoundError: If ``identifier`` matches nobody.
            CheckInError: If the attendance update is rejected.
        """

        participant = await self._require(identifier)

        if not await self.store.mark_attended(participant.id):
            raise CheckInError(f"Could not record attendance for {participant.staff_id}")
        participant.attended = True
        LOGGER.info("Recorded attendance for %s", participant.staff_id)

        if not print_label or self.printer is None:
            return CheckInResult(participant=participant, attended=True, printed=False)
        return await self._print(participant)

    async def reprint(self, identifier: str) -> CheckInResult:
        """Print another badge without touching attendance (staff only)."""

        if self.authorization is None or not self.authorization.is_authorized():
            raise AuthorizationError("Staff authorization required to reprint badges")
        if self.printer is None:
            raise CheckInError("No badge printer configured")

        participant = await self._require(identifier)
        return await self._print(participant)

    async def _require(self, identifier: str) -> Participant:
        participant = await self.lookup(identifier)
        if participant is None:
            raise ParticipantNotFoundError(f"No participant found for {identifier!r}")
        return participant

    async def _print(self, participant: Participant) -> CheckInResult:
        assert self.printer is not None

        try:
            result = await self.printer.print_participant(participant)
        except PrintJobError as exc:
            LOGGER.warning("Badge print failed for %s: %s", participant.staff_id, exc)
            return CheckInResult(
                participant=participant,
                attended=participant.attended,
                printed=False,
                warning=f"Attendance marked successfully, but printing failed: {exc.message}",
            )

        warning = None
        if not result.completed:
            warning = f"Attendance marked successfully, but printing failed: {result.message}"
        return CheckInResult(
            participant=participant,
            attended=participant.attended,
            printed=result.completed,
            warning=warning,
            print_result=result,
        )
