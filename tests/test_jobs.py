import asyncio
import json
from typing import Callable, Tuple

import pytest

from checkin_printer.adapters.daemon import DaemonChannel
from checkin_printer.config import JobConfig, LabelConfig
from checkin_printer.jobs import (
    BadgePrinter,
    PrinterBusyError,
    PrinterNotReadyError,
    PrintJobError,
)
from checkin_printer.labels import BadgeContent, Participant
from checkin_printer.operation_names import OperationNames
from checkin_printer.session import PrinterSession

from conftest import make_daemon_config, make_session_config

JANE = Participant(
    id="5f0c1f7e-0000-4000-8000-000000000001",
    staff_id="EMP001",
    first_name="Jane",
    last_name="Doe",
    department="IT",
)


async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


async def _ready_printer(url: str, **job_overrides) -> Tuple[PrinterSession, BadgePrinter]:
    session = PrinterSession(DaemonChannel(make_daemon_config(url)), make_session_config())
    status = await session.initialize()
    assert status.ready
    printer = BadgePrinter(
        session,
        label_config=LabelConfig(),
        job_config=JobConfig(**job_overrides),
    )
    return session, printer


def _job_calls(fake_daemon) -> list:
    # Drop the session bring-up calls.
    return fake_daemon.calls[3:]


@pytest.mark.asyncio
async def test_full_print_runs_steps_in_order(fake_daemon):
    fake_daemon.complete_on_commit()
    session, printer = await _ready_printer(fake_daemon.url)
    listeners_before = session.dispatcher.listener_count

    try:
        result = await printer.print_participant(JANE)
    finally:
        await session.disconnect()

    assert result.completed
    assert result.copies == 1 and result.pages == 1

    calls = _job_calls(fake_daemon)
    assert calls[0] == OperationNames.START_JOB
    assert calls[1] == OperationNames.INIT_DRAWING_BOARD
    assert calls[-2:] == [OperationNames.COMMIT_JOB, OperationNames.END_JOB]
    draws = calls[2:-2]
    assert draws[-1] == OperationNames.DRAW_QR_CODE
    assert set(draws[:-1]) == {OperationNames.DRAW_TEXT}
    assert calls.count(OperationNames.END_JOB) == 1
    assert result.operations == calls

    texts = [
        request["parameter"]["value"]
        for request in fake_daemon.requests_for(OperationNames.DRAW_TEXT)
    ]
    assert texts[:3] == ["Jane Doe", "ID: EMP001", "IT"]

    assert fake_daemon.requests_for(OperationNames.START_JOB)[0]["parameter"] == {
        "printDensity": 3,
        "printLabelType": 1,
        "printMode": 1,
        "count": 1,
    }
    commit = fake_daemon.requests_for(OperationNames.COMMIT_JOB)[0]["parameter"]
    assert commit["printData"] is None
    assert json.loads(commit["printerImageProcessingInfo"]) == {
        "printerImageProcessingInfo": {"printQuantity": 1}
    }
    assert session.dispatcher.listener_count == listeners_before


@pytest.mark.asyncio
async def test_missing_completion_push_times_out(fake_daemon):
    session, printer = await _ready_printer(fake_daemon.url, timeout_seconds=0.3)
    listeners_before = session.dispatcher.listener_count

    try:
        result = await printer.print_participant(JANE)
    finally:
        await session.disconnect()

    assert result.completed is False
    assert result.timed_out is True
    assert "did not report completion" in result.message
    assert OperationNames.COMMIT_JOB in fake_daemon.calls
    assert OperationNames.END_JOB not in fake_daemon.calls
    assert session.dispatcher.listener_count == listeners_before
    assert printer.busy is False


@pytest.mark.asyncio
async def test_error_push_fails_job(fake_daemon):
    fake_daemon.push_after(OperationNames.COMMIT_JOB, errorCode=5, info="Out of paper")
    session, printer = await _ready_printer(fake_daemon.url)
    listeners_before = session.dispatcher.listener_count

    try:
        with pytest.raises(PrintJobError) as excinfo:
            await printer.print_participant(JANE)
    finally:
        await session.disconnect()

    assert excinfo.value.message == "Out of paper"
    assert excinfo.value.code == 5
    assert OperationNames.END_JOB not in fake_daemon.calls
    assert session.dispatcher.listener_count == listeners_before


@pytest.mark.asyncio
async def test_error_push_during_drawing_stops_before_commit(fake_daemon):
    fake_daemon.push_after(OperationNames.INIT_DRAWING_BOARD, errorCode=6, info="Cover open")
    session, printer = await _ready_printer(fake_daemon.url)

    try:
        with pytest.raises(PrintJobError) as excinfo:
            await printer.print_participant(JANE)
    finally:
        await session.disconnect()

    assert excinfo.value.code == 6
    assert OperationNames.COMMIT_JOB not in fake_daemon.calls


@pytest.mark.asyncio
async def test_failed_start_job_sends_nothing_else(fake_daemon):
    fake_daemon.reply(OperationNames.START_JOB, error_code=3, info="Printer busy")
    session, printer = await _ready_printer(fake_daemon.url)

    try:
        with pytest.raises(PrintJobError) as excinfo:
            await printer.print_participant(JANE)
    finally:
        await session.disconnect()

    assert excinfo.value.step == OperationNames.START_JOB
    assert excinfo.value.code == 3
    assert _job_calls(fake_daemon) == [OperationNames.START_JOB]


@pytest.mark.asyncio
async def test_failed_draw_aborts_job(fake_daemon):
    fake_daemon.reply(OperationNames.DRAW_TEXT, error_code=8, info="")
    session, printer = await _ready_printer(fake_daemon.url)

    try:
        with pytest.raises(PrintJobError) as excinfo:
            await printer.print_participant(JANE)
    finally:
        await session.disconnect()

    assert excinfo.value.step == OperationNames.DRAW_TEXT
    assert "failed with error 8" in excinfo.value.message
    assert _job_calls(fake_daemon) == [
        OperationNames.START_JOB,
        OperationNames.INIT_DRAWING_BOARD,
        OperationNames.DRAW_TEXT,
    ]


@pytest.mark.asyncio
async def test_print_without_ready_session_sends_nothing(fake_daemon):
    session = PrinterSession(
        DaemonChannel(make_daemon_config(fake_daemon.url)), make_session_config()
    )
    printer = BadgePrinter(session)

    with pytest.raises(PrinterNotReadyError, match="Printer not ready"):
        await printer.print_participant(JANE)

    assert fake_daemon.requests == []
    assert session.dispatcher.listener_count == 0
    await session.disconnect()


@pytest.mark.asyncio
async def test_second_job_is_rejected_while_first_runs(fake_daemon):
    """Progress pushes keep the job open; only the completion push ends it."""

    session, printer = await _ready_printer(fake_daemon.url, timeout_seconds=2.0)

    try:
        first = asyncio.create_task(printer.print_participant(JANE))
        await _eventually(lambda: OperationNames.COMMIT_JOB in fake_daemon.calls)

        with pytest.raises(PrinterBusyError):
            await printer.test_print()

        await fake_daemon.push(errorCode=0, info="", printCopies=0, printPages=1)
        await asyncio.sleep(0.05)
        assert not first.done()
        assert session.dispatcher.job_in_progress

        await fake_daemon.push(errorCode=0, info="", printCopies=1, printPages=1)
        result = await asyncio.wait_for(first, timeout=1.0)
    finally:
        await session.disconnect()

    assert result.completed
    assert printer.busy is False
    assert fake_daemon.calls.count(OperationNames.START_JOB) == 1


@pytest.mark.asyncio
async def test_status_push_while_idle_does_not_block_printing(fake_daemon):
    fake_daemon.complete_on_commit()
    session, printer = await _ready_printer(fake_daemon.url)

    try:
        await fake_daemon.push(errorCode=0, info="idle status")
        await asyncio.sleep(0.05)
        assert session.dispatcher.job_in_progress is False

        result = await printer.print_participant(JANE)
    finally:
        await session.disconnect()

    assert result.completed


@pytest.mark.asyncio
async def test_slow_end_job_does_not_turn_completed_print_into_timeout(fake_daemon):
    """The job timeout covers the completion wait, not the closing endJob."""

    fake_daemon.complete_on_commit()
    fake_daemon.ignore(OperationNames.END_JOB)
    session, printer = await _ready_printer(fake_daemon.url, timeout_seconds=0.3)

    try:
        result = await printer.print_participant(JANE)
    finally:
        await session.disconnect()

    assert result.completed is True
    assert result.timed_out is False
    assert result.operations[-2:] == [OperationNames.COMMIT_JOB, OperationNames.END_JOB]
    assert printer.busy is False


@pytest.mark.asyncio
async def test_timeout_message_keeps_fractional_seconds(fake_daemon):
    session, printer = await _ready_printer(fake_daemon.url, timeout_seconds=0.3)

    try:
        result = await printer.print_participant(JANE)
    finally:
        await session.disconnect()

    assert result.timed_out is True
    assert result.message == "Printer did not report completion within 0.3s"


@pytest.mark.asyncio
async def test_daemon_reported_job_blocks_new_print(fake_daemon):
    session, printer = await _ready_printer(fake_daemon.url)
    session.dispatcher.mark_job_started()

    try:
        with pytest.raises(PrinterBusyError):
            await printer.test_print()
    finally:
        await session.disconnect()

    assert OperationNames.START_JOB not in fake_daemon.calls


@pytest.mark.asyncio
async def test_end_job_failure_after_completion_is_not_fatal(fake_daemon):
    fake_daemon.complete_on_commit()
    fake_daemon.reply(OperationNames.END_JOB, error_code=9, info="already ended")
    session, printer = await _ready_printer(fake_daemon.url)

    try:
        result = await printer.print_badge(BadgeContent(name="Jane Doe", identifier="EMP001"))
    finally:
        await session.disconnect()

    assert result.completed
    assert result.operations[-1] == OperationNames.END_JOB


@pytest.mark.asyncio
async def test_test_print_uses_sample_badge_without_qr(fake_daemon):
    fake_daemon.complete_on_commit()
    session, printer = await _ready_printer(fake_daemon.url, quantity=2)

    try:
        result = await printer.test_print()
    finally:
        await session.disconnect()

    assert result.completed
    assert OperationNames.DRAW_QR_CODE not in fake_daemon.calls
    values = [
        request["parameter"]["value"]
        for request in fake_daemon.requests_for(OperationNames.DRAW_TEXT)
    ]
    assert "Mr. John Doe" in values
    assert fake_daemon.requests_for(OperationNames.START_JOB)[0]["parameter"]["count"] == 2
