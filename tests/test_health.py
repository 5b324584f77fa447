import aiohttp
import pytest

from checkin_printer.health import HealthReporter, HealthServer
from checkin_printer.session import SessionState, SessionStatus


def _status(state: SessionState, printer=None, error=None) -> SessionStatus:
    return SessionStatus(
        state=state,
        connected=state != SessionState.DISCONNECTED,
        sdk_initialized=state in (SessionState.SDK_READY, SessionState.PRINTER_SELECTED),
        selected_printer=printer,
        selected_port=9100 if printer else None,
        initialization_error=error,
    )


@pytest.mark.asyncio
async def test_health_reporter_snapshot():
    reporter = HealthReporter()

    await reporter.update("daemon", True)
    await reporter.update("printer", False, "sdk_ready")

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    component_list = snapshot.get("components", [])
    assert isinstance(component_list, list)
    components = {item["name"]: item for item in component_list}
    assert components["daemon"]["healthy"] is True
    assert components["printer"]["healthy"] is False
    assert components["printer"]["detail"] == "sdk_ready"


@pytest.mark.asyncio
async def test_empty_reporter_is_degraded():
    snapshot = await HealthReporter().snapshot()

    assert snapshot["status"] == "degraded"


@pytest.mark.asyncio
async def test_update_from_session_status():
    reporter = HealthReporter()

    await reporter.update_from_session(
        _status(SessionState.PRINTER_SELECTED, printer="ThermalPrinterA")
    )
    snapshot = await reporter.snapshot()
    assert snapshot["status"] == "ok"

    await reporter.update_from_session(
        _status(SessionState.DISCONNECTED, error="Failed to connect to printer service.")
    )
    snapshot = await reporter.snapshot()
    components = {item["name"]: item for item in snapshot["components"]}
    assert snapshot["status"] == "degraded"
    assert components["daemon"]["detail"] == "Failed to connect to printer service."
    assert components["printer"]["detail"] == "disconnected"


@pytest.mark.asyncio
async def test_health_server_serves_snapshot_and_printer_status(unused_tcp_port):
    reporter = HealthReporter()
    status = _status(SessionState.PRINTER_SELECTED, printer="ThermalPrinterA")
    await reporter.update_from_session(status)

    host = "127.0.0.1"
    port = unused_tcp_port
    server = HealthServer(reporter, host, port, status_provider=lambda: status)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://{host}:{port}/healthz") as response:
                payload = await response.json()
                assert response.status == 200
                assert payload["status"] == "ok"

            async with session.get(f"http://{host}:{port}/printer") as response:
                payload = await response.json()
                assert response.status == 200
                assert payload["selectedPrinter"] == "ThermalPrinterA"
                assert payload["ready"] is True
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_health_server_reports_degraded_with_503(unused_tcp_port):
    reporter = HealthReporter()
    await reporter.update("daemon", False, "disconnected")

    server = HealthServer(reporter, "127.0.0.1", unused_tcp_port)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://127.0.0.1:{unused_tcp_port}/healthz") as response:
                assert response.status == 503
            async with session.get(f"http://127.0.0.1:{unused_tcp_port}/printer") as response:
                assert response.status == 404
    finally:
        await server.stop()
