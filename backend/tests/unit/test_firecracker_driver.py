# tests/unit/test_firecracker_driver.py
"""Unit tests for the microVM manager client using a mocked HTTP session."""
import pytest
import requests
from unittest.mock import MagicMock, patch
from uuid import uuid4

from kraft.exceptions import DriverError, DriverNotFoundError, OperationTimeoutError
from kraft.models.instance import InstanceKind
from kraft.services.drivers.base import BootRequest
from kraft.services.drivers.firecracker_driver import FirecrackerDriver


def _response(status_code=200, json_data=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.content = b"{}" if json_data is not None else b""
    response.json.return_value = json_data
    response.text = ""
    return response


@pytest.fixture
def session():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def driver(session):
    return FirecrackerDriver(
        "http://fc.local/api/", api_token="token", admin_key="admin", session=session, backoff_seconds=0
    )


def test_requires_base_url():
    with pytest.raises(DriverError):
        FirecrackerDriver("")


def test_sets_auth_headers(driver, session):
    assert session.headers["Authorization"] == "Bearer token"
    assert session.headers["X-Admin-Key"] == "admin"


def test_boot(driver, session):
    session.request.return_value = _response(201, {"id": "vm-42"})
    request = BootRequest(
        instance_id=uuid4(), kind=InstanceKind.MICROVM, image="ubuntu:22.04",
        memory_mb=512, cpu_count=1, disk_mb=10240, restore_from="firecracker-snapshot://snap-1",
    )

    result = driver.boot(request, timeout=60)

    assert result.backend_ref == "vm-42"
    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "http://fc.local/api/instances")
    payload = session.request.call_args.kwargs["json"]
    assert payload["memory"] == "512M"
    assert payload["snapshotId"] == "snap-1"


def test_execute(driver, session):
    session.request.return_value = _response(200, {"exitCode": 0, "stdout": "hi\n", "stderr": ""})

    result = driver.execute("vm-42", "echo hi", timeout=5, execution_id="abc")

    assert result.exit_code == 0
    assert result.stdout == "hi\n"
    assert session.request.call_args.kwargs["json"]["timeout"] == 5000


def test_not_found_maps_to_driver_not_found(driver, session):
    session.request.return_value = _response(404)
    with pytest.raises(DriverNotFoundError):
        driver.restart("vm-42", timeout=60)


def test_server_error_maps_to_driver_error(driver, session):
    session.request.return_value = _response(500)
    with pytest.raises(DriverError) as exc_info:
        driver.stop("vm-42", timeout=60)
    assert exc_info.value.public_message == "Failed to stop instance"


def test_timeout_maps_to_operation_timeout(driver, session):
    session.request.side_effect = requests.Timeout()
    with pytest.raises(OperationTimeoutError):
        driver.start("vm-42", timeout=60)


@patch("kraft.services.drivers.firecracker_driver.time.sleep")
def test_idempotent_requests_retry_on_connection_error(mock_sleep, driver, session):
    session.request.side_effect = [requests.ConnectionError(), _response(200, {"logs": ["ready"]})]

    assert driver.logs("vm-42", lines=10, timeout=10) == ["ready"]
    assert session.request.call_count == 2


def test_non_idempotent_requests_do_not_retry(driver, session):
    session.request.side_effect = requests.ConnectionError()
    with pytest.raises(DriverError):
        driver.restart("vm-42", timeout=60)
    assert session.request.call_count == 1


def test_capture_and_delete(driver, session):
    session.request.return_value = _response(201, {"id": "snap-7", "size": 2048})
    result = driver.capture("vm-42", "baseline", timeout=60)
    assert result.storage_locator == "firecracker-snapshot://snap-7"
    assert result.size_bytes == 2048

    session.request.return_value = _response(204)
    driver.delete_capture(result.storage_locator, timeout=60)
    assert session.request.call_args.args == ("DELETE", "http://fc.local/api/snapshots/snap-7")


def test_cancel_execution_is_best_effort(driver, session):
    session.request.return_value = _response(500)
    driver.cancel_execution("vm-42", "abc")


def test_health(driver, session):
    session.get.return_value = _response(200, {})
    assert driver.health()["status"] == "healthy"

    session.get.side_effect = requests.ConnectionError()
    assert driver.health()["status"] == "unhealthy"
