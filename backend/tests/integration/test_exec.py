# backend/tests/integration/test_exec.py
from kraft.exceptions import DriverError
from kraft.services.drivers.base import ExecResult


def test_execute_command(client, running_instance, owner_headers, fake_driver):
    response = client.post(
        f"/api/v1/instances/{running_instance['id']}/exec",
        headers=owner_headers,
        json={"command": "echo hi", "timeout": 5000},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["exit_code"] == 0
    assert "hi" in data["stdout"]
    assert "hi" in data["output"]
    assert fake_driver.count("execute") == 1


def test_nonzero_exit_is_a_result(client, running_instance, owner_headers, fake_driver):
    fake_driver.exec_result = ExecResult(exit_code=2, stdout="", stderr="ls: cannot access 'nope'\n")
    response = client.post(
        f"/api/v1/instances/{running_instance['id']}/exec",
        headers=owner_headers,
        json={"command": "ls nope"},
    )
    assert response.status_code == 200
    assert response.json()["exit_code"] == 2
    assert "cannot access" in response.json()["stderr"]


def test_execute_timeout_above_cap_rejected(client, running_instance, owner_headers, fake_driver):
    response = client.post(
        f"/api/v1/instances/{running_instance['id']}/exec",
        headers=owner_headers,
        json={"command": "echo hi", "timeout": 500000},
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"
    assert fake_driver.count("execute") == 0


def test_execute_empty_command_rejected(client, running_instance, owner_headers, fake_driver):
    response = client.post(
        f"/api/v1/instances/{running_instance['id']}/exec",
        headers=owner_headers,
        json={"command": ""},
    )
    assert response.status_code == 400
    assert fake_driver.count("execute") == 0


def test_execute_times_out(client, running_instance, owner_headers, fake_driver):
    fake_driver.delays["execute"] = 1.5
    response = client.post(
        f"/api/v1/instances/{running_instance['id']}/exec",
        headers=owner_headers,
        json={"command": "sleep 60", "timeout": 1000},
    )
    assert response.status_code == 500
    assert response.json()["kind"] == "timeout"
    assert len(fake_driver.cancelled) == 1


def test_execute_member_forbidden(client, running_instance, member_headers, fake_driver):
    response = client.post(
        f"/api/v1/instances/{running_instance['id']}/exec",
        headers=member_headers,
        json={"command": "id"},
    )
    assert response.status_code == 403
    assert fake_driver.count("execute") == 0


def test_execute_on_stopped_instance(client, running_instance, owner_headers, fake_driver):
    client.post(f"/api/v1/instances/{running_instance['id']}/stop", headers=owner_headers)
    response = client.post(
        f"/api/v1/instances/{running_instance['id']}/exec",
        headers=owner_headers,
        json={"command": "id"},
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "invalid_state"
    assert fake_driver.count("execute") == 0


def test_execute_driver_failure(client, running_instance, owner_headers, fake_driver):
    fake_driver.fail["execute"] = DriverError("agent unreachable", driver="fake", operation="execute command on")
    response = client.post(
        f"/api/v1/instances/{running_instance['id']}/exec",
        headers=owner_headers,
        json={"command": "id"},
    )
    assert response.status_code == 500
    assert response.json()["kind"] == "driver_error"


def test_execute_does_not_change_state(client, running_instance, owner_headers):
    url = f"/api/v1/instances/{running_instance['id']}"
    client.post(f"{url}/exec", headers=owner_headers, json={"command": "echo hi"})
    assert client.get(url, headers=owner_headers).json()["status"] == "running"


def test_create_exec_delete_scenario(create_instance, client, owner_headers):
    response = create_instance(kind="microvm", memory="512MB", cpu_count=1)
    assert response.status_code == 201
    instance = response.json()
    assert instance["status"] == "running"
    url = f"/api/v1/instances/{instance['id']}"

    response = client.post(f"{url}/exec", headers=owner_headers, json={"command": "echo hi", "timeout": 5000})
    assert response.json()["exit_code"] == 0
    assert "hi" in response.json()["output"]

    assert client.delete(url, headers=owner_headers).status_code == 200
    assert client.get(url, headers=owner_headers).status_code == 404
