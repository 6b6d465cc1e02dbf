# backend/tests/integration/test_snapshots.py
from uuid import uuid4

import pytest

from kraft.exceptions import DriverError, DriverNotFoundError


@pytest.fixture
def snapshot(client, running_instance, owner_headers):
    response = client.post(
        "/api/v1/snapshots",
        headers=owner_headers,
        json={"instance_id": running_instance["id"], "name": "baseline", "description": "fresh install"},
    )
    assert response.status_code == 201
    return response.json()


def test_create_snapshot(snapshot, running_instance, fake_driver):
    assert snapshot["name"] == "baseline"
    assert snapshot["source_instance_id"] == running_instance["id"]
    assert snapshot["memory_mb"] == running_instance["memory_mb"]
    assert snapshot["size_bytes"] == 4096
    assert fake_driver.count("capture") == 1


def test_create_snapshot_of_unknown_instance(client, owner_headers):
    response = client.post(
        "/api/v1/snapshots", headers=owner_headers, json={"instance_id": str(uuid4()), "name": "x"}
    )
    assert response.status_code == 404


def test_create_snapshot_of_failed_instance(client, create_instance, owner_headers, fake_driver):
    fake_driver.fail["boot"] = DriverError("no capacity", driver="fake", operation="create")
    create_instance()
    fake_driver.fail.clear()
    instances = client.get("/api/v1/instances", headers=owner_headers).json()

    response = client.post(
        "/api/v1/snapshots", headers=owner_headers, json={"instance_id": instances[0]["id"], "name": "x"}
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "invalid_state"
    assert fake_driver.count("capture") == 0


def test_snapshot_survives_instance_delete(client, snapshot, running_instance, owner_headers):
    client.delete(f"/api/v1/instances/{running_instance['id']}", headers=owner_headers)

    response = client.get(f"/api/v1/snapshots?instance_id={running_instance['id']}", headers=owner_headers)
    assert response.status_code == 200
    assert [s["id"] for s in response.json()] == [snapshot["id"]]


def test_get_snapshot_hidden_from_outsiders(client, snapshot, outsider_headers):
    response = client.get(f"/api/v1/snapshots/{snapshot['id']}", headers=outsider_headers)
    assert response.status_code == 404


def test_restore_snapshot_creates_new_instance(client, snapshot, running_instance, owner_headers, fake_driver):
    response = client.post(f"/api/v1/snapshots/{snapshot['id']}/restore", headers=owner_headers)
    assert response.status_code == 201
    restored = response.json()
    assert restored["id"] != running_instance["id"]
    assert restored["status"] == "running"
    assert restored["source_snapshot_id"] == snapshot["id"]

    boot_request = [call[1] for call in fake_driver.calls if call[0] == "boot"][-1]
    assert boot_request.restore_from == "fake://capture-1"


def test_delete_snapshot(client, snapshot, owner_headers, fake_driver):
    url = f"/api/v1/snapshots/{snapshot['id']}"
    response = client.delete(url, headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Snapshot deleted successfully"

    assert client.delete(url, headers=owner_headers).status_code == 200
    assert fake_driver.count("delete_capture") == 1
    assert client.get(url, headers=owner_headers).status_code == 404


def test_delete_snapshot_storage_already_gone(client, snapshot, owner_headers, fake_driver):
    fake_driver.fail["delete_capture"] = DriverNotFoundError("gone", driver="fake")
    response = client.delete(f"/api/v1/snapshots/{snapshot['id']}", headers=owner_headers)
    assert response.status_code == 200


def test_delete_snapshot_member_forbidden(client, snapshot, member_headers):
    response = client.delete(f"/api/v1/snapshots/{snapshot['id']}", headers=member_headers)
    assert response.status_code == 403


def test_delete_unknown_snapshot(client, owner_headers):
    response = client.delete(f"/api/v1/snapshots/{uuid4()}", headers=owner_headers)
    assert response.status_code == 404
