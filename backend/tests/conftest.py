# backend/tests/conftest.py
import time
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kraft.main import app
from kraft.database import get_db
from kraft.models import Base, Organization, Project, Workspace, OrganizationMember, OrgRole
from kraft.models.instance import InstanceKind
from kraft.services.drivers import DriverSet, get_drivers
from kraft.services.drivers.base import InstanceDriver, BootResult, ExecResult, CaptureResult
from kraft.utils.security import create_access_token


class FakeDriver(InstanceDriver):
    """Records every call; failures and delays are configured per operation."""

    name = "fake"

    def __init__(self):
        self.calls = []
        self.fail = {}
        self.delays = {}
        self.exec_result = None
        self.on_boot = None
        self.cancelled = []
        self.captured = 0
        self.stats_result = {
            "cpu_percent": 12.5,
            "memory_mb": 256.0,
            "network_rx_bytes": 1000.0,
            "network_tx_bytes": 500.0,
        }

    def _enter(self, operation, *args):
        self.calls.append((operation,) + args)
        delay = self.delays.get(operation)
        if delay:
            time.sleep(delay)
        error = self.fail.get(operation)
        if error is not None:
            raise error

    def count(self, operation):
        return sum(1 for call in self.calls if call[0] == operation)

    def boot(self, request, timeout):
        self._enter("boot", request)
        if self.on_boot is not None:
            self.on_boot(request)
        return BootResult(backend_ref=f"fake-{request.instance_id.hex[:12]}")

    def start(self, backend_ref, timeout):
        self._enter("start", backend_ref)

    def stop(self, backend_ref, timeout):
        self._enter("stop", backend_ref)

    def restart(self, backend_ref, timeout):
        self._enter("restart", backend_ref)

    def execute(self, backend_ref, command, timeout, execution_id):
        self._enter("execute", backend_ref, command)
        if self.exec_result is not None:
            return self.exec_result
        stdout = command[len("echo "):] + "\n" if command.startswith("echo ") else ""
        return ExecResult(exit_code=0, stdout=stdout, stderr="")

    def cancel_execution(self, backend_ref, execution_id):
        self.cancelled.append(execution_id)

    def capture(self, backend_ref, name, timeout):
        self._enter("capture", backend_ref, name)
        self.captured += 1
        return CaptureResult(storage_locator=f"fake://capture-{self.captured}", size_bytes=4096)

    def delete_capture(self, storage_locator, timeout):
        self._enter("delete_capture", storage_locator)

    def teardown(self, backend_ref, timeout):
        self._enter("teardown", backend_ref)

    def logs(self, backend_ref, lines, timeout):
        self._enter("logs", backend_ref, lines)
        return ["booting", "ready", "listening"][-lines:]

    def stats(self, backend_ref, timeout):
        self._enter("stats", backend_ref)
        return self.stats_result

    def health(self):
        return {"status": "healthy"}


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def drivers(fake_driver):
    return DriverSet({InstanceKind.MICROVM: fake_driver, InstanceKind.CONTAINER: fake_driver})


@pytest.fixture
def client(db_session, drivers):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_drivers] = lambda: drivers

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def org(db_session):
    """An organization with one project and one workspace."""
    organization = Organization(name="Acme", slug=f"acme-{uuid4().hex[:8]}")
    db_session.add(organization)
    db_session.flush()
    project = Project(organization_id=organization.id, name="Platform")
    db_session.add(project)
    db_session.flush()
    workspace = Workspace(project_id=project.id, name="dev")
    db_session.add(workspace)
    db_session.commit()
    return SimpleNamespace(id=organization.id, project_id=project.id, workspace_id=workspace.id)


@pytest.fixture
def add_member(db_session):
    def _add(organization_id, role):
        user_id = uuid4()
        db_session.add(OrganizationMember(organization_id=organization_id, user_id=user_id, role=role))
        db_session.commit()
        return user_id
    return _add


def headers_for(user_id):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def owner_id(org, add_member):
    return add_member(org.id, OrgRole.OWNER)


@pytest.fixture
def admin_id(org, add_member):
    return add_member(org.id, OrgRole.ADMIN)


@pytest.fixture
def member_id(org, add_member):
    return add_member(org.id, OrgRole.MEMBER)


@pytest.fixture
def outsider_id():
    return uuid4()


@pytest.fixture
def owner_headers(owner_id):
    return headers_for(owner_id)


@pytest.fixture
def admin_headers(admin_id):
    return headers_for(admin_id)


@pytest.fixture
def member_headers(member_id):
    return headers_for(member_id)


@pytest.fixture
def outsider_headers(outsider_id):
    return headers_for(outsider_id)


@pytest.fixture
def create_instance(client, org, owner_id, owner_headers):
    """POST an instance in the org workspace; returns the response."""
    def _create(**overrides):
        payload = {
            "user_id": str(owner_id),
            "workspace_id": str(org.workspace_id),
            "kind": "microvm",
            "memory": "512MB",
            "cpu_count": 1,
        }
        payload.update(overrides)
        return client.post("/api/v1/instances", headers=owner_headers, json=payload)
    return _create


@pytest.fixture
def running_instance(create_instance):
    response = create_instance()
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def make_headers():
    return headers_for
