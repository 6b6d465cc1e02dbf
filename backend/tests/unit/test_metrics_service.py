# backend/tests/unit/test_metrics_service.py
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from kraft.config import Settings
from kraft.exceptions import NotFoundError, ValidationError
from kraft.models.instance import Instance, InstanceKind, InstanceStatus
from kraft.models.metric import MetricType
from kraft.services.metrics_service import MetricsService, normalize_timestamp


@pytest.fixture
def instance(db_session, org, owner_id):
    instance = Instance(
        workspace_id=org.workspace_id, user_id=owner_id, kind=InstanceKind.CONTAINER,
        image="ubuntu:22.04", memory_mb=512, cpu_count=1, disk_mb=10240,
        status=InstanceStatus.RUNNING,
    )
    db_session.add(instance)
    db_session.commit()
    return instance


@pytest.fixture
def service(db_session):
    return MetricsService(db_session, Settings(_env_file=None, metrics_max_limit=3))


def test_normalize_timestamp():
    naive = datetime(2026, 1, 1, 12, 0)
    assert normalize_timestamp(naive).tzinfo == timezone.utc

    offset = datetime(2026, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert normalize_timestamp(offset) == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_record_defaults_unit(service, instance):
    sample = service.record(instance.id, MetricType.NETWORK_IN, 1024)
    assert sample.unit == "bytes"
    assert sample.value == 1024.0


def test_record_unknown_instance(service):
    with pytest.raises(NotFoundError):
        service.record(uuid4(), MetricType.CPU_USAGE, 1.0)


@pytest.mark.parametrize("value", [float("nan"), float("inf"), True])
def test_record_rejects_non_finite(service, instance, value):
    with pytest.raises(ValidationError):
        service.record(instance.id, MetricType.CPU_USAGE, value)


def test_query_limit_is_clamped(service, instance):
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i in range(5):
        service.record(instance.id, MetricType.CPU_USAGE, float(i), timestamp=start + timedelta(seconds=i))

    samples = service.query(instance.id, limit=50)
    assert [s.value for s in samples] == [4.0, 3.0, 2.0]
    assert service.clamp_limit(0) == 1
