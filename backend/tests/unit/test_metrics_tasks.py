# backend/tests/unit/test_metrics_tasks.py
from unittest.mock import MagicMock, patch

import pytest

from kraft.exceptions import NotFoundError
from kraft.models.instance import Instance, InstanceKind, InstanceStatus
from kraft.models.metric import MetricSample, MetricType


@pytest.fixture
def instance(db_session, org, owner_id):
    instance = Instance(
        workspace_id=org.workspace_id, user_id=owner_id, kind=InstanceKind.CONTAINER,
        image="ubuntu:22.04", memory_mb=512, cpu_count=1, disk_mb=10240,
        status=InstanceStatus.RUNNING, backend_ref="fake-1",
    )
    db_session.add(instance)
    db_session.commit()
    return instance


@pytest.fixture
def session_factory(db_session):
    # The actor closes its session; keep the test session usable afterwards
    db_session.close = MagicMock()
    return MagicMock(return_value=MagicMock(return_value=db_session))


def test_collect_instance_metrics(instance, drivers, session_factory, db_session):
    from kraft.tasks.metrics_tasks import collect_instance_metrics

    with patch("kraft.tasks.metrics_tasks.get_session_local", session_factory), \
            patch("kraft.tasks.metrics_tasks.get_drivers", return_value=drivers):
        written = collect_instance_metrics.fn(str(instance.id))

    assert written == 4
    types = {sample.metric_type for sample in db_session.query(MetricSample).all()}
    assert types == {MetricType.CPU_USAGE, MetricType.MEMORY_USAGE,
                     MetricType.NETWORK_IN, MetricType.NETWORK_OUT}


def test_collect_stops_when_instance_deleted_midway(instance, drivers, session_factory):
    from kraft.tasks.metrics_tasks import collect_instance_metrics

    service = MagicMock()
    service.record.side_effect = [MagicMock(), NotFoundError("Instance")]

    with patch("kraft.tasks.metrics_tasks.get_session_local", session_factory), \
            patch("kraft.tasks.metrics_tasks.get_drivers", return_value=drivers), \
            patch("kraft.tasks.metrics_tasks.MetricsService", return_value=service):
        written = collect_instance_metrics.fn(str(instance.id))

    assert written == 1
    assert service.record.call_count == 2


def test_collect_skips_stopped_instance(instance, drivers, session_factory, db_session, fake_driver):
    from kraft.tasks.metrics_tasks import collect_instance_metrics

    instance.status = InstanceStatus.STOPPED
    db_session.commit()

    with patch("kraft.tasks.metrics_tasks.get_session_local", session_factory), \
            patch("kraft.tasks.metrics_tasks.get_drivers", return_value=drivers):
        assert collect_instance_metrics.fn(str(instance.id)) == 0
    assert fake_driver.count("stats") == 0


def test_collect_running_instances_fans_out(instance, session_factory):
    from kraft.tasks import metrics_tasks

    with patch("kraft.tasks.metrics_tasks.get_session_local", session_factory), \
            patch.object(metrics_tasks.collect_instance_metrics, "send") as mock_send:
        assert metrics_tasks.collect_running_instances_metrics.fn() == 1
    mock_send.assert_called_once_with(str(instance.id))
