# backend/tests/unit/test_models.py
from uuid import uuid4

from kraft.models.event_log import EventLog, EventType
from kraft.models.instance import InstanceStatus
from kraft.models.metric import DEFAULT_UNITS, MetricType


def test_event_log_creation():
    event = EventLog(
        instance_id=uuid4(),
        event_type=EventType.INSTANCE_STARTED,
        message="Instance dev-01 started"
    )
    assert event.event_type == EventType.INSTANCE_STARTED
    assert "dev-01" in event.message


def test_enum_values():
    assert EventType.COMMAND_TIMED_OUT.value == "command_timed_out"
    assert InstanceStatus.TERMINATING.value == "terminating"
    assert MetricType.RESPONSE_TIME.value == "response_time"


def test_every_metric_type_has_a_unit():
    assert set(DEFAULT_UNITS) == set(MetricType)
