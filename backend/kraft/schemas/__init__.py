# backend/kraft/schemas/__init__.py
from kraft.schemas.instance import (
    InstanceCreate, InstanceResponse, ExecRequest, ExecResponse, LogsResponse, MessageResponse,
)
from kraft.schemas.snapshot import SnapshotCreate, SnapshotRestore, SnapshotResponse
from kraft.schemas.template import TemplateCreate, TemplateResponse
from kraft.schemas.metric import MetricCreate, MetricResponse
from kraft.schemas.event_log import EventLogResponse
