# backend/kraft/models/__init__.py
from kraft.models.base import Base
from kraft.models.organization import Organization, Project, Workspace, OrganizationMember, OrgRole
from kraft.models.instance import Instance, InstanceKind, InstanceStatus
from kraft.models.snapshot import Snapshot
from kraft.models.template import Template
from kraft.models.metric import MetricSample, MetricType, DEFAULT_UNITS
from kraft.models.event_log import EventLog, EventType
from kraft.models.tombstone import Tombstone

__all__ = [
    "Base",
    "Organization", "Project", "Workspace", "OrganizationMember", "OrgRole",
    "Instance", "InstanceKind", "InstanceStatus",
    "Snapshot",
    "Template",
    "MetricSample", "MetricType", "DEFAULT_UNITS",
    "EventLog", "EventType",
    "Tombstone",
]
