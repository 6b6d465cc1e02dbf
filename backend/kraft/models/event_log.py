# backend/kraft/models/event_log.py
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column

from kraft.models.base import Base, TimestampMixin, UUIDMixin


class EventType(str, Enum):
    INSTANCE_PROVISIONING = "instance_provisioning"
    INSTANCE_RUNNING = "instance_running"
    INSTANCE_STARTED = "instance_started"
    INSTANCE_STOPPED = "instance_stopped"
    INSTANCE_RESTARTED = "instance_restarted"
    INSTANCE_FAILED = "instance_failed"
    INSTANCE_DELETED = "instance_deleted"
    COMMAND_EXECUTED = "command_executed"
    COMMAND_TIMED_OUT = "command_timed_out"
    SNAPSHOT_CREATED = "snapshot_created"
    SNAPSHOT_RESTORED = "snapshot_restored"
    SNAPSHOT_DELETED = "snapshot_deleted"


class EventLog(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "event_logs"

    # Kept after the instance is purged, so no foreign key
    instance_id: Mapped[UUID] = mapped_column(index=True)
    event_type: Mapped[EventType] = mapped_column(index=True)
    message: Mapped[str] = mapped_column(Text)
    extra_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON string for extra data
